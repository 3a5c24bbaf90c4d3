import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from novel_app import create_app
from novel_app.config import TestConfig
from novel_app.extensions import db
from novel_app.models import Character, Scenario, Story, StoryContent, User, Wallet


class StaticProvider:
    def __init__(self, response):
        self.response = response
        self.calls = 0

    def generate(self, system_prompt, user_prompt, **kwargs):
        self.calls += 1
        return self.response


EPISODE = json.dumps(
    {
        "title": "T",
        "content": "...",
        "summary": "S",
        "next_options": ["a", "b"],
        "is_finished": False,
    }
)


@pytest.fixture
def app_instance():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture
def user(app_instance):
    user = User(display_name="Writer")
    db.session.add(user)
    db.session.flush()
    db.session.add(Wallet(user_id=user.id, balance=1))
    db.session.commit()
    return user


@pytest.fixture
def provider(monkeypatch):
    fake = StaticProvider(EPISODE)
    monkeypatch.setattr("novel_app.services.episodes.get_generation_provider", lambda: fake)
    return fake


def test_generate_endpoint_returns_episode(client, user, provider):
    character = Character(user_id=user.id, name="Zero", personality_tags=["cold", "genius"])
    scenario = Scenario(user_id=user.id, title="Neon", setting_text="A flooded neon city.")
    db.session.add_all([character, scenario])
    db.session.commit()

    response = client.post(
        "/api/episodes",
        json={
            "user_id": user.id,
            "mode": "generate",
            "character_ids": [character.id],
            "scenario_id": scenario.id,
        },
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["title"] == "T"
    assert payload["content"] == "..."
    assert payload["next_options"] == ["a", "b"]
    assert payload["is_finished"] is False
    assert payload["order_index"] == 1
    assert payload["used_tokens"] == 1
    assert db.session.get(Story, payload["story_id"]) is not None
    assert Wallet.query.filter_by(user_id=user.id).one().balance == 0


def test_generate_endpoint_reports_insufficient_balance(client, user, provider):
    Wallet.query.filter_by(user_id=user.id).one().balance = 0
    db.session.commit()

    response = client.post(
        "/api/episodes",
        json={"user_id": user.id, "custom_characters": "Mina", "custom_scenario": "A monastery"},
    )

    assert response.status_code == 402
    assert "error" in response.get_json()
    assert provider.calls == 0
    assert Story.query.count() == 0


def test_generate_endpoint_reports_malformed_response(client, user, monkeypatch):
    fake = StaticProvider("Just prose, sorry.")
    monkeypatch.setattr("novel_app.services.episodes.get_generation_provider", lambda: fake)

    response = client.post(
        "/api/episodes",
        json={"user_id": user.id, "custom_characters": "Mina", "custom_scenario": "A monastery"},
    )

    assert response.status_code == 502
    assert "JSON" in response.get_json()["error"]
    assert Wallet.query.filter_by(user_id=user.id).one().balance == 1
    assert StoryContent.query.count() == 0


def test_generate_endpoint_without_configured_provider(client, user):
    response = client.post(
        "/api/episodes",
        json={"user_id": user.id, "custom_characters": "Mina", "custom_scenario": "A monastery"},
    )

    assert response.status_code == 502
    assert response.get_json() == {"error": "The generation provider is not configured."}
    assert Wallet.query.filter_by(user_id=user.id).one().balance == 1


def test_generate_endpoint_validates_payload(client, user, provider):
    response = client.post("/api/episodes", json={"user_id": user.id, "mode": "shuffle"})

    assert response.status_code == 400
    assert "mode" in response.get_json()["error"]


def test_rlm_continuation_requires_five_tokens(client, user, provider):
    story = Story(user_id=user.id, title="Tale", character_context="Mina", scenario_context="A monastery")
    db.session.add(story)
    db.session.flush()
    db.session.add(StoryContent(story_id=story.id, order_index=1, content="Body"))
    db.session.commit()

    response = client.post(
        "/api/episodes/rlm",
        json={"user_id": user.id, "mode": "continue", "story_id": story.id},
    )

    assert response.status_code == 402
    assert provider.calls == 0
    assert StoryContent.query.count() == 1


def test_rlm_first_episode_needs_only_base_cost(client, user, provider):
    response = client.post(
        "/api/episodes/rlm",
        json={"user_id": user.id, "manual_characters": ["Mina"], "custom_scenario": "A monastery"},
    )

    assert response.status_code == 200
    assert response.get_json()["used_tokens"] == 1
    assert provider.calls == 1
    assert Wallet.query.filter_by(user_id=user.id).one().balance == 0


def test_character_presets_crud(client, user):
    response = client.post(
        f"/api/users/{user.id}/characters",
        json={
            "name": "Zero",
            "description": "Architect of the grid.",
            "personality_tags": ["cold", "genius", "cold"],
            "dialogue_style": "Clipped.",
        },
    )
    assert response.status_code == 201
    created = response.get_json()["character"]
    assert created["personality_tags"] == ["cold", "genius"]

    listing = client.get(f"/api/users/{user.id}/characters").get_json()
    assert [c["name"] for c in listing["characters"]] == ["Zero"]

    response = client.delete(f"/api/users/{user.id}/characters/{created['id']}")
    assert response.status_code == 200
    assert Character.query.count() == 0


def test_character_preset_requires_name(client, user):
    response = client.post(f"/api/users/{user.id}/characters", json={"description": "Nameless"})

    assert response.status_code == 400
    assert "name" in response.get_json()["fields"]


def test_scenario_presets_crud(client, user):
    response = client.post(
        f"/api/users/{user.id}/scenarios",
        json={"title": "Neon", "setting_text": "A flooded neon city.", "personality_tags": "ignored"},
    )
    assert response.status_code == 201

    listing = client.get(f"/api/users/{user.id}/scenarios").get_json()
    assert listing["scenarios"][0]["setting_text"] == "A flooded neon city."

    missing = client.post(f"/api/users/{user.id}/scenarios", json={"title": "No setting"})
    assert missing.status_code == 400


def test_library_visibility_and_detail(client, user):
    story = Story(user_id=user.id, title="Private tale", summary="S")
    db.session.add(story)
    db.session.flush()
    db.session.add(StoryContent(story_id=story.id, order_index=1, content="Body"))
    db.session.commit()

    assert client.get(f"/api/stories/{story.id}").status_code == 404
    owner_view = client.get(f"/api/stories/{story.id}?user_id={user.id}").get_json()
    assert owner_view["story"]["contents"][0]["content"] == "Body"

    assert client.get("/api/stories/public").get_json()["stories"] == []
    toggled = client.post(f"/api/stories/{story.id}/visibility", json={"user_id": user.id})
    assert toggled.get_json()["is_public"] is True
    assert [s["title"] for s in client.get("/api/stories/public").get_json()["stories"]] == ["Private tale"]
    assert client.get(f"/api/stories/{story.id}").status_code == 200

    mine = client.get(f"/api/users/{user.id}/stories").get_json()["stories"]
    assert mine[0]["episode_count"] == 1

    deleted = client.delete(f"/api/stories/{story.id}", json={"user_id": user.id})
    assert deleted.status_code == 200
    assert Story.query.count() == 0
    assert StoryContent.query.count() == 0


def test_wallet_endpoint(client, user):
    response = client.get(f"/api/users/{user.id}/wallet")

    assert response.get_json() == {"user_id": user.id, "balance": 1}
    assert client.get("/api/users/999/wallet").status_code == 404
