import sys
from pathlib import Path

import pytest
from sqlalchemy import inspect, text

sys.path.append(str(Path(__file__).resolve().parents[1]))

from novel_app import create_app
from novel_app.config import TestConfig
from novel_app.db_utils import ensure_database_schema
from novel_app.extensions import db


@pytest.fixture
def app_ctx():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


def _columns(table_name):
    return {column["name"] for column in inspect(db.engine).get_columns(table_name)}


def test_legacy_stories_table_is_backfilled(app_ctx):
    with db.engine.begin() as connection:
        connection.execute(text("DROP TABLE story_contents"))
        connection.execute(text("DROP TABLE stories"))
        connection.execute(
            text(
                "CREATE TABLE stories ("
                "id INTEGER PRIMARY KEY, user_id INTEGER NOT NULL, title VARCHAR(200) NOT NULL, "
                "summary TEXT, plot_notes TEXT, genre VARCHAR(120), total_episodes INTEGER NOT NULL, "
                "created_at DATETIME NOT NULL, updated_at DATETIME NOT NULL)"
            )
        )
        connection.execute(
            text(
                "INSERT INTO stories (id, user_id, title, total_episodes, created_at, updated_at) "
                "VALUES (1, 1, 'Old tale', 20, '2024-01-01 00:00:00', '2024-01-01 00:00:00')"
            )
        )

    ensure_database_schema()

    columns = _columns("stories")
    for name in ("relationship_desc", "next_options", "character_context", "scenario_context", "is_public", "is_finished"):
        assert name in columns
    assert "story_contents" in inspect(db.engine).get_table_names()

    with db.engine.connect() as connection:
        row = connection.execute(text("SELECT is_public, is_finished, next_options FROM stories WHERE id = 1")).one()
    assert not row.is_public
    assert not row.is_finished
    assert row.next_options == "[]"


def test_schema_check_is_idempotent(app_ctx):
    before = _columns("stories")

    ensure_database_schema()

    assert _columns("stories") == before
