"""Episode generation workflow.

Fetch context, compose the prompt, call the provider, parse the reply,
persist the episode and debit the wallet. The debit runs after the episode
rows are flushed and is committed in the same transaction, so a failed
generation never costs tokens.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Union

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Character, Scenario, Story, StoryContent
from .errors import (
    EpisodeConflictError,
    EpisodeGenerationError,
    MissingContextError,
    PersistenceError,
    RequestValidationError,
    StoryNotFoundError,
)
from .prompt_composer import compose_episode_prompt, resolve_character_text, resolve_scenario_text
from .provider import GenerationProvider, get_generation_provider
from .response_parser import EpisodeRecord, parse_episode_response
from .retrieval_planner import RetrievalResult, plan_context
from .wallet import debit_wallet, ensure_balance

MODE_ALIASES = {
    "generate": "generate",
    "continue": "continue",
    "rewrite": "rewrite",
    "regenerate": "rewrite",
}

UNTITLED_STORY = "Untitled story"


@dataclass(kw_only=True)
class EpisodeRequest:
    mode: ClassVar[str] = ""

    user_id: int
    character_ids: List[int] = field(default_factory=list)
    character_override: str = ""
    scenario_id: Optional[int] = None
    scenario_override: str = ""
    title: str = ""
    genre: str = ""
    relationship_desc: str = ""
    plot_notes: str = ""
    next_direction: str = ""
    total_episodes: Optional[int] = None


@dataclass(kw_only=True)
class GenerateRequest(EpisodeRequest):
    mode: ClassVar[str] = "generate"


@dataclass(kw_only=True)
class ContinueRequest(EpisodeRequest):
    mode: ClassVar[str] = "continue"

    story_id: Optional[int] = None


@dataclass(kw_only=True)
class RewriteRequest(EpisodeRequest):
    mode: ClassVar[str] = "rewrite"

    story_id: Optional[int] = None
    order_index: Optional[int] = None


GenerationRequest = Union[GenerateRequest, ContinueRequest, RewriteRequest]


@dataclass
class EpisodeResult:
    record: EpisodeRecord
    story_id: int
    order_index: int
    tokens_used: int

    def to_dict(self) -> Dict[str, Any]:
        payload = self.record.to_dict()
        payload.update(
            {
                "story_id": self.story_id,
                "order_index": self.order_index,
                "used_tokens": self.tokens_used,
            }
        )
        return payload


def parse_generation_request(payload: Mapping[str, Any]) -> GenerationRequest:
    """Build the tagged request variant for ``payload['mode']``."""

    if not isinstance(payload, Mapping):
        raise RequestValidationError("The request body must be a JSON object.")

    mode_raw = payload.get("mode") or "generate"
    mode = MODE_ALIASES.get(str(mode_raw).strip().lower())
    if mode is None:
        raise RequestValidationError(f"Unsupported generation mode: {mode_raw}.")

    user_id = _coerce_id(payload.get("user_id"), "user_id")
    if user_id is None:
        raise RequestValidationError("A user_id is required.")

    common: Dict[str, Any] = {
        "user_id": user_id,
        "character_ids": _coerce_id_list(payload.get("character_ids")),
        "character_override": _coerce_text(
            payload.get("manual_characters") or payload.get("custom_characters")
        ),
        "scenario_id": _coerce_id(payload.get("scenario_id"), "scenario_id"),
        "scenario_override": _coerce_text(payload.get("custom_scenario")),
        "title": _coerce_text(payload.get("user_title")),
        "genre": _coerce_text(payload.get("genre_desc") or payload.get("genre")),
        "relationship_desc": _coerce_text(payload.get("relationship_desc")),
        "plot_notes": _coerce_text(payload.get("plot_notes")),
        "next_direction": _coerce_text(payload.get("next_direction")),
        "total_episodes": _coerce_positive_int(payload.get("total_episodes"), "total_episodes"),
    }

    if mode == "generate":
        return GenerateRequest(**common)

    story_id = _coerce_id(payload.get("story_id"), "story_id")
    if mode == "continue":
        return ContinueRequest(story_id=story_id, **common)
    return RewriteRequest(
        story_id=story_id,
        order_index=_coerce_positive_int(payload.get("order_index"), "order_index"),
        **common,
    )


def generate_episode(
    request: GenerationRequest,
    *,
    provider: Optional[GenerationProvider] = None,
    retrieval: bool = False,
) -> EpisodeResult:
    """Run the full episode workflow for ``request``.

    ``retrieval`` enables the plan-then-extract context lookup for
    continuations; a continuation then needs a larger balance up front and costs
    ``EXTRACTION_TOKEN_COST`` per extracted episode on top of the base cost.
    """

    config = current_app.config
    base_cost = int(config.get("BASE_TOKEN_COST", 1))
    extraction_cost = int(config.get("EXTRACTION_TOKEN_COST", 2))
    plans_context = retrieval and isinstance(request, ContinueRequest)
    required = max(base_cost, int(config.get("RLM_MIN_BALANCE", 5))) if plans_context else base_cost

    balance = ensure_balance(request.user_id, required)

    characters = _load_characters(request.character_ids)
    scenario = db.session.get(Scenario, request.scenario_id) if request.scenario_id else None
    story = None if isinstance(request, GenerateRequest) else _find_story(request)

    character_text = resolve_character_text(
        characters, request.character_override, story.character_context if story else None
    )
    scenario_text = resolve_scenario_text(
        scenario, request.scenario_override, story.scenario_context if story else None
    )
    if not character_text:
        raise MissingContextError("No character settings were provided.")
    if not scenario_text:
        raise MissingContextError("No background scenario was provided.")

    if story is None and not isinstance(request, GenerateRequest):
        raise StoryNotFoundError("The story to continue could not be found.")

    episodes: List[StoryContent] = list(story.contents) if story else []
    latest_index = episodes[-1].order_index if episodes else 0
    episode_index = _target_index(request, latest_index)

    total_episodes = (
        request.total_episodes
        or (story.total_episodes if story else None)
        or int(config.get("DEFAULT_TOTAL_EPISODES", 20))
    )
    title = request.title or (story.title if story else "")
    genre = request.genre or (story.genre if story else "") or config.get("DEFAULT_GENRE", "")
    relationship_desc = request.relationship_desc or (story.relationship_desc if story else "") or ""
    plot_notes = request.plot_notes or (story.plot_notes if story else "") or ""

    if provider is None:
        provider = get_generation_provider()

    retrieved = RetrievalResult()
    previous_excerpt = ""
    if plans_context and episodes:
        affordable = (balance - base_cost) // extraction_cost if extraction_cost > 0 else None
        retrieved = plan_context(
            request.next_direction,
            episodes,
            provider,
            max_selections=int(config.get("MAX_RETRIEVAL_SELECTIONS", 3)),
            max_extractions=affordable,
        )
        previous_excerpt = episodes[-1].content[: int(config.get("PREVIOUS_EXCERPT_CHARS", 500))]

    composition = compose_episode_prompt(
        character_text=character_text,
        scenario_text=scenario_text,
        episode_index=episode_index,
        total_episodes=total_episodes,
        title=title,
        genre=genre,
        summary=story.summary if story else "",
        next_direction=request.next_direction,
        relationship_desc=relationship_desc,
        plot_notes=plot_notes,
        retrieved_context=retrieved.snippets,
        previous_excerpt=previous_excerpt,
    )

    raw_response = provider.generate(
        composition.system_prompt,
        composition.user_prompt,
        expect_json=True,
        **composition.parameters,
    )
    record = parse_episode_response(raw_response)
    record = replace(
        record,
        title=title or record.title or UNTITLED_STORY,
        is_finished=composition.is_final,
    )

    cost = base_cost + extraction_cost * retrieved.extractions

    try:
        if isinstance(request, GenerateRequest):
            story = Story(
                user_id=request.user_id,
                title=record.title,
                genre=genre or None,
                relationship_desc=relationship_desc or None,
                plot_notes=plot_notes or None,
                total_episodes=total_episodes,
                character_context=composition.character_text,
                scenario_context=composition.scenario_text,
            )
            db.session.add(story)
            db.session.flush()
            db.session.add(StoryContent(story_id=story.id, order_index=episode_index, content=record.content))
        elif isinstance(request, ContinueRequest):
            db.session.add(StoryContent(story_id=story.id, order_index=episode_index, content=record.content))
        else:
            _assert_latest(story.id, episode_index)
            episodes[-1].content = record.content

        story.summary = record.summary or story.summary
        story.next_options = list(record.next_options)
        story.is_finished = record.is_finished
        if request.plot_notes:
            story.plot_notes = request.plot_notes
        if request.total_episodes:
            story.total_episodes = request.total_episodes
        db.session.flush()

        debit_wallet(request.user_id, cost)
        db.session.commit()
    except EpisodeGenerationError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        raise EpisodeConflictError(
            f"Episode {episode_index} was written by another request; reload the story and try again."
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Failed to persist episode %s: %s", episode_index, exc)
        raise PersistenceError("The episode could not be saved.") from exc

    current_app.logger.info(
        "Persisted episode %s of story %s (%s, %s token(s)).",
        episode_index,
        story.id,
        request.mode,
        cost,
    )
    return EpisodeResult(record=record, story_id=story.id, order_index=episode_index, tokens_used=cost)


def _target_index(request: GenerationRequest, latest_index: int) -> int:
    if isinstance(request, GenerateRequest):
        return 1
    if isinstance(request, ContinueRequest):
        return latest_index + 1
    if latest_index == 0:
        raise StoryNotFoundError("The story has no episode to rewrite.")
    if request.order_index is not None and request.order_index != latest_index:
        raise EpisodeConflictError(
            f"Only the latest episode ({latest_index}) can be rewritten, not episode {request.order_index}."
        )
    return latest_index


def _assert_latest(story_id: int, episode_index: int) -> None:
    current_max = (
        db.session.query(func.max(StoryContent.order_index))
        .filter(StoryContent.story_id == story_id)
        .scalar()
    )
    if current_max != episode_index:
        raise EpisodeConflictError("A newer episode was added while rewriting; reload the story and try again.")


def _find_story(request: Union[ContinueRequest, RewriteRequest]) -> Optional[Story]:
    if request.story_id is None:
        return None
    story = db.session.get(Story, request.story_id)
    if story is None or story.user_id != request.user_id:
        return None
    return story


def _load_characters(character_ids: List[int]) -> List[Character]:
    if not character_ids:
        return []
    found = {character.id: character for character in Character.query.filter(Character.id.in_(character_ids)).all()}
    return [found[character_id] for character_id in character_ids if character_id in found]


def _coerce_id(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise RequestValidationError(f"{field_name} must be an integer id.")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise RequestValidationError(f"{field_name} must be an integer id.") from exc


def _coerce_id_list(value: Any) -> List[int]:
    if value is None or value == "":
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    ids: List[int] = []
    for item in value:
        item_id = _coerce_id(item, "character_ids")
        if item_id is not None and item_id not in ids:
            ids.append(item_id)
    return ids


def _coerce_positive_int(value: Any, field_name: str) -> Optional[int]:
    number = _coerce_id(value, field_name)
    if number is not None and number < 1:
        raise RequestValidationError(f"{field_name} must be at least 1.")
    return number


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "\n".join(str(item).strip() for item in value if str(item).strip())
    return str(value).strip()
