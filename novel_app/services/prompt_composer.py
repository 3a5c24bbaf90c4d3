"""Prompt assembly for episode synthesis and context retrieval."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

from flask import current_app

from ..models import Character, Scenario
from .errors import EpisodeGenerationError, MissingContextError

PROMPT_KEY_SYNTHESIS = "episode_synthesis"
PROMPT_CACHE_KEY = "_PROMPT_CONFIG_CACHE"

_STORY_START = "This is where the story begins."
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass
class Composition:
    system_prompt: str
    user_prompt: str
    is_final: bool
    character_text: str
    scenario_text: str
    parameters: Dict[str, Any] = field(default_factory=dict)


def resolve_character_text(
    characters: Iterable[Character],
    override: Optional[str] = None,
    stored: Optional[str] = None,
) -> str:
    """Return the effective character description.

    A free-text override always wins over preset characters; the context
    stored on an existing story is the last resort.
    """

    override_text = (override or "").strip()
    if override_text:
        return override_text

    preset_text = "\n".join(_format_character(character) for character in characters).strip()
    if preset_text:
        return preset_text

    return (stored or "").strip()


def resolve_scenario_text(
    scenario: Optional[Scenario],
    override: Optional[str] = None,
    stored: Optional[str] = None,
) -> str:
    override_text = (override or "").strip()
    if override_text:
        return override_text
    if scenario is not None and (scenario.setting_text or "").strip():
        return scenario.setting_text.strip()
    return (stored or "").strip()


def compose_episode_prompt(
    *,
    character_text: str,
    scenario_text: str,
    episode_index: int,
    total_episodes: int,
    title: Optional[str] = None,
    genre: Optional[str] = None,
    summary: Optional[str] = None,
    next_direction: Optional[str] = None,
    relationship_desc: Optional[str] = None,
    plot_notes: Optional[str] = None,
    retrieved_context: Sequence[str] = (),
    previous_excerpt: Optional[str] = None,
) -> Composition:
    """Build the system role and user prompt for one episode."""

    characters = (character_text or "").strip()
    scenario = (scenario_text or "").strip()
    if not characters:
        raise MissingContextError("No character settings were provided.")
    if not scenario:
        raise MissingContextError("No background scenario was provided.")

    is_final = episode_index >= total_episodes
    entry = load_prompt_entry(PROMPT_KEY_SYNTHESIS)
    prompt_template = entry.get("prompt_template")
    if not prompt_template:
        raise EpisodeGenerationError("Prompt configuration is missing the episode template text.")

    title_text = (title or "").strip()
    if is_final:
        final_instruction = "This is the final episode: resolve the central conflict and bring the story to a close."
    else:
        final_instruction = "This is not the final episode: end on a hook that leads into the next one."

    snippets = [snippet.strip() for snippet in retrieved_context if snippet and snippet.strip()]
    retrieved_block = ""
    if snippets:
        retrieved_block = "\n[Foreshadowing recovered from past episodes]\n" + "\n".join(snippets) + "\n"

    excerpt = (previous_excerpt or "").strip()
    excerpt_block = f"\n[Opening of the previous episode]\n{excerpt}\n" if excerpt else ""

    user_prompt = apply_template(
        prompt_template,
        episode_index=str(episode_index),
        total_episodes=str(total_episodes),
        title=title_text or "untitled",
        genre=(genre or "").strip() or "unspecified",
        characters=characters,
        scenario=scenario,
        relationship=(relationship_desc or "").strip() or "None specified.",
        plot_notes=(plot_notes or "").strip() or "None.",
        summary=(summary or "").strip() or _STORY_START,
        retrieved_context=retrieved_block,
        previous_excerpt=excerpt_block,
        next_direction=(next_direction or "").strip() or "Continue the story naturally.",
        final_instruction=final_instruction,
        title_instruction=title_text or "an attractive title for the story",
        is_final="true" if is_final else "false",
    )

    return Composition(
        system_prompt=(entry.get("system_prompt") or "").strip(),
        user_prompt=user_prompt,
        is_final=is_final,
        character_text=characters,
        scenario_text=scenario,
        parameters=extract_generation_parameters(entry.get("parameters")),
    )


def _format_character(character: Character) -> str:
    details = []
    description = (character.description or "").strip()
    if description:
        details.append(description)
    tags = character.tags_list
    if tags:
        details.append(f"personality: {', '.join(tags)}")
    dialogue_style = (character.dialogue_style or "").strip()
    if dialogue_style:
        details.append(f"speech: {dialogue_style}")
    if not details:
        return f"- {character.name}"
    return f"- {character.name}: " + "; ".join(details)


def apply_template(template: str, **values: str) -> str:
    """Fill ``{name}`` placeholders in one pass; inserted text is never rescanned."""

    def _substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        raw = values[key]
        return raw if isinstance(raw, str) else str(raw)

    return _PLACEHOLDER.sub(_substitute, template)


def load_prompt_entry(key: str) -> Dict[str, Any]:
    config = _load_prompt_config()
    try:
        entry = config[key]
    except KeyError as exc:  # pragma: no cover - configuration issues are caught at runtime
        raise EpisodeGenerationError(f"Prompt configuration is missing the '{key}' entry.") from exc
    if not isinstance(entry, dict):
        raise EpisodeGenerationError(f"Prompt configuration entry '{key}' must be a dictionary.")
    return entry


def _load_prompt_config() -> Dict[str, Any]:
    app = current_app
    cached = app.config.get(PROMPT_CACHE_KEY)
    if isinstance(cached, dict):
        return cached

    config_path = app.config.get("PROMPT_CONFIG_PATH")
    if not config_path:
        raise EpisodeGenerationError("PROMPT_CONFIG_PATH is not configured.")

    path = Path(config_path)
    if not path.exists():
        raise EpisodeGenerationError(f"Prompt configuration file not found at: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:  # pragma: no cover - malformed file should be obvious at runtime
            raise EpisodeGenerationError(f"Unable to parse prompt configuration: {exc.msg}") from exc

    if not isinstance(data, dict):
        raise EpisodeGenerationError("Prompt configuration must be a JSON object.")

    app.config[PROMPT_CACHE_KEY] = data
    return data


_GENERATION_PARAMETER_KEYS = {
    "max_new_tokens",
    "temperature",
    "top_p",
}


def extract_generation_parameters(parameters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Filter a raw parameters dictionary to kwargs supported by the provider."""

    if not isinstance(parameters, dict):
        return {}

    kwargs: Dict[str, Any] = {}
    for key in _GENERATION_PARAMETER_KEYS:
        if key in parameters and parameters[key] is not None:
            kwargs[key] = parameters[key]
    return kwargs
