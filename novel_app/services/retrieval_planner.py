"""Two-stage context retrieval used when continuing a long story.

The selection stage asks the provider which past episodes may hold relevant
foreshadowing; the extraction stage condenses each selected episode into a
single sentence. Both stages run strictly one call after another.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from flask import current_app

from ..models import StoryContent
from .errors import EpisodeGenerationError
from .prompt_composer import apply_template, extract_generation_parameters, load_prompt_entry
from .provider import GenerationProvider
from .response_parser import parse_json_object

PROMPT_KEY_PLAN = "retrieval_plan"
PROMPT_KEY_EXTRACT = "retrieval_extract"


@dataclass
class RetrievalSelection:
    index: int
    reason: str


@dataclass
class RetrievalResult:
    selections: List[RetrievalSelection] = field(default_factory=list)
    snippets: List[str] = field(default_factory=list)

    @property
    def extractions(self) -> int:
        return len(self.snippets)


def plan_context(
    next_direction: str,
    episodes: Sequence[StoryContent],
    provider: GenerationProvider,
    *,
    max_selections: int = 3,
    max_extractions: Optional[int] = None,
) -> RetrievalResult:
    """Select relevant past episodes and extract one labelled fact from each.

    ``max_extractions`` caps the number of extraction calls (the caller derives
    it from what the wallet can pay for). A missing or empty plan is not an
    error; a failed extraction call propagates.
    """

    if not episodes or max_selections <= 0:
        return RetrievalResult()

    by_index = {episode.order_index: episode for episode in episodes}
    selections = _select_episodes(next_direction, sorted(by_index), provider, max_selections)

    limit = len(selections) if max_extractions is None else max(0, max_extractions)
    if len(selections) > limit:
        current_app.logger.warning(
            "Retrieval plan trimmed from %s to %s selection(s) to fit the wallet balance.",
            len(selections),
            limit,
        )
        selections = selections[:limit]

    result = RetrievalResult(selections=selections)
    for selection in selections:
        episode = by_index[selection.index]
        fact = _extract_fact(episode, selection.reason, provider)
        result.snippets.append(f"[episode {selection.index}]: {fact}")
    return result


def _select_episodes(
    next_direction: str,
    indices: Sequence[int],
    provider: GenerationProvider,
    max_selections: int,
) -> List[RetrievalSelection]:
    entry = _load_entry(PROMPT_KEY_PLAN)
    prompt = apply_template(
        entry["prompt_template"],
        next_direction=(next_direction or "").strip() or "Continue the story naturally.",
        episode_indices=", ".join(str(index) for index in indices),
        max_selections=str(max_selections),
    )
    raw_response = provider.generate(
        (entry.get("system_prompt") or "").strip(),
        prompt,
        expect_json=True,
        **extract_generation_parameters(entry.get("parameters")),
    )
    return _parse_plan(raw_response, set(indices), max_selections)


def _parse_plan(raw_response: Optional[str], known: set[int], max_selections: int) -> List[RetrievalSelection]:
    data = parse_json_object(raw_response)
    if data is None:
        current_app.logger.warning("Retrieval plan could not be parsed; continuing without extra context.")
        return []

    plan = data.get("plan")
    if not isinstance(plan, list):
        return []

    selections: List[RetrievalSelection] = []
    seen: set[int] = set()
    for item in plan:
        if not isinstance(item, dict):
            continue
        index = _coerce_index(item.get("index", item.get("idx")))
        if index is None or index not in known or index in seen:
            current_app.logger.warning("Dropping retrieval plan entry with unknown episode: %r", item)
            continue
        reason_raw = item.get("reason")
        reason = reason_raw.strip() if isinstance(reason_raw, str) else ""
        selections.append(RetrievalSelection(index=index, reason=reason or "Key facts relevant to the next episode."))
        seen.add(index)
        if len(selections) >= max_selections:
            break

    return selections


def _extract_fact(episode: StoryContent, reason: str, provider: GenerationProvider) -> str:
    entry = _load_entry(PROMPT_KEY_EXTRACT)
    prompt = apply_template(
        entry["prompt_template"],
        episode_text=episode.content,
        reason=reason,
    )
    raw_response = provider.generate(
        (entry.get("system_prompt") or "").strip(),
        prompt,
        expect_json=False,
        **extract_generation_parameters(entry.get("parameters")),
    )
    return " ".join((raw_response or "").split())


def _coerce_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _load_entry(key: str) -> dict:
    entry = load_prompt_entry(key)
    if not entry.get("prompt_template"):
        raise EpisodeGenerationError(f"Prompt template for '{key}' is missing.")
    return entry
