from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import MalformedResponseError

MAX_NEXT_OPTIONS = 4

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


@dataclass
class EpisodeRecord:
    title: str
    content: str
    summary: str
    next_options: List[str] = field(default_factory=list)
    is_finished: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "summary": self.summary,
            "next_options": list(self.next_options),
            "is_finished": self.is_finished,
        }


def parse_episode_response(raw_response: Optional[str]) -> EpisodeRecord:
    """Turn raw provider text into an :class:`EpisodeRecord`."""

    data = parse_json_object(raw_response)
    if data is None:
        raise MalformedResponseError("No valid JSON object was found in the generated response.")

    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise MalformedResponseError("The generated response is missing the episode content.")

    return EpisodeRecord(
        title=_clean_text(data.get("title")),
        content=content.strip(),
        summary=_clean_text(data.get("summary")),
        next_options=_clean_options(data.get("next_options")),
        is_finished=_coerce_bool(data.get("is_finished")),
    )


def parse_json_object(raw_response: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the first JSON object embedded in ``raw_response``, if any."""

    if not raw_response:
        return None

    text = strip_code_fences(raw_response)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        span = _first_object_span(text)
        if span is None:
            return None
        try:
            data = json.loads(span)
        except json.JSONDecodeError:
            return None

    if not isinstance(data, dict):
        return None
    return data


def strip_code_fences(text: str) -> str:
    stripped = _FENCE_OPEN.sub("", text.strip(), count=1)
    return _FENCE_CLOSE.sub("", stripped, count=1).strip()


def _first_object_span(text: str) -> Optional[str]:
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for position in range(start, len(text)):
            char = text[position]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : position + 1]
        # Unbalanced from this brace; try the next opening brace.
        start = text.find("{", start + 1)
    return None


def _clean_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if value is None:
        return ""
    return str(value).strip()


def _clean_options(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    options = [str(item).strip() for item in value if item is not None and str(item).strip()]
    return options[:MAX_NEXT_OPTIONS]


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    if isinstance(value, (int, float)):
        return bool(value)
    return False
