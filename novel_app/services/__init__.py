"""Service layer for the episode generation workflow."""

from __future__ import annotations

from .episodes import (  # noqa: F401
    ContinueRequest,
    EpisodeResult,
    GenerateRequest,
    RewriteRequest,
    generate_episode,
    parse_generation_request,
)
from .errors import (  # noqa: F401
    EpisodeConflictError,
    EpisodeGenerationError,
    InsufficientBalanceError,
    MalformedResponseError,
    MissingContextError,
    PersistenceError,
    ProviderError,
    RequestValidationError,
    StoryNotFoundError,
)

__all__ = [
    "ContinueRequest",
    "EpisodeConflictError",
    "EpisodeGenerationError",
    "EpisodeResult",
    "GenerateRequest",
    "InsufficientBalanceError",
    "MalformedResponseError",
    "MissingContextError",
    "PersistenceError",
    "ProviderError",
    "RequestValidationError",
    "RewriteRequest",
    "StoryNotFoundError",
    "generate_episode",
    "parse_generation_request",
]
