"""Error kinds raised by the episode generation workflow.

Every error collapses to a single human readable message at the HTTP
boundary; ``status_code`` only selects the response status.
"""

from __future__ import annotations


class EpisodeGenerationError(RuntimeError):
    """Base class for failures surfaced to the caller of a generation request."""

    status_code = 500


class RequestValidationError(EpisodeGenerationError):
    """Raised when a generation request payload is malformed."""

    status_code = 400


class MissingContextError(EpisodeGenerationError):
    """Raised when no usable character or scenario text remains after precedence."""

    status_code = 400


class InsufficientBalanceError(EpisodeGenerationError):
    """Raised when the wallet cannot cover the cost of a generation."""

    status_code = 402


class StoryNotFoundError(EpisodeGenerationError):
    """Raised when a continue/rewrite request references an unknown story."""

    status_code = 404


class EpisodeConflictError(EpisodeGenerationError):
    """Raised when the targeted episode index is no longer the latest one."""

    status_code = 409


class ProviderError(EpisodeGenerationError):
    """Raised on transport failures or error responses from the generation API."""

    status_code = 502


class MalformedResponseError(EpisodeGenerationError):
    """Raised when the provider text does not contain the expected JSON object."""

    status_code = 502


class PersistenceError(EpisodeGenerationError):
    """Raised when the story or episode rows cannot be written."""

    status_code = 500
