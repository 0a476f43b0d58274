"""Error taxonomy shared by the stores, the lookup flow and the orchestrator.

Optional lookups (``find_by_phone``, ``get_business`` …) return ``None``
instead of raising; the classes below are for conditions the caller has to
act on.
"""

from __future__ import annotations


class ConciergeError(Exception):
    """Base class for every error raised by the chat engine."""


class ValidationError(ConciergeError):
    """Malformed input, rejected before any store mutation."""


class NotFoundError(ConciergeError):
    """A resource required by a write path does not exist."""


class LookupUnavailable(ConciergeError):
    """The external business provider failed and no cache entry could be used.

    Retryable: the caller may try again later.
    """


class AgentUnavailable(ConciergeError):
    """The AI-completion capability failed for a message."""


class PermissionDenied(ConciergeError):
    """The access policy refused an operation."""

    def __init__(self, message: str, *, action: str | None = None):
        self.action = action
        super().__init__(message)
