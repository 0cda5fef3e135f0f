"""
Typed lifecycle failures.

Every failure carries a stable machine `code` so adapters (API, CLI) can map it
without string matching. Callers are expected to catch `LifecycleError` (or a
specific subclass) and turn it into user-facing messaging.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for failures raised by lifecycle operations."""

    code = "LIFECYCLE_ERROR"

    def __init__(self, message: str, *, request_id: str | None = None, response_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.response_id = response_id

    def as_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class NotFound(LifecycleError):
    """The referenced request or response does not exist."""

    code = "NOT_FOUND"


class InvalidTransition(LifecycleError):
    """The request is not in the state the operation requires."""

    code = "INVALID_TRANSITION"


class AlreadyAnswered(LifecycleError):
    """Another writer answered the request between the pre-check and the commit."""

    code = "ALREADY_ANSWERED"


class AlreadyCompleted(LifecycleError):
    """Another writer completed the request between the pre-check and the commit."""

    code = "ALREADY_COMPLETED"


class Forbidden(LifecycleError):
    code = "FORBIDDEN"


class Mismatch(LifecycleError):
    """The response does not belong to the stated request."""

    code = "MISMATCH"


class InvariantViolation(LifecycleError):
    """A stored request/response pair breaks the status invariants."""

    code = "INVARIANT_VIOLATION"
