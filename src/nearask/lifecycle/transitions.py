"""
Request status transitions.

active -> answered -> completed, forward only. `completed` is terminal and
`active` is only ever entered at creation.
"""

from __future__ import annotations

from nearask.domain.errors import InvalidTransition
from nearask.domain.models import ACTIVE, ANSWERED, COMPLETED, RequestStatus

INITIAL_STATUS: RequestStatus = ACTIVE

TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    ACTIVE: frozenset({ANSWERED}),
    ANSWERED: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: RequestStatus, target: RequestStatus, *, request_id: str | None = None) -> None:
    """Raise `InvalidTransition` unless `current -> target` is allowed."""
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Request {request_id or '?'} is '{current}'; cannot move to '{target}'",
            request_id=request_id,
        )


def is_terminal(status: RequestStatus) -> bool:
    return not TRANSITIONS.get(status)
