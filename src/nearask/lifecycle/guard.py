"""
Consistency guard.

These checks run inside a storage collaborator's atomic unit for one request,
after the service's optimistic pre-checks have passed. A failure here means
another writer got in between: the pre-check saw a state that no longer holds.

`check_invariants()` validates a committed request/response pair:
- active    <=> no response
- answered  <=> a response with completed_at unset
- completed <=> a response with completed_at set
"""

from __future__ import annotations

from nearask.domain.errors import AlreadyAnswered, AlreadyCompleted, InvariantViolation, NotFound
from nearask.domain.models import ACTIVE, ANSWERED, COMPLETED, Request, Response


def guard_answer(request: Request | None, existing: Response | None, *, request_id: str) -> Request:
    """Compare-and-swap precondition for answering; returns the current request."""
    if request is None:
        raise NotFound(f"Request {request_id} not found", request_id=request_id)
    if existing is not None or request.status != ACTIVE:
        raise AlreadyAnswered(f"Request {request_id} was answered by another responder", request_id=request_id)
    return request


def guard_complete(
    request: Request | None,
    response: Response | None,
    *,
    request_id: str,
    response_id: str,
) -> tuple[Request, Response]:
    """Compare-and-swap precondition for completion; returns the current pair."""
    if request is None:
        raise NotFound(f"Request {request_id} not found", request_id=request_id)
    if (
        response is None
        or response.id != response_id
        or response.request_id != request_id
        or response.completed_at is not None
        or request.status != ANSWERED
    ):
        raise AlreadyCompleted(
            f"Request {request_id} was already completed",
            request_id=request_id,
            response_id=response_id,
        )
    return request, response


def check_invariants(request: Request, response: Response | None, *, allow_self_answer: bool = True) -> None:
    """Raise `InvariantViolation` if the stored pair breaks the status rules."""
    rid = request.id
    if response is not None and response.request_id != rid:
        raise InvariantViolation(
            f"Response {response.id} is stored under request {rid} but points at {response.request_id}",
            request_id=rid,
            response_id=response.id,
        )

    if request.status == ACTIVE:
        ok = response is None
    elif request.status == ANSWERED:
        ok = response is not None and response.completed_at is None
    elif request.status == COMPLETED:
        ok = response is not None and response.completed_at is not None
    else:
        ok = False
    if not ok:
        raise InvariantViolation(
            f"Request {rid} is '{request.status}' but its response state does not match",
            request_id=rid,
        )

    if not allow_self_answer and response is not None and response.responder_id == request.owner_id:
        raise InvariantViolation(f"Request {rid} was answered by its owner", request_id=rid, response_id=response.id)
