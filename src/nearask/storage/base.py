"""
Storage collaborator contract + shared atomic write primitives.

`RequestStore` is what the lifecycle service talks to. `LockingRequestStore`
implements the three multi-step writes once, on top of small backend hooks
(`_load`, `_save`, `_insert`, `_remove`, and `_atomic` for the locking scope):

- every write for a request id runs inside `_atomic(request_id)`, by default that
  id's own lock (compare-and-swap: the status read under the lock must still
  match what the writer expects),
- writes for different ids use different locks and never wait on each other,
- the consistency guard runs inside the lock, `check_invariants()` after the
  new state is built and before it is saved,
- a guard rejection (lost race) is logged at WARNING before it propagates.

Deletes skip the consistency checks so an owner can always remove a broken pair.

Reads take no per-request lock; they may return a slightly stale snapshot.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import ContextManager, Iterator, Protocol

from nearask.core.time import advance
from nearask.domain.errors import AlreadyAnswered, AlreadyCompleted, NotFound
from nearask.domain.models import ANSWERED, COMPLETED, Request, Response
from nearask.lifecycle.guard import check_invariants, guard_answer, guard_complete

logger = logging.getLogger(__name__)


class RequestStore(Protocol):
    def add_request(self, request: Request) -> None: ...

    def get_request(self, request_id: str) -> Request | None: ...

    def get_stored_request(self, request_id: str) -> Request | None: ...

    def get_response(self, response_id: str) -> Response | None: ...

    def get_response_for_request(self, request_id: str) -> Response | None: ...

    def get_active_requests(self) -> list[Request]: ...

    def list_requests_by_owner(self, owner_id: str) -> list[Request]: ...

    def list_responses_by_responder(self, responder_id: str) -> list[Response]: ...

    def create_response_and_mark_answered(
        self, request_id: str, response: Response, *, now: datetime | None = None
    ) -> Request: ...

    def mark_completed(
        self, request_id: str, response_id: str, *, now: datetime | None = None
    ) -> tuple[Request, Response]: ...

    def delete_request_and_response(self, request_id: str) -> Response | None: ...


class LockRegistry:
    """One `threading.Lock` per key, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        # The registry lock is held only for bookkeeping, never for the caller's critical section.
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
                self._users[key] = 0
            self._users[key] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._locks[key]
                    del self._users[key]


class LockingRequestStore(ABC):
    def __init__(self, *, allow_self_answer: bool = True) -> None:
        self._locks = LockRegistry()
        self._allow_self_answer = allow_self_answer

    # Backend hooks. `_load` returns (None, None) for an unknown id.
    @abstractmethod
    def _load(self, request_id: str) -> tuple[Request | None, Response | None]: ...

    @abstractmethod
    def _insert(self, request: Request) -> None: ...

    @abstractmethod
    def _save(self, request: Request, response: Response | None) -> None: ...

    @abstractmethod
    def _remove(self, request_id: str) -> None: ...

    def _load_unchecked(self, request_id: str) -> tuple[Request | None, Response | None]:
        """Like `_load`, but returns a stored pair even when it breaks the status rules."""
        return self._load(request_id)

    def _atomic(self, request_id: str) -> ContextManager[None]:
        """The atomic unit for one request id. Backends shared between processes widen it."""
        return self._locks.hold(request_id)

    def get_request(self, request_id: str) -> Request | None:
        return self._load(request_id)[0]

    def get_stored_request(self, request_id: str) -> Request | None:
        return self._load_unchecked(request_id)[0]

    def get_response_for_request(self, request_id: str) -> Response | None:
        request, response = self._load(request_id)
        return response if request is not None else None

    def add_request(self, request: Request) -> None:
        with self._atomic(request.id):
            existing, _ = self._load_unchecked(request.id)
            if existing is not None:
                raise ValueError(f"Request {request.id} already exists")
            check_invariants(request, None)
            self._insert(request)

    def create_response_and_mark_answered(
        self, request_id: str, response: Response, *, now: datetime | None = None
    ) -> Request:
        with self._atomic(request_id):
            current, existing = self._load(request_id)
            try:
                current = guard_answer(current, existing, request_id=request_id)
            except AlreadyAnswered:
                logger.warning(
                    "Answer %s by %s to request %s lost the race", response.id, response.responder_id, request_id
                )
                raise
            updated = current.model_copy(
                update={"status": ANSWERED, "updated_at": advance(current.updated_at, now)}
            )
            check_invariants(updated, response, allow_self_answer=self._allow_self_answer)
            self._save(updated, response)
        logger.info("Request %s answered by %s (response %s)", request_id, response.responder_id, response.id)
        return updated

    def mark_completed(
        self, request_id: str, response_id: str, *, now: datetime | None = None
    ) -> tuple[Request, Response]:
        with self._atomic(request_id):
            current, existing = self._load(request_id)
            try:
                current, existing = guard_complete(current, existing, request_id=request_id, response_id=response_id)
            except AlreadyCompleted:
                logger.warning("Completion of request %s (response %s) lost the race", request_id, response_id)
                raise
            stamp = advance(current.updated_at, now)
            completed_at = advance(existing.created_at, stamp)
            updated = current.model_copy(update={"status": COMPLETED, "updated_at": stamp})
            finished = existing.model_copy(update={"completed_at": completed_at})
            check_invariants(updated, finished, allow_self_answer=self._allow_self_answer)
            self._save(updated, finished)
        logger.info("Request %s completed (response %s)", request_id, response_id)
        return updated, finished

    def delete_request_and_response(self, request_id: str) -> Response | None:
        """Remove a request and its response together, whatever state they are in; returns the removed response."""
        with self._atomic(request_id):
            current, existing = self._load_unchecked(request_id)
            if current is None:
                raise NotFound(f"Request {request_id} not found", request_id=request_id)
            self._remove(request_id)
        logger.info("Request %s deleted (cascade response=%s)", request_id, existing.id if existing else None)
        return existing
