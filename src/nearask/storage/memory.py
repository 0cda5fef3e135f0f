"""
Process-local storage collaborator.

Used by tests and by the API when `storage.backend: memory`. Dicts keep
insertion order, so listings come back in creation order without sorting.
"""

from __future__ import annotations

import threading

from nearask.domain.models import ACTIVE, Request, Response
from nearask.storage.base import LockingRequestStore


class InMemoryRequestStore(LockingRequestStore):
    def __init__(self, *, allow_self_answer: bool = True) -> None:
        super().__init__(allow_self_answer=allow_self_answer)
        self._requests: dict[str, Request] = {}
        self._responses: dict[str, Response] = {}  # keyed by request_id
        # Guards the containers themselves; held only for single dict operations.
        self._table_lock = threading.Lock()

    def _load(self, request_id: str) -> tuple[Request | None, Response | None]:
        with self._table_lock:
            return self._requests.get(request_id), self._responses.get(request_id)

    def _insert(self, request: Request) -> None:
        with self._table_lock:
            self._requests[request.id] = request

    def _save(self, request: Request, response: Response | None) -> None:
        with self._table_lock:
            self._requests[request.id] = request
            if response is None:
                self._responses.pop(request.id, None)
            else:
                self._responses[request.id] = response

    def _remove(self, request_id: str) -> None:
        with self._table_lock:
            self._requests.pop(request_id, None)
            self._responses.pop(request_id, None)

    def _snapshot(self) -> tuple[list[Request], list[Response]]:
        with self._table_lock:
            return list(self._requests.values()), list(self._responses.values())

    def get_response(self, response_id: str) -> Response | None:
        _, responses = self._snapshot()
        return next((r for r in responses if r.id == response_id), None)

    def get_active_requests(self) -> list[Request]:
        requests, _ = self._snapshot()
        return [r for r in requests if r.status == ACTIVE]

    def list_requests_by_owner(self, owner_id: str) -> list[Request]:
        requests, _ = self._snapshot()
        return [r for r in requests if r.owner_id == owner_id]

    def list_responses_by_responder(self, responder_id: str) -> list[Response]:
        _, responses = self._snapshot()
        return [r for r in responses if r.responder_id == responder_id]
