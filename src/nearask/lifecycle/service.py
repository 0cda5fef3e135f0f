from __future__ import annotations

# Lifecycle orchestration for requests and their single response.
#
# Each public method takes the acting user's id explicitly (the identity
# collaborator has already authenticated it) and follows the same shape:
# 1. validate input,
# 2. optimistic pre-checks on a fresh read (typed failures for the common cases),
# 3. hand the multi-step write to the store, whose atomic primitive re-checks
#    under the request's lock (consistency guard) before committing.

import logging
import uuid
from datetime import datetime
from typing import Callable

from pydantic import ValidationError

from nearask.config.settings import Settings, get_settings
from nearask.core.env import resolve_project_path
from nearask.core.time import utc_now
from nearask.discovery.proximity import build_index
from nearask.domain.errors import Forbidden, Mismatch, NotFound
from nearask.domain.models import (
    ANSWERED,
    COMPLETED,
    Coordinate,
    NearbyRequest,
    Request,
    RequestDetail,
    RequestDraft,
    Response,
    ResponseDraft,
)
from nearask.lifecycle.transitions import INITIAL_STATUS, ensure_transition
from nearask.storage.base import RequestStore
from nearask.storage.json_store import JsonDirectoryStore
from nearask.storage.memory import InMemoryRequestStore

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def build_store(settings: Settings) -> RequestStore:
    """Build the storage collaborator selected by `storage.backend`."""
    allow_self_answer = settings.lifecycle.allow_self_answer
    if settings.storage.backend == "json":
        return JsonDirectoryStore(resolve_project_path(settings.storage.dir), allow_self_answer=allow_self_answer)
    return InMemoryRequestStore(allow_self_answer=allow_self_answer)


def _check_length(field: str, value: str, limit: int) -> None:
    if len(value) > limit:
        raise ValueError(f"{field} must be at most {limit} characters (got {len(value)})")


class RequestService:
    def __init__(
        self,
        store: RequestStore,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock
        self._new_id = id_factory

    @property
    def store(self) -> RequestStore:
        return self._store

    @property
    def settings(self) -> Settings:
        return self._settings

    def _require_request(self, request_id: str) -> Request:
        request = self._store.get_request(request_id)
        if request is None:
            raise NotFound(f"Request {request_id} not found", request_id=request_id)
        return request

    # --- creation / reads -------------------------------------------------

    def create_request(self, owner_id: str, draft: RequestDraft | dict) -> Request:
        """Open a new request at a fixed location."""
        if not owner_id:
            raise ValueError("owner_id is required")
        if not isinstance(draft, RequestDraft):
            draft = RequestDraft.model_validate(draft)
        cfg = self._settings.lifecycle
        _check_length("title", draft.title, cfg.title_max_length)
        _check_length("description", draft.description, cfg.description_max_length)

        now = self._clock()
        request = Request(
            id=self._new_id(),
            owner_id=owner_id,
            title=draft.title,
            description=draft.description,
            location=draft.location,
            status=INITIAL_STATUS,
            created_at=now,
            updated_at=now,
        )
        self._store.add_request(request)
        logger.info("Request %s created by %s at (%s, %s)", request.id, owner_id, request.location.lat, request.location.lon)
        return request

    def get_request_detail(self, request_id: str) -> RequestDetail:
        request = self._require_request(request_id)
        response = self._store.get_response_for_request(request_id)
        return RequestDetail(request=request, response=response)

    def find_nearby(self, center: Coordinate | dict, radius_km: float | None = None) -> list[NearbyRequest]:
        """Active requests around `center`, nearest first (radius defaults from config)."""
        if not isinstance(center, Coordinate):
            center = Coordinate.model_validate(center)
        cfg = self._settings.proximity
        radius = cfg.default_radius_km if radius_km is None else min(float(radius_km), cfg.max_radius_km)
        pool = self._store.get_active_requests()
        return build_index(pool, self._settings).within(center, radius)

    def list_owner_requests(self, owner_id: str) -> list[Request]:
        """Owner's private list (every status), newest first."""
        requests = self._store.list_requests_by_owner(owner_id)
        return sorted(requests, key=lambda r: r.created_at, reverse=True)

    def list_responder_responses(self, responder_id: str) -> list[Response]:
        responses = self._store.list_responses_by_responder(responder_id)
        return sorted(responses, key=lambda r: r.created_at, reverse=True)

    # --- transitions ------------------------------------------------------

    def submit_response(self, request_id: str, responder_id: str, comment: str) -> Response:
        """Answer an active request (active -> answered)."""
        if not responder_id:
            raise ValueError("responder_id is required")
        try:
            draft = ResponseDraft(comment=comment)
        except ValidationError as exc:
            raise ValueError("comment must not be empty") from exc
        _check_length("comment", draft.comment, self._settings.lifecycle.comment_max_length)

        request = self._require_request(request_id)
        ensure_transition(request.status, ANSWERED, request_id=request_id)
        if not self._settings.lifecycle.allow_self_answer and responder_id == request.owner_id:
            raise Forbidden(f"Owner cannot answer their own request {request_id}", request_id=request_id)

        response = Response(
            id=self._new_id(),
            request_id=request_id,
            responder_id=responder_id,
            comment=draft.comment,
            created_at=self._clock(),
        )
        self._store.create_response_and_mark_answered(request_id, response, now=response.created_at)
        return response

    def complete_request(self, request_id: str, response_id: str, *, actor_id: str | None = None) -> Response:
        """Mark an answered request completed (answered -> completed).

        `actor_id=None` means the system is completing; otherwise it must be the owner.
        """
        request = self._require_request(request_id)
        if actor_id is not None and actor_id != request.owner_id:
            raise Forbidden(f"Only the owner can complete request {request_id}", request_id=request_id)
        ensure_transition(request.status, COMPLETED, request_id=request_id)

        current = self._store.get_response_for_request(request_id)
        if current is None or current.id != response_id:
            other = self._store.get_response(response_id)
            if other is None:
                raise NotFound(f"Response {response_id} not found", request_id=request_id, response_id=response_id)
            raise Mismatch(
                f"Response {response_id} belongs to request {other.request_id}, not {request_id}",
                request_id=request_id,
                response_id=response_id,
            )

        _, finished = self._store.mark_completed(request_id, response_id, now=self._clock())
        return finished

    def delete_request(self, request_id: str, requester_id: str) -> None:
        """Owner-only delete, any status; the response goes with it."""
        # Read without the consistency checks: a broken pair must still be removable by its owner.
        request = self._store.get_stored_request(request_id)
        if request is None:
            raise NotFound(f"Request {request_id} not found", request_id=request_id)
        if requester_id != request.owner_id:
            raise Forbidden(f"Only the owner can delete request {request_id}", request_id=request_id)
        self._store.delete_request_and_response(request_id)


def build_service(settings: Settings | None = None) -> RequestService:
    settings = settings or get_settings()
    return RequestService(build_store(settings), settings=settings)

