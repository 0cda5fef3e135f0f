"""
API routes.

Endpoints:
- POST   `/api/requests`: open a request at a location.
- GET    `/api/requests/nearby`: active requests around a point (map markers).
- GET    `/api/requests/{request_id}`: request + response detail.
- DELETE `/api/requests/{request_id}`: owner-only delete (cascades to the response).
- POST   `/api/requests/{request_id}/responses`: answer a request.
- POST   `/api/requests/{request_id}/complete`: mark an answered request completed.
- GET    `/api/me/requests`, `/api/me/responses`: the caller's history.
- GET    `/api/settings`: public settings for the map UI.

The caller's identity comes from the `X-User-Id` header, set by the authenticating
proxy in front of this service. Routes never authenticate on their own.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, Header, HTTPException, Query
from pydantic import BaseModel

from nearask.config.settings import get_settings
from nearask.domain.errors import (
    AlreadyAnswered,
    AlreadyCompleted,
    Forbidden,
    InvalidTransition,
    LifecycleError,
    Mismatch,
    NotFound,
)
from nearask.domain.models import Coordinate, NearbyRequest, Request, RequestDetail, RequestDraft, Response
from nearask.lifecycle.service import RequestService, build_service

router = APIRouter()

_STATUS_BY_ERROR: dict[type[LifecycleError], int] = {
    NotFound: 404,
    Forbidden: 403,
    InvalidTransition: 409,
    AlreadyAnswered: 409,
    AlreadyCompleted: 409,
    Mismatch: 400,
}


class ResponseSubmission(BaseModel):
    comment: str


class CompletionRequest(BaseModel):
    response_id: str


class NearbyResult(BaseModel):
    center: Coordinate
    radius_km: float
    results: list[NearbyRequest]


@lru_cache
def _service() -> RequestService:
    return build_service(get_settings())


def _http_error(exc: LifecycleError) -> HTTPException:
    status = _STATUS_BY_ERROR.get(type(exc), 500)
    return HTTPException(status_code=status, detail=exc.as_dict())


def _validation_error(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail={"code": "VALIDATION_ERROR", "message": str(exc)})


def _require_user(user_id: str | None) -> str:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail={"code": "UNAUTHENTICATED", "message": "X-User-Id header is required."})
    return user_id.strip()


@router.post("/api/requests", response_model=Request, status_code=201)
def post_request(draft: RequestDraft, x_user_id: str | None = Header(default=None)) -> Request:
    """Open a new request owned by the caller."""
    user_id = _require_user(x_user_id)
    try:
        return _service().create_request(user_id, draft)
    except ValueError as e:
        raise _validation_error(e) from e


@router.get("/api/requests/nearby", response_model=NearbyResult)
def get_nearby_requests(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    radius_km: float | None = Query(default=None),
) -> NearbyResult:
    """Return active requests around (lat, lon), nearest first."""
    service = _service()
    center = Coordinate(lat=lat, lon=lon)
    radius = service.settings.proximity.default_radius_km if radius_km is None else radius_km
    results = service.find_nearby(center, radius)
    return NearbyResult(center=center, radius_km=min(radius, service.settings.proximity.max_radius_km), results=results)


@router.get("/api/requests/{request_id}", response_model=RequestDetail)
def get_request_detail(request_id: str) -> RequestDetail:
    try:
        return _service().get_request_detail(request_id)
    except LifecycleError as e:
        raise _http_error(e) from e


@router.delete("/api/requests/{request_id}", status_code=204)
def delete_request(request_id: str, x_user_id: str | None = Header(default=None)) -> None:
    """Delete the caller's request (and its response, if any)."""
    user_id = _require_user(x_user_id)
    try:
        _service().delete_request(request_id, user_id)
    except LifecycleError as e:
        raise _http_error(e) from e


@router.post("/api/requests/{request_id}/responses", response_model=Response, status_code=201)
def post_response(
    request_id: str, body: ResponseSubmission, x_user_id: str | None = Header(default=None)
) -> Response:
    """Answer an active request as the caller."""
    user_id = _require_user(x_user_id)
    try:
        return _service().submit_response(request_id, user_id, body.comment)
    except LifecycleError as e:
        raise _http_error(e) from e
    except ValueError as e:
        raise _validation_error(e) from e


@router.post("/api/requests/{request_id}/complete", response_model=Response)
def post_complete(request_id: str, body: CompletionRequest, x_user_id: str | None = Header(default=None)) -> Response:
    """Mark the caller's answered request as completed."""
    user_id = _require_user(x_user_id)
    try:
        return _service().complete_request(request_id, body.response_id, actor_id=user_id)
    except LifecycleError as e:
        raise _http_error(e) from e


@router.get("/api/me/requests")
def get_my_requests(x_user_id: str | None = Header(default=None)) -> dict:
    """Return the caller's requests (every status), newest first."""
    user_id = _require_user(x_user_id)
    requests = _service().list_owner_requests(user_id)
    return {"requests": [r.model_dump(mode="json") for r in requests]}


@router.get("/api/me/responses")
def get_my_responses(x_user_id: str | None = Header(default=None)) -> dict:
    """Return the answers the caller has given, newest first."""
    user_id = _require_user(x_user_id)
    responses = _service().list_responder_responses(user_id)
    return {"responses": [r.model_dump(mode="json") for r in responses]}


@router.get("/api/settings")
def get_public_settings() -> dict:
    """Return safe-to-expose settings for UI defaults (storage location omitted)."""
    settings = _service().settings
    return {
        "app": {"name": settings.app.name},
        "proximity": settings.proximity.model_dump(mode="json"),
        "lifecycle": settings.lifecycle.model_dump(mode="json"),
    }
