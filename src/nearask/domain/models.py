"""
Domain models (Pydantic).

These types are the stable "contract" between layers:
- inputs from the API/CLI (`RequestDraft`, `ResponseDraft`)
- stored entities (`Request`, `Response`)
- query output (`NearbyRequest`, `RequestDetail`)

Stored entities are frozen: storage hands out snapshots and every state change
goes through `model_copy(update=...)` inside a storage write primitive. A
request's `location` is never part of such an update.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

RequestStatus = Literal["active", "answered", "completed"]

ACTIVE: RequestStatus = "active"
ANSWERED: RequestStatus = "answered"
COMPLETED: RequestStatus = "completed"


class Coordinate(BaseModel):
    """A geographic point in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lon: float = Field(..., ge=-180, le=180, allow_inf_nan=False)


class RequestDraft(BaseModel):
    """What a user submits to open a new request."""

    title: str = Field(..., min_length=1)
    description: str = ""
    location: Coordinate

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class ResponseDraft(BaseModel):
    """The answer text a responder submits."""

    comment: str = Field(..., min_length=1)

    @field_validator("comment", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class Request(BaseModel):
    """A location-anchored question posted by a user."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    title: str
    description: str = ""
    location: Coordinate
    status: RequestStatus = ACTIVE
    created_at: datetime
    updated_at: datetime


class Response(BaseModel):
    """The single answer submitted against a request."""

    model_config = ConfigDict(frozen=True)

    id: str
    request_id: str
    responder_id: str
    comment: str
    created_at: datetime
    completed_at: datetime | None = None


class NearbyRequest(BaseModel):
    """One proximity hit: the request plus its distance from the query center."""

    request: Request
    distance_km: float = Field(..., ge=0)


class RequestDetail(BaseModel):
    """A request together with its response, if one exists."""

    request: Request
    response: Response | None = None
