"""Pydantic v2 response models for the status API."""

from __future__ import annotations

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------
class SourceStatus(BaseModel):
    name: str
    last_event_id: int | None
    event_count: int
    last_request_time: int | None   # epoch milliseconds
    locked: bool
    lock_expires_at: int | None     # epoch seconds


class SourceListResponse(BaseModel):
    sources: list[SourceStatus]
    total: int


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class EventOut(BaseModel):
    id: int
    source_name: str
    payload: str
    created_at: str


class EventListResponse(BaseModel):
    events: list[EventOut]
    total: int


# ---------------------------------------------------------------------------
# Loader runs
# ---------------------------------------------------------------------------
class LoaderRun(BaseModel):
    id: str
    started_at: str
    finished_at: str
    status: str
    result: dict
    error: str | None


class LoaderRunListResponse(BaseModel):
    runs: list[LoaderRun]
    total: int
    page: int
    per_page: int
    pages: int
