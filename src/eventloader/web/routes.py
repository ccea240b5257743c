"""API route handlers for the status API."""

from __future__ import annotations

import logging
import math
import sqlite3

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from eventloader.storage.connection import get_connection
from eventloader.web.models import (
    EventListResponse,
    LoaderRunListResponse,
    SourceListResponse,
)
from eventloader.web.queries import list_events, list_loader_runs, list_sources

logger = logging.getLogger(__name__)

router = APIRouter()
health_router = APIRouter()


@health_router.get("/health")
def health(request: Request) -> JSONResponse:
    """Check database connectivity and return health status."""
    database_path = request.app.state.database_path
    try:
        with get_connection(database_path) as conn:
            conn.execute("SELECT 1 FROM locks LIMIT 1")
        return JSONResponse({"status": "healthy", "database": "ok"})
    except (sqlite3.Error, OSError) as exc:
        logger.warning("Health check failed: %s", exc)
        return JSONResponse(
            {"status": "unhealthy", "database": "error", "detail": str(exc)},
            status_code=503,
        )


@router.get("/sources", response_model=SourceListResponse)
def sources(request: Request) -> SourceListResponse:
    database_path = request.app.state.database_path
    rows = list_sources(database_path)
    return SourceListResponse(sources=rows, total=len(rows))


@router.get("/events", response_model=EventListResponse)
def events(
    request: Request,
    source: str | None = None,
    limit: int = Query(50, ge=1, le=500),
) -> EventListResponse:
    database_path = request.app.state.database_path
    rows, total = list_events(database_path, source_name=source, limit=limit)
    return EventListResponse(events=rows, total=total)


@router.get("/runs", response_model=LoaderRunListResponse)
def runs(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
) -> LoaderRunListResponse:
    database_path = request.app.state.database_path
    rows, total = list_loader_runs(database_path, page=page, per_page=per_page)
    pages = math.ceil(total / per_page) if total else 0
    return LoaderRunListResponse(
        runs=rows,
        total=total,
        page=page,
        per_page=per_page,
        pages=pages,
    )
