"""Read-only query functions for the status API."""

from __future__ import annotations

import json
import time

from eventloader.web.deps import get_readonly_connection


# ---------------------------------------------------------------------------
# list_sources
# ---------------------------------------------------------------------------
def list_sources(database_path: str) -> list[dict]:
    """Return cursor, pacing, and lease state for every source seen so far."""
    now = int(time.time())
    with get_readonly_connection(database_path) as conn:
        rows = conn.execute(
            "WITH names AS ("
            "  SELECT source_name AS name FROM cursors "
            "  UNION SELECT source_name FROM request_times "
            "  UNION SELECT resource_name FROM locks"
            ") "
            "SELECT n.name, c.last_event_id, r.last_request_time, l.expires_at, "
            "(SELECT COUNT(*) FROM events e WHERE e.source_name = n.name) AS event_count "
            "FROM names n "
            "LEFT JOIN cursors c ON c.source_name = n.name "
            "LEFT JOIN request_times r ON r.source_name = n.name "
            "LEFT JOIN locks l ON l.resource_name = n.name AND l.expires_at > ? "
            "ORDER BY n.name",
            (now,),
        ).fetchall()

    return [
        {
            "name": row["name"],
            "last_event_id": row["last_event_id"],
            "event_count": row["event_count"],
            "last_request_time": row["last_request_time"],
            "locked": row["expires_at"] is not None,
            "lock_expires_at": row["expires_at"],
        }
        for row in rows
    ]


# ---------------------------------------------------------------------------
# list_events
# ---------------------------------------------------------------------------
def list_events(
    database_path: str, source_name: str | None = None, limit: int = 50
) -> tuple[list[dict], int]:
    """Return the newest events (optionally for one source) and the total count."""
    where = ""
    params: list = []
    if source_name is not None:
        where = " WHERE source_name = ?"
        params.append(source_name)

    with get_readonly_connection(database_path) as conn:
        total = conn.execute(f"SELECT COUNT(*) FROM events{where}", params).fetchone()[0]  # noqa: S608
        rows = conn.execute(
            f"SELECT id, source_name, payload, created_at FROM events{where} "  # noqa: S608
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            [*params, limit],
        ).fetchall()

    return [dict(row) for row in rows], total


# ---------------------------------------------------------------------------
# list_loader_runs
# ---------------------------------------------------------------------------
def list_loader_runs(
    database_path: str, page: int = 1, per_page: int = 50
) -> tuple[list[dict], int]:
    """Return a paginated list of loader runs, newest first."""
    offset = (page - 1) * per_page
    with get_readonly_connection(database_path) as conn:
        total = conn.execute("SELECT COUNT(*) FROM loader_runs").fetchone()[0]
        rows = conn.execute(
            "SELECT id, started_at, finished_at, status, result, error "
            "FROM loader_runs ORDER BY started_at DESC LIMIT ? OFFSET ?",
            (per_page, offset),
        ).fetchall()

    runs = []
    for row in rows:
        run = dict(row)
        run["result"] = json.loads(run["result"])
        runs.append(run)
    return runs, total
