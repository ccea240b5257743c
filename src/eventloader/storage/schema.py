"""Database schema definition and initialization."""

from __future__ import annotations

import logging

from eventloader.storage.connection import get_connection

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
-- Events ingested from sources; ids are only unique within a source
CREATE TABLE IF NOT EXISTS events (
    source_name     TEXT NOT NULL,
    id              INTEGER NOT NULL,
    payload         TEXT NOT NULL,          -- opaque serialized record
    created_at      TEXT NOT NULL,
    PRIMARY KEY (source_name, id)
);

-- Highest stored event id per source
CREATE TABLE IF NOT EXISTS cursors (
    source_name     TEXT PRIMARY KEY,
    last_event_id   INTEGER NOT NULL,
    updated_at      TEXT NOT NULL
);

-- TTL leases giving one loader process exclusive use of a source
CREATE TABLE IF NOT EXISTS locks (
    resource_name   TEXT PRIMARY KEY,
    token           TEXT NOT NULL,
    acquired_at     INTEGER NOT NULL,       -- epoch seconds
    expires_at      INTEGER NOT NULL        -- epoch seconds
);

-- Last request time per source, for pacing
CREATE TABLE IF NOT EXISTS request_times (
    source_name         TEXT PRIMARY KEY,
    last_request_time   INTEGER NOT NULL,   -- epoch milliseconds
    updated_at          TEXT NOT NULL
);

-- Loader run tracking
CREATE TABLE IF NOT EXISTS loader_runs (
    id          TEXT PRIMARY KEY,
    started_at  TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    status      TEXT NOT NULL CHECK (status IN ('success', 'error')),
    result      TEXT NOT NULL,   -- JSON
    error       TEXT
);

-- Indexes: events
CREATE INDEX IF NOT EXISTS idx_events_created_at ON events(created_at);

-- Indexes: locks
CREATE INDEX IF NOT EXISTS idx_locks_expires_at ON locks(expires_at);

-- Indexes: loader_runs
CREATE INDEX IF NOT EXISTS idx_loader_runs_started_at ON loader_runs(started_at);
"""


def init_db(database_path: str) -> None:
    """Create all tables and indexes if they do not already exist.

    Errors propagate: the loader cannot run without its lease and
    request-time tables.
    """
    with get_connection(database_path) as conn:
        conn.executescript(_SCHEMA_SQL)
    logger.info("Database initialized at %s", database_path)
