"""Tests for eventloader.storage — schema, connection, and constraints."""

from __future__ import annotations

import sqlite3

import pytest

from eventloader.storage.connection import get_connection
from eventloader.storage.schema import init_db

EXPECTED_TABLES = {"events", "cursors", "locks", "request_times", "loader_runs"}

EXPECTED_INDEXES = {
    "idx_events_created_at",
    "idx_locks_expires_at",
    "idx_loader_runs_started_at",
}


@pytest.fixture()
def db_path(tmp_path):
    """Return a database path inside a temporary directory."""
    return str(tmp_path / "test.db")


@pytest.fixture()
def initialized_db(db_path):
    """Initialize the database and return the path."""
    init_db(db_path)
    return db_path


def _insert_event(conn: sqlite3.Connection, *, source: str = "src-a", event_id: int = 1) -> None:
    """Insert a minimal valid event row."""
    conn.execute(
        "INSERT INTO events (source_name, id, payload, created_at) VALUES (?, ?, ?, ?)",
        (source, event_id, "{}", "2025-01-01T00:00:00+00:00"),
    )


# --- Table and index existence ---


def test_init_db_creates_all_tables(initialized_db):
    with get_connection(initialized_db) as conn:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        ).fetchall()
        table_names = {row["name"] for row in rows}
    assert EXPECTED_TABLES == table_names


def test_init_db_is_idempotent(db_path):
    init_db(db_path)
    init_db(db_path)  # Should not raise


def test_init_db_creates_indexes(initialized_db):
    with get_connection(initialized_db) as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='index' AND name LIKE 'idx_%'").fetchall()
        index_names = {row["name"] for row in rows}
    assert EXPECTED_INDEXES == index_names


def test_init_db_unreachable_path_raises(tmp_path):
    with pytest.raises(sqlite3.OperationalError):
        init_db(str(tmp_path / "missing-dir" / "test.db"))


# --- Pragmas ---


def test_wal_mode_enabled(initialized_db):
    with get_connection(initialized_db) as conn:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert mode == "wal"


def test_foreign_keys_enabled(initialized_db):
    with get_connection(initialized_db) as conn:
        fk = conn.execute("PRAGMA foreign_keys").fetchone()[0]
    assert fk == 1


# --- Constraint enforcement ---


def test_same_event_id_allowed_in_different_sources(initialized_db):
    with get_connection(initialized_db) as conn:
        _insert_event(conn, source="src-a", event_id=7)
        _insert_event(conn, source="src-b", event_id=7)
        count = conn.execute("SELECT COUNT(*) FROM events WHERE id = 7").fetchone()[0]
    assert count == 2


def test_event_id_unique_within_source(initialized_db):
    with pytest.raises(sqlite3.IntegrityError):
        with get_connection(initialized_db) as conn:
            _insert_event(conn, source="src-a", event_id=7)
            _insert_event(conn, source="src-a", event_id=7)


def test_lock_resource_name_unique(initialized_db):
    with pytest.raises(sqlite3.IntegrityError):
        with get_connection(initialized_db) as conn:
            conn.execute(
                "INSERT INTO locks (resource_name, token, acquired_at, expires_at) VALUES (?, ?, ?, ?)",
                ("src-a", "t1", 100, 130),
            )
            conn.execute(
                "INSERT INTO locks (resource_name, token, acquired_at, expires_at) VALUES (?, ?, ?, ?)",
                ("src-a", "t2", 100, 130),
            )


def test_check_constraint_run_status(initialized_db):
    with pytest.raises(sqlite3.IntegrityError):
        with get_connection(initialized_db) as conn:
            conn.execute(
                "INSERT INTO loader_runs (id, started_at, finished_at, status, result) "
                "VALUES (?, ?, ?, ?, ?)",
                ("r-1", "", "", "unknown", "{}"),
            )


# --- Connection behavior ---


def test_connection_commits_on_success(initialized_db):
    with get_connection(initialized_db) as conn:
        _insert_event(conn)

    # Read from a fresh connection to confirm persistence
    with get_connection(initialized_db) as conn:
        row = conn.execute("SELECT id FROM events WHERE source_name = ?", ("src-a",)).fetchone()
    assert row is not None
    assert row["id"] == 1


def test_connection_rolls_back_on_error(initialized_db):
    with pytest.raises(RuntimeError):
        with get_connection(initialized_db) as conn:
            _insert_event(conn)
            raise RuntimeError("force rollback")

    with get_connection(initialized_db) as conn:
        row = conn.execute("SELECT id FROM events WHERE source_name = ?", ("src-a",)).fetchone()
    assert row is None


def test_immediate_connection_commits_on_success(initialized_db):
    with get_connection(initialized_db, immediate=True) as conn:
        assert conn.in_transaction
        _insert_event(conn)

    with get_connection(initialized_db) as conn:
        count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
    assert count == 1


def test_immediate_connection_rolls_back_on_error(initialized_db):
    with pytest.raises(RuntimeError):
        with get_connection(initialized_db, immediate=True) as conn:
            _insert_event(conn)
            raise RuntimeError("force rollback")

    with get_connection(initialized_db) as conn:
        count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
    assert count == 0


def test_immediate_connection_blocks_other_writers(initialized_db):
    """A second writer cannot get in while an immediate transaction is open."""
    with get_connection(initialized_db, immediate=True) as conn:
        _insert_event(conn)
        other = sqlite3.connect(initialized_db, timeout=0)
        try:
            with pytest.raises(sqlite3.OperationalError, match="locked"):
                other.execute("BEGIN IMMEDIATE")
        finally:
            other.close()


def test_row_factory_returns_row_objects(initialized_db):
    with get_connection(initialized_db) as conn:
        _insert_event(conn)
        row = conn.execute("SELECT source_name, id FROM events").fetchone()
    assert row["source_name"] == "src-a"
    assert row["id"] == 1
