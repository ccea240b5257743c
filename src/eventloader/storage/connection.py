"""SQLite connection management."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Generator

BUSY_TIMEOUT_SECONDS = 10.0


@contextmanager
def get_connection(
    database_path: str, *, immediate: bool = False
) -> Generator[sqlite3.Connection, None, None]:
    """Open a SQLite connection with WAL mode and foreign keys enabled.

    Commits on clean exit, rolls back on exception, and always closes.

    With ``immediate=True`` the whole block runs inside ``BEGIN IMMEDIATE``,
    so the write lock is held from the first statement until commit and no
    other connection can interleave writes.
    """
    conn = sqlite3.connect(
        database_path,
        timeout=BUSY_TIMEOUT_SECONDS,
        isolation_level=None if immediate else "",
    )
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()
