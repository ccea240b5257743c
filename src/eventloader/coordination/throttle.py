"""Per-source request pacing."""

from __future__ import annotations

import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from eventloader.storage.connection import get_connection

logger = logging.getLogger(__name__)


def current_time_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class ThrottleTracker(ABC):
    """Remembers when each source was last requested and spaces requests out."""

    @abstractmethod
    def record_request(self, source_name: str, timestamp_ms: int | None = None) -> None:
        """Record the time of the most recent request to a source (default now)."""

    @abstractmethod
    def last_request_time(self, source_name: str) -> int | None:
        """Return the last request time for a source in ms, or None."""

    def wait_for_minimum_interval(self, source_name: str, min_interval_ms: int) -> int:
        """Block until ``min_interval_ms`` has passed since the last request.

        Returns immediately when there is no previous request or the interval
        has already elapsed. Returns the number of milliseconds slept.
        """
        last = self.last_request_time(source_name)
        if last is None:
            return 0

        elapsed = current_time_ms() - last
        if elapsed >= min_interval_ms:
            return 0

        remaining = min_interval_ms - elapsed
        logger.debug("Throttling %s for %d ms", source_name, remaining)
        time.sleep(remaining / 1000)
        return remaining


class SQLiteThrottleTracker(ThrottleTracker):
    """Tracks the last request time per source in the shared database.

    Every loader process reads the same ``request_times`` table, so the
    minimum interval holds across processes and not only within one. Values
    written by this process are cached and used when the store is
    unavailable.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._cache: dict[str, int] = {}

    def record_request(self, source_name: str, timestamp_ms: int | None = None) -> None:
        if timestamp_ms is None:
            timestamp_ms = current_time_ms()
        self._cache[source_name] = timestamp_ms

        now = datetime.now(timezone.utc).isoformat()
        try:
            with get_connection(self._database_path) as conn:
                conn.execute(
                    "INSERT INTO request_times (source_name, last_request_time, updated_at) "
                    "VALUES (?, ?, ?) "
                    "ON CONFLICT(source_name) DO UPDATE SET "
                    "last_request_time = excluded.last_request_time, "
                    "updated_at = excluded.updated_at",
                    (source_name, timestamp_ms, now),
                )
        except sqlite3.Error as exc:
            logger.error("Error setting last request time for %s: %s", source_name, exc)

    def last_request_time(self, source_name: str) -> int | None:
        cached = self._cache.get(source_name)
        try:
            with get_connection(self._database_path) as conn:
                row = conn.execute(
                    "SELECT last_request_time FROM request_times WHERE source_name = ?",
                    (source_name,),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error retrieving last request time for %s: %s", source_name, exc)
            return cached

        stored = row["last_request_time"] if row else None
        if stored is None:
            return cached
        if cached is None:
            return stored
        return max(stored, cached)
