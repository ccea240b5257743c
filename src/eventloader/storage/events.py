"""Event sink and per-source cursors."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

from eventloader.storage.connection import get_connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """A single event emitted by a source adapter.

    ``payload`` is the serialized record as the adapter produced it. The
    loader and the sink never look inside it.
    """

    id: int
    source_name: str
    payload: str
    created_at: str | None = None


class EventStorage(ABC):
    """Durable event sink that also owns the per-source cursor."""

    @abstractmethod
    def store(self, events: list[Event]) -> int:
        """Persist a batch of events, all or nothing.

        Returns the number of events newly stored; events already present are
        skipped and not counted. When the batch is rejected the cursor of
        every source in it is left unchanged.
        """

    @abstractmethod
    def last_event_id(self, source_name: str) -> int | None:
        """Return the highest stored event id for a source, or None."""


def _validate_batch(events: list[Event]) -> None:
    for event in events:
        if not isinstance(event, Event):
            raise ValueError(f"Expected Event, got {type(event).__name__}")
        if isinstance(event.id, bool) or not isinstance(event.id, int):
            raise ValueError(f"Event id must be an integer, got {event.id!r}")
        if not event.source_name:
            raise ValueError(f"Event {event.id} has no source_name")


class SQLiteEventStorage(EventStorage):
    """Event sink backed by the shared SQLite database."""

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path

    def store(self, events: list[Event]) -> int:
        if not events:
            return 0
        _validate_batch(events)

        now = datetime.now(timezone.utc).isoformat()
        highest: dict[str, int] = {}
        for event in events:
            highest[event.source_name] = max(highest.get(event.source_name, event.id), event.id)

        with get_connection(self._database_path) as conn:
            inserted = conn.executemany(
                "INSERT INTO events (source_name, id, payload, created_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(source_name, id) DO NOTHING",
                [(e.source_name, e.id, e.payload, now) for e in events],
            ).rowcount
            # Cursor only moves forward
            conn.executemany(
                "INSERT INTO cursors (source_name, last_event_id, updated_at) "
                "VALUES (?, ?, ?) "
                "ON CONFLICT(source_name) DO UPDATE SET "
                "last_event_id = MAX(cursors.last_event_id, excluded.last_event_id), "
                "updated_at = excluded.updated_at",
                [(source, last_id, now) for source, last_id in highest.items()],
            )
        logger.debug(
            "Stored %d of %d events across %d source(s)", inserted, len(events), len(highest)
        )
        return inserted

    def last_event_id(self, source_name: str) -> int | None:
        with get_connection(self._database_path) as conn:
            row = conn.execute(
                "SELECT last_event_id FROM cursors WHERE source_name = ?",
                (source_name,),
            ).fetchone()
        return row["last_event_id"] if row else None

    def list_events(self, source_name: str | None = None, limit: int = 10) -> list[Event]:
        """Return the most recently stored events, newest first."""
        sql = "SELECT id, source_name, payload, created_at FROM events"
        params: list = []
        if source_name is not None:
            sql += " WHERE source_name = ?"
            params.append(source_name)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with get_connection(self._database_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            Event(
                id=row["id"],
                source_name=row["source_name"],
                payload=row["payload"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
