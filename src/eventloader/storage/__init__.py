"""Storage layer — SQLite database access, schema management, and event sink."""

from eventloader.storage.connection import get_connection
from eventloader.storage.events import Event, EventStorage, SQLiteEventStorage
from eventloader.storage.schema import init_db

__all__ = ["Event", "EventStorage", "SQLiteEventStorage", "get_connection", "init_db"]
