"""Loader job functions — source configuration, wiring, and run tracking."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone

from eventloader.config import Config
from eventloader.coordination.lease import SQLiteLeaseManager
from eventloader.coordination.throttle import SQLiteThrottleTracker
import eventloader.ingestion  # noqa: F401  — triggers adapter registration
from eventloader.ingestion.adapter import SourceAdapter
from eventloader.ingestion.registry import get_adapter_class, registered_types
from eventloader.loader import EventLoader, LoaderSettings
from eventloader.memory import InMemoryEventStorage, InMemoryLeaseManager, InMemoryThrottleTracker
from eventloader.storage.connection import get_connection
from eventloader.storage.events import SQLiteEventStorage

logger = logging.getLogger(__name__)


def _record_run(
    database_path: str,
    started_at: str,
    result: dict,
    error: str | None = None,
) -> None:
    """Insert a loader run record into the loader_runs table."""
    finished_at = datetime.now(timezone.utc).isoformat()
    status = "error" if error else "success"
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO loader_runs "
            "(id, started_at, finished_at, status, result, error) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                started_at,
                finished_at,
                status,
                json.dumps(result),
                error,
            ),
        )


def load_sources(sources_config_path: str, http_timeout_seconds: int = 30) -> list[SourceAdapter]:
    """Build adapters for every enabled source in the sources config file.

    Expected format:
    {
        "sources": [
            {"type": "url", "name": "github-events", "url": "https://api.github.com/events"},
            ...
        ]
    }
    """
    with open(sources_config_path) as f:
        config = json.load(f)

    adapters: list[SourceAdapter] = []
    seen: set[str] = set()
    for source_config in config.get("sources", []):
        source_type = source_config.get("type", "")
        name = source_config.get("name", "")
        adapter_cls = get_adapter_class(source_type)
        if adapter_cls is None:
            logger.warning(
                "Unknown source type '%s' for '%s' (known types: %s), skipping",
                source_type,
                name,
                ", ".join(registered_types()) or "none",
            )
            continue
        if not source_config.get("enabled", True):
            continue
        if not name:
            logger.warning("Source of type '%s' has no name, skipping", source_type)
            continue
        if name in seen:
            logger.warning("Duplicate source name '%s', skipping", name)
            continue

        adapter = adapter_cls(name, timeout=http_timeout_seconds)
        adapter.configure(source_config)
        adapters.append(adapter)
        seen.add(name)

    logger.info("Configured %d source(s)", len(adapters))
    return adapters


def build_loader(config: Config, stop_event: threading.Event | None = None) -> EventLoader:
    """Wire SQLite-backed storage, leases, and throttling into an EventLoader."""
    sources = load_sources(config.sources_config_path, config.http_timeout_seconds)
    return EventLoader(
        storage=SQLiteEventStorage(config.database_path),
        leases=SQLiteLeaseManager(config.database_path, default_ttl=config.lock_ttl_seconds),
        throttle=SQLiteThrottleTracker(config.database_path),
        sources=sources,
        settings=config.loader_settings(),
        stop_event=stop_event,
    )


def build_in_memory_loader(
    sources_config_path: str,
    settings: LoaderSettings | None = None,
    http_timeout_seconds: int = 30,
    stop_event: threading.Event | None = None,
) -> tuple[EventLoader, InMemoryEventStorage]:
    """Wire a loader that keeps all state in this process.

    Returns the loader and its event storage so callers can inspect what was
    loaded. Leases and pacing only apply within the process.
    """
    settings = settings or LoaderSettings()
    storage = InMemoryEventStorage()
    loader = EventLoader(
        storage=storage,
        leases=InMemoryLeaseManager(default_ttl=settings.lock_ttl_seconds),
        throttle=InMemoryThrottleTracker(),
        sources=load_sources(sources_config_path, http_timeout_seconds),
        settings=settings,
        stop_event=stop_event,
    )
    return loader, storage


def run_loader(
    config: Config,
    stop_event: threading.Event | None = None,
    cycles: int | None = None,
) -> int:
    """Build the loader, run it, and record the run. Returns events loaded."""
    started_at = datetime.now(timezone.utc).isoformat()
    cycles = config.loader_cycles if cycles is None else cycles
    error_msg = None
    loaded = 0

    try:
        loader = build_loader(config, stop_event=stop_event)
        logger.info(
            "Loader starting with %d source(s), cycles=%s",
            len(loader.sources),
            cycles or "unbounded",
        )
        loaded = loader.load_events(cycles)
    except Exception:
        logger.exception("Loader failed")
        error_msg = "Loader failed (see logs)"

    _record_run(
        config.database_path, started_at,
        {"events_loaded": loaded, "cycles": cycles},
        error=error_msg,
    )
    return loaded
