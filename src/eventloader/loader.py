"""Cycle engine — polls every source in turn under a lease and a throttle.

For each source, on each cycle:

    throttle wait -> lease -> read cursor -> fetch -> record request time
        -> cap -> store -> release lease

A source whose lease is held elsewhere is skipped for the cycle. Errors from
a source are logged and count as zero events; they never stop the cycle or
affect other sources, and the lease is released on every path.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Sequence

from eventloader.coordination.lease import LeaseManager
from eventloader.coordination.throttle import ThrottleTracker
from eventloader.ingestion.adapter import SourceAdapter
from eventloader.storage.events import EventStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoaderSettings:
    """Tuning for the cycle engine."""

    min_request_interval_ms: int = 200
    max_events_per_request: int = 1000
    lock_ttl_seconds: int = 30
    idle_backoff_ms: int = 100


class EventLoader:
    """Loads events from a growing list of sources, one source at a time."""

    def __init__(
        self,
        storage: EventStorage,
        leases: LeaseManager,
        throttle: ThrottleTracker,
        sources: Iterable[SourceAdapter] = (),
        settings: LoaderSettings | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._storage = storage
        self._leases = leases
        self._throttle = throttle
        self._sources: list[SourceAdapter] = list(sources)
        self._settings = settings or LoaderSettings()
        self._stop_event = stop_event or threading.Event()

    @property
    def settings(self) -> LoaderSettings:
        return self._settings

    @property
    def sources(self) -> Sequence[SourceAdapter]:
        return tuple(self._sources)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def add_source(self, source: SourceAdapter) -> EventLoader:
        """Append a source. It is polled from the next cycle on."""
        self._sources.append(source)
        return self

    def stop(self) -> None:
        """Ask the loader to stop before the next source or cycle."""
        self._stop_event.set()

    def load_events(self, cycles: int = 1) -> int:
        """Run ``cycles`` cycles (0 runs until stopped).

        Returns the number of events stored across all cycles.
        """
        total = 0
        completed = 0
        while not self.stopped and (cycles == 0 or completed < cycles):
            loaded = self.run_cycle()
            total += loaded
            completed += 1

            more = cycles == 0 or completed < cycles
            if loaded == 0 and more:
                # Nothing to do anywhere; avoid spinning
                self._stop_event.wait(self._settings.idle_backoff_ms / 1000)

        logger.info("Loader finished after %d cycle(s): %d events loaded", completed, total)
        return total

    def run_cycle(self) -> int:
        """Visit every source once, in order. Returns events stored."""
        loaded = 0
        for source in list(self._sources):
            if self.stopped:
                logger.info("Stop requested; ending cycle early")
                break
            loaded += self._load_source(source)
        return loaded

    def _load_source(self, source: SourceAdapter) -> int:
        settings = self._settings
        name = source.name

        self._throttle.wait_for_minimum_interval(name, settings.min_request_interval_ms)

        with self._leases.hold(name, settings.lock_ttl_seconds) as lease:
            if lease is None:
                logger.info("Source %s is currently being processed by another loader", name)
                return 0

            try:
                last_event_id = self._storage.last_event_id(name)
                try:
                    events = source.fetch(last_event_id)
                finally:
                    # The request went out whether or not it succeeded
                    self._throttle.record_request(name)

                if not events:
                    logger.debug("No new events from source %s", name)
                    return 0

                if len(events) > settings.max_events_per_request:
                    logger.warning(
                        "Source %s returned %d events, more than the maximum allowed (%d); "
                        "the rest will be fetched next cycle",
                        name,
                        len(events),
                        settings.max_events_per_request,
                    )
                    events = events[: settings.max_events_per_request]

                foreign = {e.source_name for e in events if e.source_name != name}
                if foreign:
                    raise ValueError(
                        f"Source {name} returned events for other sources: "
                        f"{', '.join(sorted(map(str, foreign)))}"
                    )

                stored = self._storage.store(events)
            except Exception:
                logger.exception("Error loading events from source %s", name)
                return 0

        if stored < len(events):
            logger.info(
                "Loaded %d events from source %s (%d already stored)",
                stored, name, len(events) - stored,
            )
        else:
            logger.info("Loaded %d events from source %s", stored, name)
        return stored
