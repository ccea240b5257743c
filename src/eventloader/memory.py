"""In-memory backends for a loader that needs no database.

These hold their state in the current process only, so they give no
coordination between processes. They are used for demo runs and tests.
"""

from __future__ import annotations

import logging
import threading

from eventloader.coordination.lease import (
    DEFAULT_LEASE_TTL_SECONDS,
    Lease,
    LeaseManager,
    _new_token,
    _now,
)
from eventloader.coordination.throttle import ThrottleTracker, current_time_ms
from eventloader.storage.events import Event, EventStorage, _validate_batch

logger = logging.getLogger(__name__)


class InMemoryEventStorage(EventStorage):
    """Event sink holding events and cursors in dictionaries."""

    def __init__(self) -> None:
        self._events: dict[str, dict[int, Event]] = {}
        self._cursors: dict[str, int] = {}
        self._lock = threading.Lock()

    def store(self, events: list[Event]) -> int:
        if not events:
            return 0
        # Validate everything before touching state
        _validate_batch(events)

        inserted = 0
        with self._lock:
            for event in events:
                by_id = self._events.setdefault(event.source_name, {})
                if event.id not in by_id:
                    by_id[event.id] = event
                    inserted += 1
                current = self._cursors.get(event.source_name)
                if current is None or event.id > current:
                    self._cursors[event.source_name] = event.id
        logger.debug("Stored %d of %d events in memory", inserted, len(events))
        return inserted

    def last_event_id(self, source_name: str) -> int | None:
        return self._cursors.get(source_name)

    def events(self, source_name: str | None = None) -> list[Event]:
        """Return stored events in id order, for one source or all of them."""
        with self._lock:
            if source_name is not None:
                by_id = self._events.get(source_name, {})
                return [by_id[i] for i in sorted(by_id)]
            result: list[Event] = []
            for name in sorted(self._events):
                by_id = self._events[name]
                result.extend(by_id[i] for i in sorted(by_id))
            return result

    def source_names(self) -> list[str]:
        return sorted(self._events)

    def clear(self, source_name: str | None = None) -> None:
        """Forget stored events and cursors (for one source, or all)."""
        with self._lock:
            if source_name is None:
                self._events.clear()
                self._cursors.clear()
            else:
                self._events.pop(source_name, None)
                self._cursors.pop(source_name, None)


class InMemoryLeaseManager(LeaseManager):
    """Lease manager for loaders sharing a single process."""

    def __init__(self, default_ttl: int = DEFAULT_LEASE_TTL_SECONDS) -> None:
        super().__init__(default_ttl)
        self._leases: dict[str, Lease] = {}
        self._lock = threading.Lock()

    def _acquire(self, resource: str, ttl: int) -> Lease | None:
        with self._lock:
            now = _now()
            current = self._leases.get(resource)
            if current is not None and current.expires_at > now:
                logger.debug("Resource '%s' is already locked", resource)
                return None
            lease = Lease(
                resource=resource,
                token=_new_token(),
                acquired_at=now,
                expires_at=now + ttl,
            )
            self._leases[resource] = lease
        logger.debug("Acquired lock for resource '%s' until %d", resource, lease.expires_at)
        return lease

    def release(self, resource: str, token: str | None = None) -> bool:
        with self._lock:
            current = self._leases.get(resource)
            if current is None or (token is not None and current.token != token):
                logger.debug("No lock found to release for resource '%s'", resource)
                return False
            del self._leases[resource]
        logger.debug("Released lock for resource '%s'", resource)
        return True

    def is_locked(self, resource: str) -> bool:
        with self._lock:
            current = self._leases.get(resource)
            return current is not None and current.expires_at > _now()

    def remaining_time(self, resource: str) -> int | None:
        """Seconds left on the live lease for ``resource``, or None."""
        with self._lock:
            current = self._leases.get(resource)
            if current is None:
                return None
            remaining = current.expires_at - _now()
        return remaining if remaining > 0 else None


class InMemoryThrottleTracker(ThrottleTracker):
    """Request times kept in a dictionary for a single process."""

    def __init__(self) -> None:
        self._times: dict[str, int] = {}

    def record_request(self, source_name: str, timestamp_ms: int | None = None) -> None:
        if timestamp_ms is None:
            timestamp_ms = current_time_ms()
        self._times[source_name] = timestamp_ms
        logger.debug("Recorded request time for %s: %d ms", source_name, timestamp_ms)

    def last_request_time(self, source_name: str) -> int | None:
        return self._times.get(source_name)

    def clear(self) -> None:
        self._times.clear()
