"""TTL leases — mutual exclusion across loader processes.

A lease is live while ``expires_at`` lies in the future; an expired lease is
treated as absent, so a process that dies while holding one blocks its
resource for at most one TTL.

Each acquisition gets a random token. Releasing with that token only removes
the lease that carries it, so a holder that overran its TTL cannot evict the
process that acquired the resource after it.

``SQLiteLeaseManager`` keeps leases in the shared ``locks`` table and is what
independent processes coordinate through.
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator

from eventloader.storage.connection import get_connection

logger = logging.getLogger(__name__)

DEFAULT_LEASE_TTL_SECONDS = 30


@dataclass(frozen=True)
class Lease:
    """A granted lease on a named resource."""

    resource: str
    token: str
    acquired_at: int
    expires_at: int


def _now() -> int:
    return int(time.time())


def _new_token() -> str:
    return uuid.uuid4().hex


def _check_ttl(ttl: int) -> None:
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 1:
        raise ValueError(f"Lease TTL must be a positive number of seconds, got {ttl!r}")


class LeaseManager(ABC):
    """Grants, checks and releases TTL leases on named resources."""

    def __init__(self, default_ttl: int = DEFAULT_LEASE_TTL_SECONDS) -> None:
        _check_ttl(default_ttl)
        self._default_ttl = default_ttl

    def acquire(self, resource: str, ttl: int | None = None) -> Lease | None:
        """Try to take the lease on ``resource``.

        Returns the granted Lease, or None when a live lease already exists
        or the store could not be written. Raises ValueError for a TTL below
        one second; never raises for storage errors.
        """
        ttl = self._default_ttl if ttl is None else ttl
        _check_ttl(ttl)
        return self._acquire(resource, ttl)

    @abstractmethod
    def _acquire(self, resource: str, ttl: int) -> Lease | None:
        """Grant a lease of ``ttl`` seconds unless a live one exists."""

    @abstractmethod
    def release(self, resource: str, token: str | None = None) -> bool:
        """Remove the lease on ``resource``.

        With a token only the lease carrying it is removed. Without one the
        lease is removed whoever holds it. Returns whether a lease was removed.
        """

    @abstractmethod
    def is_locked(self, resource: str) -> bool:
        """Return True if a live lease exists."""

    @contextmanager
    def hold(self, resource: str, ttl: int | None = None) -> Generator[Lease | None, None, None]:
        """Acquire ``resource`` for the duration of a with-block.

        Yields the Lease, or None when it was not granted. A granted lease is
        released on every exit path, including exceptions.
        """
        lease = self.acquire(resource, ttl)
        try:
            yield lease
        finally:
            if lease is not None:
                self.release(resource, lease.token)


class SQLiteLeaseManager(LeaseManager):
    """Lease manager backed by the shared SQLite database."""

    def __init__(self, database_path: str, default_ttl: int = DEFAULT_LEASE_TTL_SECONDS) -> None:
        super().__init__(default_ttl)
        self._database_path = database_path

    def _acquire(self, resource: str, ttl: int) -> Lease | None:
        if self.is_locked(resource):
            logger.debug("Resource '%s' is already locked", resource)
            return None

        self._cleanup_expired()

        token = _new_token()
        try:
            with get_connection(self._database_path, immediate=True) as conn:
                now = _now()
                # Another process may have taken it since the check above
                row = conn.execute(
                    "SELECT 1 FROM locks WHERE resource_name = ? AND expires_at > ? LIMIT 1",
                    (resource, now),
                ).fetchone()
                if row is not None:
                    logger.debug(
                        "Resource '%s' was locked by another process during acquisition",
                        resource,
                    )
                    return None

                conn.execute("DELETE FROM locks WHERE resource_name = ?", (resource,))
                conn.execute(
                    "INSERT INTO locks (resource_name, token, acquired_at, expires_at) "
                    "VALUES (?, ?, ?, ?)",
                    (resource, token, now, now + ttl),
                )
        except sqlite3.Error as exc:
            logger.error("Database error while acquiring lock for resource '%s': %s", resource, exc)
            return None

        lease = Lease(resource=resource, token=token, acquired_at=now, expires_at=now + ttl)
        logger.debug("Acquired lock for resource '%s' until %d", resource, lease.expires_at)
        return lease

    def release(self, resource: str, token: str | None = None) -> bool:
        try:
            with get_connection(self._database_path) as conn:
                if token is None:
                    cursor = conn.execute(
                        "DELETE FROM locks WHERE resource_name = ?", (resource,)
                    )
                else:
                    cursor = conn.execute(
                        "DELETE FROM locks WHERE resource_name = ? AND token = ?",
                        (resource, token),
                    )
                deleted = cursor.rowcount
        except sqlite3.Error as exc:
            # The lease expires on its own, so this is not escalated
            logger.error("Database error while releasing lock for resource '%s': %s", resource, exc)
            return False

        if deleted > 0:
            logger.debug("Released lock for resource '%s'", resource)
            return True
        logger.debug("No lock found to release for resource '%s'", resource)
        return False

    def is_locked(self, resource: str) -> bool:
        """Return True if a live lease exists. Reports True on storage errors."""
        try:
            with get_connection(self._database_path) as conn:
                row = conn.execute(
                    "SELECT 1 FROM locks WHERE resource_name = ? AND expires_at > ? LIMIT 1",
                    (resource, _now()),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Database error while checking lock for resource '%s': %s", resource, exc)
            return True
        return row is not None

    def _cleanup_expired(self) -> int:
        """Delete expired leases for every resource. Returns the number removed."""
        try:
            with get_connection(self._database_path) as conn:
                cursor = conn.execute("DELETE FROM locks WHERE expires_at <= ?", (_now(),))
                removed = cursor.rowcount
        except sqlite3.Error as exc:
            logger.error("Database error while cleaning up expired locks: %s", exc)
            return 0
        if removed > 0:
            logger.debug("Cleaned up %d expired locks", removed)
        return removed
