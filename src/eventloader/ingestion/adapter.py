"""Source adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from eventloader.storage.events import Event


class FetchError(Exception):
    """Raised when a source could not be fetched or its response parsed."""


class SourceAdapter(ABC):
    """Abstract base class for source adapters.

    Every adapter knows how to fetch and parse events from a specific kind of
    source. The loader only sees names, ids and opaque payloads.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique source name, used as the cursor, lease and throttle key."""

    @abstractmethod
    def fetch(self, last_event_id: int | None) -> list[Event]:
        """Fetch events newer than ``last_event_id``.

        Returns events ordered by strictly increasing id. Raises FetchError
        when the source cannot be read.
        """

    @abstractmethod
    def configure(self, config: dict) -> None:
        """Accept adapter-specific configuration."""
