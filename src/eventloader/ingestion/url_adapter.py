"""HTTP JSON event source — polls a URL that returns an array of events."""

from __future__ import annotations

import json
import logging

import httpx

from eventloader.ingestion.adapter import FetchError, SourceAdapter
from eventloader.storage.events import Event

logger = logging.getLogger(__name__)

_USER_AGENT = "eventloader/1.0"
_DEFAULT_TIMEOUT = 30.0


def _parse_auth(value) -> tuple[str, str] | None:
    """Accept basic auth as "user:password" or a [user, password] pair."""
    if not value:
        return None
    if isinstance(value, str):
        user, _, password = value.partition(":")
        return user, password
    user, password = value
    return str(user), str(password)


class UrlEventSource(SourceAdapter):
    """Adapter for HTTP endpoints returning a JSON array of event objects.

    The cursor is passed to the endpoint as the ``lastEventId`` query
    parameter. Every object must carry an integer ``id``; objects without
    one are skipped.
    """

    def __init__(self, name: str, url: str = "", *, timeout: float = _DEFAULT_TIMEOUT) -> None:
        self._name = name
        self._url = url.rstrip("/")
        self._timeout = timeout
        self._headers: dict[str, str] = {}
        self._auth: tuple[str, str] | None = None

    @property
    def name(self) -> str:
        return self._name

    def configure(self, config: dict) -> None:
        """Accept source configuration.

        Expected format:
        {
            "url": "https://api.example.com/events",
            "headers": {"Accept": "application/json"},
            "auth": "user:password",
            "timeout": 30
        }
        """
        if config.get("url"):
            self._url = config["url"].rstrip("/")
        self._headers = dict(config.get("headers") or {})
        self._auth = _parse_auth(config.get("auth"))
        if config.get("timeout") is not None:
            self._timeout = float(config["timeout"])

    def fetch(self, last_event_id: int | None) -> list[Event]:
        if not self._url:
            raise FetchError(f"Source '{self._name}' has no URL configured")

        params = {} if last_event_id is None else {"lastEventId": last_event_id}
        headers = {"User-Agent": _USER_AGENT, **self._headers}
        logger.debug("Fetching events for %s from %s", self._name, self._url)

        try:
            resp = httpx.get(
                self._url,
                params=params,
                headers=headers,
                auth=self._auth,
                timeout=self._timeout,
                follow_redirects=True,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise FetchError(f"Request to {self._url} failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError(f"Invalid JSON from {self._url}: {exc}") from exc

        if not isinstance(data, list):
            raise FetchError(
                f"Invalid response format from {self._url}: "
                f"expected array, got {type(data).__name__}"
            )

        events = self._parse_records(data, last_event_id)
        logger.debug("Fetched %d events for %s", len(events), self._name)
        return events

    def _parse_records(self, records: list, last_event_id: int | None) -> list[Event]:
        by_id: dict[int, Event] = {}
        for record in records:
            if not isinstance(record, dict):
                logger.warning("Skipping non-object record from %s", self._name)
                continue
            event_id = _coerce_id(record.get("id"))
            if event_id is None:
                logger.warning("Skipping event without ID from %s", self._name)
                continue
            if last_event_id is not None and event_id <= last_event_id:
                continue
            if event_id in by_id:
                continue
            payload = json.dumps({**record, "source": self._name})
            by_id[event_id] = Event(id=event_id, source_name=self._name, payload=payload)
        return [by_id[event_id] for event_id in sorted(by_id)]


def _coerce_id(value) -> int | None:
    """Return an integer id from an int or digit string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None
