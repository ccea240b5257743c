"""Tests for eventloader.jobs — source configuration, wiring, and run tracking."""

from __future__ import annotations

import json
import threading
from unittest.mock import patch

import httpx
import pytest

from eventloader.config import Config
from eventloader.ingestion.url_adapter import UrlEventSource
from eventloader.jobs import (
    _record_run,
    build_in_memory_loader,
    build_loader,
    load_sources,
    run_loader,
)
from eventloader.loader import LoaderSettings
from eventloader.memory import InMemoryEventStorage, InMemoryLeaseManager
from eventloader.storage.connection import get_connection
from eventloader.storage.schema import init_db


def _write_sources(tmp_path, sources) -> str:
    path = tmp_path / "sources.json"
    path.write_text(json.dumps({"sources": sources}))
    return str(path)


def _make_config(tmp_path, sources=None, **overrides) -> Config:
    """Create a test Config pointing at a temp database and sources file."""
    db_path = str(tmp_path / "test.db")
    init_db(db_path)
    if sources is None:
        sources = [{"type": "url", "name": "feed", "url": "https://api.example.com/events"}]
    defaults = {
        "database_path": db_path,
        "sources_config_path": _write_sources(tmp_path, sources),
        "min_request_interval_ms": 0,
        "idle_backoff_ms": 0,
        "loader_cycles": 1,
    }
    defaults.update(overrides)
    return Config(**defaults)


def _response(data):
    request = httpx.Request("GET", "https://api.example.com/events")
    return httpx.Response(200, json=data, request=request)


def _runs(db_path):
    with get_connection(db_path) as conn:
        return [dict(r) for r in conn.execute("SELECT * FROM loader_runs ORDER BY started_at")]


class TestLoadSources:
    def test_builds_configured_url_sources(self, tmp_path):
        path = _write_sources(tmp_path, [
            {"type": "url", "name": "a", "url": "https://a.example.com/events"},
            {"type": "url", "name": "b", "url": "https://b.example.com/events"},
        ])

        adapters = load_sources(path, http_timeout_seconds=7)

        assert [a.name for a in adapters] == ["a", "b"]
        assert all(isinstance(a, UrlEventSource) for a in adapters)
        assert adapters[0]._url == "https://a.example.com/events"
        assert adapters[0]._timeout == 7

    def test_skips_disabled_sources(self, tmp_path):
        path = _write_sources(tmp_path, [
            {"type": "url", "name": "on", "url": "https://x"},
            {"type": "url", "name": "off", "url": "https://y", "enabled": False},
        ])

        assert [a.name for a in load_sources(path)] == ["on"]

    def test_skips_unknown_types(self, tmp_path, caplog):
        path = _write_sources(tmp_path, [
            {"type": "carrier-pigeon", "name": "birds"},
            {"type": "url", "name": "ok", "url": "https://x"},
        ])

        adapters = load_sources(path)

        assert [a.name for a in adapters] == ["ok"]
        assert "Unknown source type 'carrier-pigeon'" in caplog.text
        assert "known types: url" in caplog.text

    def test_skips_unnamed_and_duplicate_sources(self, tmp_path, caplog):
        path = _write_sources(tmp_path, [
            {"type": "url", "url": "https://nameless"},
            {"type": "url", "name": "dup", "url": "https://first"},
            {"type": "url", "name": "dup", "url": "https://second"},
        ])

        adapters = load_sources(path)

        assert len(adapters) == 1
        assert adapters[0]._url == "https://first"
        assert "Duplicate source name 'dup'" in caplog.text

    def test_empty_file_yields_no_sources(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text("{}")

        assert load_sources(str(path)) == []

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_sources(str(tmp_path / "missing.json"))


class TestBuildLoader:
    def test_wires_settings_and_sources(self, tmp_path):
        config = _make_config(tmp_path, max_events_per_request=25, lock_ttl_seconds=90)
        stop = threading.Event()

        loader = build_loader(config, stop_event=stop)

        assert [s.name for s in loader.sources] == ["feed"]
        assert loader.settings.max_events_per_request == 25
        assert loader.settings.lock_ttl_seconds == 90
        stop.set()
        assert loader.stopped is True


class TestBuildInMemoryLoader:
    def test_loads_without_database(self, tmp_path):
        path = _write_sources(tmp_path, [
            {"type": "url", "name": "feed", "url": "https://api.example.com/events"},
        ])
        settings = LoaderSettings(min_request_interval_ms=0, idle_backoff_ms=0, lock_ttl_seconds=45)

        loader, storage = build_in_memory_loader(path, settings)

        assert isinstance(storage, InMemoryEventStorage)
        assert isinstance(loader._leases, InMemoryLeaseManager)
        assert loader.settings is settings
        with patch(
            "eventloader.ingestion.url_adapter.httpx.get",
            return_value=_response([{"id": 7}, {"id": 8}]),
        ):
            assert loader.load_events(1) == 2
        assert storage.last_event_id("feed") == 8
        assert not (tmp_path / "test.db").exists()


class TestRunLoader:
    def test_loads_events_and_records_success(self, tmp_path):
        config = _make_config(tmp_path)
        records = [{"id": 1, "type": "push"}, {"id": 2, "type": "issue"}]

        with patch(
            "eventloader.ingestion.url_adapter.httpx.get", return_value=_response(records)
        ):
            loaded = run_loader(config)

        assert loaded == 2
        with get_connection(config.database_path) as conn:
            count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
            cursor = conn.execute(
                "SELECT last_event_id FROM cursors WHERE source_name = 'feed'"
            ).fetchone()[0]
        assert count == 2
        assert cursor == 2

        runs = _runs(config.database_path)
        assert len(runs) == 1
        assert runs[0]["status"] == "success"
        assert runs[0]["error"] is None
        assert json.loads(runs[0]["result"]) == {"events_loaded": 2, "cycles": 1}

    def test_explicit_cycles_override_config(self, tmp_path):
        config = _make_config(tmp_path)

        with patch(
            "eventloader.ingestion.url_adapter.httpx.get", return_value=_response([])
        ) as mock_get:
            run_loader(config, cycles=3)

        assert mock_get.call_count == 3
        assert json.loads(_runs(config.database_path)[0]["result"])["cycles"] == 3

    def test_fetch_failure_is_not_a_run_failure(self, tmp_path):
        config = _make_config(tmp_path)

        with patch(
            "eventloader.ingestion.url_adapter.httpx.get",
            side_effect=httpx.ConnectError("refused"),
        ):
            loaded = run_loader(config)

        assert loaded == 0
        assert _runs(config.database_path)[0]["status"] == "success"

    def test_missing_sources_file_records_error(self, tmp_path, caplog):
        config = _make_config(tmp_path, sources_config_path=str(tmp_path / "missing.json"))

        loaded = run_loader(config)

        assert loaded == 0
        assert "Loader failed" in caplog.text
        runs = _runs(config.database_path)
        assert runs[0]["status"] == "error"
        assert runs[0]["error"] == "Loader failed (see logs)"

    def test_stopped_before_start_loads_nothing(self, tmp_path):
        config = _make_config(tmp_path)
        stop = threading.Event()
        stop.set()

        with patch("eventloader.ingestion.url_adapter.httpx.get") as mock_get:
            loaded = run_loader(config, stop_event=stop)

        assert loaded == 0
        mock_get.assert_not_called()


class TestRecordRun:
    def test_inserts_row(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        init_db(db_path)

        _record_run(db_path, "2026-01-01T00:00:00+00:00", {"events_loaded": 5, "cycles": 1})
        _record_run(db_path, "2026-01-02T00:00:00+00:00", {}, error="boom")

        runs = _runs(db_path)
        assert [r["status"] for r in runs] == ["success", "error"]
        assert runs[1]["error"] == "boom"
        assert runs[0]["finished_at"] >= runs[0]["started_at"]
