"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from eventloader.loader import LoaderSettings


@dataclass(frozen=True)
class Config:
    """Application configuration. All values sourced from environment variables."""

    # Required
    database_path: str

    # Optional — Sources
    sources_config_path: str = "./config/sources.json"
    http_timeout_seconds: int = 30

    # Optional — Loader
    min_request_interval_ms: int = 200
    max_events_per_request: int = 1000
    lock_ttl_seconds: int = 30
    idle_backoff_ms: int = 100
    loader_cycles: int = 0

    # Optional — Application
    log_level: str = "INFO"
    log_format: str = "json"
    app_env: str = "production"

    def loader_settings(self) -> LoaderSettings:
        """Build the cycle engine settings from this config."""
        return LoaderSettings(
            min_request_interval_ms=self.min_request_interval_ms,
            max_events_per_request=self.max_events_per_request,
            lock_ttl_seconds=self.lock_ttl_seconds,
            idle_backoff_ms=self.idle_backoff_ms,
        )


_REQUIRED_VARS = [
    "DATABASE_PATH",
]

# name -> (default, minimum)
_INT_VARS = {
    "HTTP_TIMEOUT_SECONDS": ("30", 1),
    "MIN_REQUEST_INTERVAL_MS": ("200", 0),
    "MAX_EVENTS_PER_REQUEST": ("1000", 1),
    "LOCK_TTL_SECONDS": ("30", 1),
    "IDLE_BACKOFF_MS": ("100", 0),
    "LOADER_CYCLES": ("0", 0),
}


def _read_ints() -> dict[str, int]:
    values: dict[str, int] = {}
    errors: list[str] = []
    for var, (default, minimum) in _INT_VARS.items():
        raw = os.environ.get(var, default)
        try:
            value = int(raw)
        except ValueError:
            errors.append(f"{var} must be an integer, got {raw!r}")
            continue
        if value < minimum:
            errors.append(f"{var} must be >= {minimum}, got {value}")
            continue
        values[var] = value
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))
    return values


def load_config(env_path: str | Path | None = None) -> Config:
    """Load configuration from environment variables.

    Loads a .env file if present (for local development), then validates
    that all required variables are set and numeric settings are in range.
    Raises ValueError listing any problems.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [var for var in _REQUIRED_VARS if not os.environ.get(var)]
    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    ints = _read_ints()

    return Config(
        # Required
        database_path=os.environ["DATABASE_PATH"],
        # Optional — Sources
        sources_config_path=os.environ.get("SOURCES_CONFIG_PATH", "./config/sources.json"),
        http_timeout_seconds=ints["HTTP_TIMEOUT_SECONDS"],
        # Optional — Loader
        min_request_interval_ms=ints["MIN_REQUEST_INTERVAL_MS"],
        max_events_per_request=ints["MAX_EVENTS_PER_REQUEST"],
        lock_ttl_seconds=ints["LOCK_TTL_SECONDS"],
        idle_backoff_ms=ints["IDLE_BACKOFF_MS"],
        loader_cycles=ints["LOADER_CYCLES"],
        # Optional — Application
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_format=os.environ.get("LOG_FORMAT", "json"),
        app_env=os.environ.get("APP_ENV", "production"),
    )
