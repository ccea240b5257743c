"""Demo run — loads from the configured sources without a database.

Runs a few cycles with in-memory storage, leases and pacing, then logs what
was loaded per source.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

from eventloader.jobs import build_in_memory_loader
from eventloader.loader import LoaderSettings
from eventloader.main import _setup_logging

logger = logging.getLogger("eventloader")

DEFAULT_DEMO_CYCLES = 3


def run_demo(sources_config_path: str, cycles: int = DEFAULT_DEMO_CYCLES,
             settings: LoaderSettings | None = None) -> dict[str, int]:
    """Run ``cycles`` cycles in memory. Returns events stored per source."""
    loader, storage = build_in_memory_loader(sources_config_path, settings)
    total = loader.load_events(cycles)

    counts = {name: len(storage.events(name)) for name in storage.source_names()}
    for name, count in counts.items():
        logger.info(
            "%s: %d events, last event id %s", name, count, storage.last_event_id(name)
        )
    logger.info("Demo finished: %d events across %d source(s)", total, len(counts))
    return counts


def main() -> None:
    load_dotenv()
    _setup_logging(os.environ.get("LOG_LEVEL", "INFO"), os.environ.get("LOG_FORMAT", "text"))
    run_demo(
        os.environ.get("SOURCES_CONFIG_PATH", "./config/sources.json"),
        cycles=int(os.environ.get("DEMO_CYCLES", str(DEFAULT_DEMO_CYCLES))),
    )


if __name__ == "__main__":
    main()
