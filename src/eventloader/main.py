"""Application entry point — runs the loader + status API in a single process."""

from __future__ import annotations

import json
import logging
import sys
import threading
from contextlib import asynccontextmanager

import uvicorn

from eventloader.config import load_config
from eventloader.jobs import run_loader
from eventloader.storage import init_db
from eventloader.web.app import create_app
from eventloader.web.config import load_web_config

logger = logging.getLogger("eventloader")


def _setup_logging(log_level: str, log_format: str) -> None:
    """Configure root logger based on config."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps(
                {
                    "time": "%(asctime)s",
                    "level": "%(levelname)s",
                    "logger": "%(name)s",
                    "message": "%(message)s",
                }
            )
        )
    else:
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def main() -> None:
    """Load config, set up logging, and start the loader thread + web server."""
    config = load_config()
    web_config = load_web_config()

    _setup_logging(config.log_level, config.log_format)

    logger.info(
        "Event loader starting (env=%s, db=%s, sources=%s)",
        config.app_env,
        config.database_path,
        config.sources_config_path,
    )

    # Without the lease and request-time tables the loader cannot run
    init_db(config.database_path)

    stop_event = threading.Event()

    def _loader_thread():
        try:
            run_loader(config, stop_event=stop_event)
        except Exception:
            logger.exception("Loader thread crashed")

    @asynccontextmanager
    async def lifespan(app):
        logger.info("Loader starting")
        thread = threading.Thread(target=_loader_thread, name="event-loader", daemon=True)
        thread.start()
        yield
        logger.info("Loader shutting down")
        stop_event.set()
        thread.join(timeout=config.lock_ttl_seconds)

    app = create_app(web_config, lifespan=lifespan)

    uvicorn.run(app, host=web_config.web_host, port=web_config.web_port)


if __name__ == "__main__":
    main()
