"""Status API on its own, reading a database some loader process writes."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import uvicorn

from eventloader.main import _setup_logging
from eventloader.web.app import create_app
from eventloader.web.config import load_web_config

logger = logging.getLogger("eventloader.web")


def main() -> None:
    """Serve the read-only status API without running a loader."""
    config = load_web_config()
    _setup_logging(config.log_level, config.log_format)

    # The API opens the database read-only and cannot create it
    if not Path(config.database_path).is_file():
        logger.error(
            "Database %s does not exist; start the loader first", config.database_path
        )
        sys.exit(1)

    logger.info(
        "Status API listening on %s:%d (db=%s)",
        config.web_host,
        config.web_port,
        config.database_path,
    )
    uvicorn.run(create_app(config), host=config.web_host, port=config.web_port)


if __name__ == "__main__":
    main()
