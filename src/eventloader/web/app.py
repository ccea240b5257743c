"""FastAPI application factory for the status API."""

from __future__ import annotations

from fastapi import FastAPI

from eventloader.web.config import WebConfig
from eventloader.web.routes import health_router, router


def create_app(config: WebConfig, lifespan=None) -> FastAPI:
    """Build and return a configured FastAPI application."""
    app = FastAPI(title="Event Loader", docs_url="/api/docs", lifespan=lifespan)
    app.state.database_path = config.database_path
    app.include_router(health_router)
    app.include_router(router, prefix="/api/v1")
    return app
