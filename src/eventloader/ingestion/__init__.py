"""Ingestion — source adapters and their registry."""

from eventloader.ingestion.registry import register_adapter
from eventloader.ingestion.url_adapter import UrlEventSource

register_adapter("url", UrlEventSource)
