"""Source type registry.

Each entry in the sources file names a ``type``; the registry maps that
string to the adapter class that serves it. Registrations are checked so a
typo or a second module claiming the same type fails at import time rather
than silently replacing an adapter.
"""

from __future__ import annotations

from eventloader.ingestion.adapter import SourceAdapter

_REGISTRY: dict[str, type[SourceAdapter]] = {}


def register_adapter(type_name: str, cls: type[SourceAdapter]) -> None:
    """Register ``cls`` for sources of ``type_name``.

    Raises TypeError if ``cls`` is not a SourceAdapter subclass and
    ValueError if the type name is empty or already taken by another class.
    Registering the same class twice is allowed.
    """
    if not type_name:
        raise ValueError("Source type name must not be empty")
    if not (isinstance(cls, type) and issubclass(cls, SourceAdapter)):
        raise TypeError(f"Adapter for '{type_name}' must subclass SourceAdapter, got {cls!r}")
    existing = _REGISTRY.get(type_name)
    if existing is not None and existing is not cls:
        raise ValueError(
            f"Source type '{type_name}' is already registered to {existing.__name__}"
        )
    _REGISTRY[type_name] = cls


def get_adapter_class(type_name: str) -> type[SourceAdapter] | None:
    """Return the adapter class for a source type, or None if unknown."""
    return _REGISTRY.get(type_name)


def registered_types() -> list[str]:
    """Return every known source type, sorted."""
    return sorted(_REGISTRY)
