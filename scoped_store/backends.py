"""
Backend factory helpers for easy store switching.

This module gives application developers a uniform way to pick a storage
backend by name without rewriting bootstrap logic.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from .exceptions import ConfigurationError
from .store import MemoryEngine, MemoryLock, MemoryScopedStore
from .store_protocol import LockProvider, ScopedStore


class StoreBackend(str, Enum):
    """
    Built-in backend names supported by the factory helpers.

    MEMORY
        In-process store; options: ``engine`` (required), ``serializer``.
    REDIS
        Shared Redis store; options: ``registry`` (required), ``serializer``.
    """

    MEMORY = "memory"
    REDIS = "redis"


def _normalize_backend(backend: str | StoreBackend) -> StoreBackend:
    """
    Normalize backend name into :class:`StoreBackend` enum value.
    """
    if isinstance(backend, StoreBackend):
        return backend
    lowered = str(backend).strip().lower()
    try:
        return StoreBackend(lowered)
    except ValueError as exc:
        valid = ", ".join(item.value for item in StoreBackend)
        raise ConfigurationError(
            f"Unknown backend {backend!r}. Supported values: {valid}."
        ) from exc


def _require(options: dict[str, Any], name: str, backend: StoreBackend) -> Any:
    value = options.pop(name, None)
    if value is None:
        raise ConfigurationError(f"{backend.value} backend requires the {name!r} option.")
    return value


def _reject_unknown(options: dict[str, Any], backend: StoreBackend) -> None:
    if options:
        unknown = ", ".join(sorted(str(key) for key in options))
        raise ConfigurationError(f"Unknown {backend.value} backend options: {unknown}.")


def create_store(
    endpoint: str,
    scope: str,
    *,
    backend: str | StoreBackend = StoreBackend.REDIS,
    **backend_options: Any,
) -> ScopedStore:
    """
    Create a store bound to ``(endpoint, scope)`` from a short backend name.

    Parameters
    ----------
    endpoint:
        Redis URL, or any stable label for the memory backend.
    scope:
        Namespace the store operates in.
    backend:
        Backend selector string (``"memory"`` or ``"redis"``).
    backend_options:
        Backend-specific options, see :class:`StoreBackend`.
    """
    selected = _normalize_backend(backend)
    options = dict(backend_options)
    serializer = options.pop("serializer", None)
    if selected is StoreBackend.MEMORY:
        engine: MemoryEngine = _require(options, "engine", selected)
        _reject_unknown(options, selected)
        return MemoryScopedStore(endpoint, scope, engine=engine, serializer=serializer)
    if selected is StoreBackend.REDIS:
        from .redis_backend import RedisScopedStore

        registry = _require(options, "registry", selected)
        _reject_unknown(options, selected)
        return RedisScopedStore(endpoint, scope, registry=registry, serializer=serializer)
    raise ConfigurationError(f"Unhandled backend: {selected!r}")


def create_lock(
    *,
    backend: str | StoreBackend = StoreBackend.REDIS,
    **backend_options: Any,
) -> LockProvider:
    """
    Create a lock provider exposing ``with_lock(endpoint, name, body)``.

    Redis options: ``registry`` (required) and an optional ``config``
    (:class:`scoped_store.config.LockConfig`). Memory options: ``engine``.
    """
    selected = _normalize_backend(backend)
    options = dict(backend_options)
    if selected is StoreBackend.MEMORY:
        engine: MemoryEngine = _require(options, "engine", selected)
        _reject_unknown(options, selected)
        return MemoryLock(engine)
    if selected is StoreBackend.REDIS:
        from .redis_backend import DistributedLock

        registry = _require(options, "registry", selected)
        config = options.pop("config", None)
        _reject_unknown(options, selected)
        return DistributedLock(registry, config=config)
    raise ConfigurationError(f"Unhandled backend: {selected!r}")
