"""
Thread-safe in-memory backend for single-process use and tests.

:class:`MemoryEngine` plays the part of the remote engine: it owns all scope
data for any number of endpoints and one lock per ``(endpoint, name)``.
Values are held in serialized form so the codec round-trip behaves exactly
as it does against Redis.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from threading import Lock, RLock
from typing import Any, TypeVar

from .config import StoreConfig
from .exceptions import LockOutcome
from .serializers import Serializer, effective_scope, get_serializer

T = TypeVar("T")


class MemoryEngine:
    """
    Concurrent storage shared by memory stores and memory locks.

    Notes
    -----
    Nothing crosses the process boundary; use the Redis backend for
    multi-process coordination.
    """

    def __init__(self, config: StoreConfig | None = None) -> None:
        """Create empty scope containers and initialize lock state."""
        self.config = config or StoreConfig()
        self._scopes: dict[tuple[str, str], dict[str, bytes]] = {}
        self._locks: dict[tuple[str, str], Lock] = {}
        self._lock = RLock()

    def read(self, endpoint: str, namespace: str, fields: list[str]) -> list[bytes | None]:
        with self._lock:
            data = self._scopes.get((endpoint, namespace), {})
            return [data.get(field) for field in fields]

    def write(self, endpoint: str, namespace: str, pairs: list[tuple[str, bytes]]) -> None:
        with self._lock:
            data = self._scopes.setdefault((endpoint, namespace), {})
            data.update(pairs)

    def remove(self, endpoint: str, namespace: str, fields: list[str]) -> None:
        with self._lock:
            data = self._scopes.get((endpoint, namespace))
            if data is None:
                return
            for field in fields:
                data.pop(field, None)
            if not data:
                del self._scopes[(endpoint, namespace)]

    def drop(self, endpoint: str, namespace: str) -> None:
        with self._lock:
            self._scopes.pop((endpoint, namespace), None)

    def fields(self, endpoint: str, namespace: str) -> set[str]:
        with self._lock:
            return set(self._scopes.get((endpoint, namespace), {}))

    def namespaces(self, endpoint: str) -> set[str]:
        """Return namespaces that currently hold data on ``endpoint``."""
        with self._lock:
            return {namespace for owner, namespace in self._scopes if owner == endpoint}

    def lock_for(self, endpoint: str, name: str) -> Lock:
        with self._lock:
            return self._locks.setdefault((endpoint, name), Lock())


class MemoryScopedStore:
    """
    In-memory implementation of the scoped store API.

    Mirrors :class:`scoped_store.redis_backend.RedisScopedStore` semantics:
    string keys, codec round-trip, serializer namespaces and zero-key no-ops.
    """

    def __init__(
        self,
        endpoint: str,
        scope: str,
        *,
        engine: MemoryEngine,
        serializer: Serializer | None = None,
    ) -> None:
        self._endpoint = str(endpoint)
        self._scope = str(scope)
        self._engine = engine
        self._serializer = serializer or get_serializer(engine.config.serializer)
        self._namespace = effective_scope(self._scope, self._serializer)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def namespace(self) -> str:
        """Return the effective scope after serializer prefixing."""
        return self._namespace

    def get(self, key: Any, default: Any = None) -> Any:
        (raw,) = self._engine.read(self._endpoint, self._namespace, [str(key)])
        if raw is None:
            return default
        return self._serializer.load(raw)

    def set(self, key: Any, value: Any) -> None:
        encoded = self._serializer.dump(value)
        self._engine.write(self._endpoint, self._namespace, [(str(key), encoded)])

    def __getitem__(self, key: Any) -> Any:
        (raw,) = self._engine.read(self._endpoint, self._namespace, [str(key)])
        if raw is None:
            raise KeyError(key)
        return self._serializer.load(raw)

    def __setitem__(self, key: Any, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: object) -> bool:
        return str(key) in self._engine.fields(self._endpoint, self._namespace)

    def __len__(self) -> int:
        return len(self._engine.fields(self._endpoint, self._namespace))

    def keys(self) -> set[str]:
        return self._engine.fields(self._endpoint, self._namespace)

    def clear(self) -> None:
        self._engine.drop(self._endpoint, self._namespace)

    def delete(self, *keys: Any) -> None:
        if not keys:
            return
        self._engine.remove(self._endpoint, self._namespace, [str(key) for key in keys])

    def multi_read(self, *keys: Any) -> dict[Any, Any]:
        if not keys:
            return {}
        values = self._engine.read(self._endpoint, self._namespace, [str(key) for key in keys])
        return {
            key: self._serializer.load(raw)
            for key, raw in zip(keys, values)
            if raw is not None
        }

    def multi_write(self, mapping: Mapping[Any, Any] | None) -> None:
        if not mapping:
            return
        pairs = [(str(key), self._serializer.dump(value)) for key, value in mapping.items()]
        self._engine.write(self._endpoint, self._namespace, pairs)

    def merge(self, mapping: Mapping[Any, Any] | None) -> None:
        self.multi_write(mapping)

    def is_empty(self) -> bool:
        return len(self) == 0


@dataclass(slots=True)
class MemoryHeldLock:
    """Context handed to a block running under a :class:`MemoryLock`."""

    name: str
    endpoint: str
    engine: MemoryEngine
    outcome: LockOutcome = LockOutcome.HEAD

    def store(self, scope: str, *, serializer: Serializer | None = None) -> MemoryScopedStore:
        return MemoryScopedStore(self.endpoint, scope, engine=self.engine, serializer=serializer)


class MemoryLock:
    """In-process named mutual exclusion over a :class:`MemoryEngine`."""

    def __init__(self, engine: MemoryEngine) -> None:
        self._engine = engine

    def with_lock(self, endpoint: str, name: str, body: Callable[[MemoryHeldLock], T]) -> T:
        with self._engine.lock_for(str(endpoint), name):
            return body(MemoryHeldLock(name=name, endpoint=str(endpoint), engine=self._engine))
