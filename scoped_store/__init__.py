"""
scoped_store
============

Scope-partitioned key/value storage and cross-process locking on a shared
Redis engine.

Many independent worker processes can read and write a shared namespace of
JSON-like records and take turns inside a named critical section without a
dedicated lock server:

* :class:`scoped_store.redis_backend.RedisScopedStore`: all operations are
  scoped to a caller-chosen namespace string (one Redis hash per scope)
* :class:`scoped_store.redis_backend.DistributedLock`: FIFO ticket-queue lock
  on a Redis list, with a self-expiry window as crash-recovery backstop
* :class:`scoped_store.redis_backend.ConnectionPoolRegistry`: one bounded,
  blocking connection pool per endpoint, injected into stores and locks
* :mod:`scoped_store.serializers`: pluggable value codecs selected by name

Typical usage::

    from scoped_store import StoreConfig, create_lock, create_store
    from scoped_store.redis_backend import ConnectionPoolRegistry

    registry = ConnectionPoolRegistry(StoreConfig.from_env())
    url = "redis://127.0.0.1:6379/0"

    results = create_store(url, "results", registry=registry)
    results.merge({"build-42": {"status": "passed"}})

    def bump(held):
        counters = held.store("counters")
        counters.set("done", counters.get("done", 0) + 1)

    create_lock(registry=registry).with_lock(url, "counters", bump)

An in-memory backend with the same surface is available for single-process
use and tests: ``create_store(url, scope, backend="memory", engine=MemoryEngine())``.
"""

from .backends import StoreBackend, create_lock, create_store
from .config import LockConfig, LockStrategy, StoreConfig
from .exceptions import (
    CommandError,
    ConfigurationError,
    LockOutcome,
    SerializationError,
    StoreConnectionError,
    StoreError,
)
from .serializers import (
    DEFAULT_SERIALIZER,
    JsonSerializer,
    PickleSerializer,
    Serializer,
    available_serializers,
    effective_scope,
    get_serializer,
    register_serializer,
)
from .store import MemoryEngine, MemoryLock, MemoryScopedStore
from .store_protocol import HeldLockContext, LockProvider, ScopedStore

__all__ = [
    "CommandError",
    "ConfigurationError",
    "DEFAULT_SERIALIZER",
    "HeldLockContext",
    "JsonSerializer",
    "LockConfig",
    "LockOutcome",
    "LockProvider",
    "LockStrategy",
    "MemoryEngine",
    "MemoryLock",
    "MemoryScopedStore",
    "PickleSerializer",
    "ScopedStore",
    "SerializationError",
    "Serializer",
    "StoreBackend",
    "StoreConfig",
    "StoreConnectionError",
    "StoreError",
    "available_serializers",
    "create_lock",
    "create_store",
    "effective_scope",
    "get_serializer",
    "register_serializer",
]
