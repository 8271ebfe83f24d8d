"""
Redis backend for scoped_store.

Build one registry per process and inject it everywhere:

    from scoped_store import StoreConfig
    from scoped_store.redis_backend import (
        ConnectionPoolRegistry,
        DistributedLock,
        RedisScopedStore,
    )

    registry = ConnectionPoolRegistry(StoreConfig.from_env())
    jobs = RedisScopedStore("redis://127.0.0.1:6379/0", "jobs", registry=registry)
    jobs["build-42"] = {"state": "queued"}

    lock = DistributedLock(registry)
    lock.with_lock(
        "redis://127.0.0.1:6379/0",
        "scheduler",
        lambda held: held.store("jobs").merge({"build-42": {"state": "running"}}),
    )

All processes pointing at the same endpoint share the data and the locks.
Queue locks use ``EXPIRE ... NX`` and therefore need Redis 7 or newer.
"""

from .connection import BorrowedConnection
from .lock import DistributedLock, HeldLock, with_lock
from .pools import ConnectionPoolRegistry, create_blocking_pool
from .store import RedisScopedStore, list_namespaces

__all__ = [
    "BorrowedConnection",
    "ConnectionPoolRegistry",
    "DistributedLock",
    "HeldLock",
    "RedisScopedStore",
    "create_blocking_pool",
    "list_namespaces",
    "with_lock",
]
