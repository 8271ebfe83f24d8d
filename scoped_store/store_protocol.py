"""
Store protocol consumed by code that is indifferent to the backing engine.

Callers depend on this abstract method surface rather than a concrete
backend, so the Redis store and the in-memory store are interchangeable.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class ScopedStore(Protocol):
    """
    Behavioral contract for a store bound to one ``(endpoint, scope)`` pair.

    Implementations are expected to be safe for concurrent access, because
    worker threads can call read/write methods simultaneously.
    """

    def get(self, key: Any, default: Any = None) -> Any:
        """Return the value for ``key`` or ``default`` when absent."""

    def set(self, key: Any, value: Any) -> None:
        """Store one value."""

    def keys(self) -> set[str]:
        """Return every key in the scope, in no particular order."""

    def clear(self) -> None:
        """Remove every key in the scope."""

    def delete(self, *keys: Any) -> None:
        """Remove the given keys; no keys is a no-op."""

    def multi_read(self, *keys: Any) -> dict[Any, Any]:
        """Return values for the keys that exist; missing keys are omitted."""

    def multi_write(self, mapping: Mapping[Any, Any] | None) -> None:
        """Write every pair; ``None`` or an empty mapping is a no-op."""

    def merge(self, mapping: Mapping[Any, Any] | None) -> None:
        """Alias for :meth:`multi_write`."""

    def is_empty(self) -> bool:
        """Return true when the scope holds no keys."""


class HeldLockContext(Protocol):
    """Context handed to a block running under a lock."""

    name: str
    endpoint: str

    def store(self, scope: str) -> ScopedStore:
        """Return a store on the lock's endpoint bound to the held context."""


class LockProvider(Protocol):
    """Named mutual exclusion independent of any store instance."""

    def with_lock(self, endpoint: str, name: str, body: Callable[[HeldLockContext], T]) -> T:
        """Run ``body(held)`` while holding lock ``name`` on ``endpoint``."""
