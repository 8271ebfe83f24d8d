"""
Redis-backed scoped key/value store.

The store implements the core ``ScopedStore`` protocol. One scope maps to one
Redis hash, so every operation is a single hash command and scopes never see
each other's keys.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from ..serializers import Serializer, effective_scope, get_serializer
from .connection import BorrowedConnection

if TYPE_CHECKING:  # pragma: no cover - typing-only import
    from .pools import ConnectionPoolRegistry

_LOGGER = logging.getLogger(__name__)

SCAN_COUNT = 5_000


class RedisScopedStore:
    """
    Redis implementation of the scoped store API.

    Data model
    ----------
    * one hash per effective scope, at ``<config.key_prefix><effective scope>``
    * hash fields are ``str(key)``; hash values are serializer output

    Notes
    -----
    Every call is an authoritative round trip; nothing is cached in process.

    Parameters
    ----------
    endpoint:
        Redis URL identifying the engine, credentials and logical database.
    scope:
        Caller-chosen namespace.
    registry:
        Pool registry shared by the process.
    serializer:
        Codec override. Defaults to the codec named by the registry config.
    connection:
        Pin every command to this connection instead of borrowing per call.
    """

    def __init__(
        self,
        endpoint: str,
        scope: str,
        *,
        registry: "ConnectionPoolRegistry",
        serializer: Serializer | None = None,
        connection: BorrowedConnection | None = None,
    ) -> None:
        self._endpoint = str(endpoint)
        self._scope = str(scope)
        self._registry = registry
        self._serializer = serializer or get_serializer(registry.config.serializer)
        self._namespace = effective_scope(self._scope, self._serializer)
        self._key = f"{registry.config.key_prefix}{self._namespace}"
        self._pinned = connection

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def scope(self) -> str:
        """Return the logical scope given by the caller."""
        return self._scope

    @property
    def namespace(self) -> str:
        """Return the effective scope after serializer prefixing."""
        return self._namespace

    @property
    def serializer(self) -> Serializer:
        return self._serializer

    def pinned_to(self, connection: BorrowedConnection) -> "RedisScopedStore":
        """Return a copy of this store that runs every command on ``connection``."""
        return RedisScopedStore(
            self._endpoint,
            self._scope,
            registry=self._registry,
            serializer=self._serializer,
            connection=connection,
        )

    # ------------------------------------------------------------------ #
    # Point operations
    # ------------------------------------------------------------------ #

    def get(self, key: Any, default: Any = None) -> Any:
        """Return the decoded value for ``key``, or ``default`` when absent."""
        raw = self._read(key)
        if raw is None:
            return default
        return self._serializer.load(raw)

    def set(self, key: Any, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        encoded = self._serializer.dump(value)
        with self._connection() as conn:
            conn.call("HSET", self._key, str(key), encoded)

    def __getitem__(self, key: Any) -> Any:
        raw = self._read(key)
        if raw is None:
            raise KeyError(key)
        return self._serializer.load(raw)

    def __setitem__(self, key: Any, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: object) -> bool:
        with self._connection() as conn:
            return bool(conn.call("HEXISTS", self._key, str(key)))

    def __len__(self) -> int:
        with self._connection() as conn:
            return int(conn.call("HLEN", self._key))

    # ------------------------------------------------------------------ #
    # Scope-wide operations
    # ------------------------------------------------------------------ #

    def keys(self) -> set[str]:
        """Return every key in the scope, paging through ``HSCAN``."""
        collected: set[str] = set()
        with self._connection() as conn:
            cursor: Any = b"0"
            pages = 0
            while True:
                cursor, batch = conn.call("HSCAN", self._key, cursor, "COUNT", SCAN_COUNT)
                pages += 1
                # Replies alternate field, value.
                collected.update(_text(field) for field in batch[0::2])
                if _text(cursor) == "0":
                    break
        _LOGGER.debug("Scanned scope=%s keys=%d pages=%d", self._namespace, len(collected), pages)
        return collected

    def clear(self) -> None:
        """Remove every key in the scope."""
        with self._connection() as conn:
            conn.call("DEL", self._key)

    def delete(self, *keys: Any) -> None:
        """Remove ``keys``; missing keys are ignored and no keys is a no-op."""
        if not keys:
            return
        with self._connection() as conn:
            conn.call("HDEL", self._key, *(str(key) for key in keys))

    def multi_read(self, *keys: Any) -> dict[Any, Any]:
        """
        Read several keys in one round trip.

        Returns
        -------
        dict
            Mapping of each requested key that exists to its decoded value.
            Missing keys are omitted rather than mapped to ``None``.
        """
        if not keys:
            return {}
        with self._connection() as conn:
            values = conn.call("HMGET", self._key, *(str(key) for key in keys))
        result: dict[Any, Any] = {}
        for key, raw in zip(keys, values):
            if raw is None:
                continue
            result[key] = self._serializer.load(raw)
        return result

    def multi_write(self, mapping: Mapping[Any, Any] | None) -> None:
        """Write every pair of ``mapping`` in one command; empty or ``None`` is a no-op."""
        if not mapping:
            return
        arguments: list[Any] = []
        for key, value in mapping.items():
            arguments.append(str(key))
            arguments.append(self._serializer.dump(value))
        with self._connection() as conn:
            conn.call("HSET", self._key, *arguments)

    def merge(self, mapping: Mapping[Any, Any] | None) -> None:
        """Alias for :meth:`multi_write`."""
        self.multi_write(mapping)

    def is_empty(self) -> bool:
        """Return true when the scope holds no keys."""
        return len(self) == 0

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _read(self, key: Any) -> bytes | None:
        with self._connection() as conn:
            return conn.call("HGET", self._key, str(key))

    @contextmanager
    def _connection(self) -> Iterator[BorrowedConnection]:
        if self._pinned is not None:
            yield self._pinned
            return
        with self._registry.borrow(self._endpoint) as conn:
            yield conn

    def __repr__(self) -> str:
        return f"RedisScopedStore(scope={self._scope!r}, namespace={self._namespace!r})"


def list_namespaces(
    registry: "ConnectionPoolRegistry",
    endpoint: str,
    *,
    pattern: str = "*",
) -> set[str]:
    """
    Return effective namespaces stored on ``endpoint`` that match ``pattern``.

    Pages through ``SCAN`` restricted to hash keys under the configured prefix.
    Namespaces written through a non-default codec keep their codec prefix.
    """
    prefix = registry.config.key_prefix
    found: set[str] = set()
    with registry.borrow(endpoint) as conn:
        cursor: Any = b"0"
        while True:
            cursor, batch = conn.call(
                "SCAN", cursor, "MATCH", f"{prefix}{pattern}", "COUNT", SCAN_COUNT, "TYPE", "hash"
            )
            found.update(_text(key)[len(prefix):] for key in batch)
            if _text(cursor) == "0":
                break
    return found


def _text(value: bytes | str | int) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)
