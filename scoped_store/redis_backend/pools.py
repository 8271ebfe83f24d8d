"""
Per-endpoint connection pool registry.

A process builds one :class:`ConnectionPoolRegistry` at startup and passes it
to every store and lock that needs Redis access. The registry lazily creates
one bounded, blocking pool per endpoint URL and hands out connections for
exclusive use through :meth:`ConnectionPoolRegistry.borrow`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from threading import Lock
from typing import Any

import redis
from redis.connection import parse_url

from ..config import StoreConfig
from ..exceptions import StoreConnectionError
from .connection import BorrowedConnection, _redact

_LOGGER = logging.getLogger(__name__)

PoolFactory = Callable[[str, StoreConfig], Any]


def create_blocking_pool(endpoint: str, config: StoreConfig) -> redis.BlockingConnectionPool:
    """
    Build the default pool for one endpoint.

    Address, credentials and logical database all come from the URL, for
    example ``redis://:secret@cache:6379/3``. Socket timeouts given as URL
    query options take precedence over ``config``. Pool size, checkout
    timeout and raw byte replies always come from ``config``; URL options for
    them are ignored.
    """
    options = parse_url(endpoint)
    options.setdefault("socket_timeout", config.socket_timeout_seconds)
    options.setdefault("socket_connect_timeout", config.socket_timeout_seconds)
    options.update(
        max_connections=config.pool_size,
        timeout=config.pool_timeout_seconds,
        decode_responses=False,
    )
    return redis.BlockingConnectionPool(**options)


class ConnectionPoolRegistry:
    """
    Cache of one connection pool per endpoint.

    Parameters
    ----------
    config:
        Settings shared by every pool, store and lock built on this registry.
        Defaults to :meth:`StoreConfig.from_env`.
    pool_factory:
        Callable ``(endpoint, config) -> pool``. The returned object must offer
        redis-py's ``get_connection()``/``release()`` pool interface.
    """

    def __init__(
        self,
        config: StoreConfig | None = None,
        *,
        pool_factory: PoolFactory | None = None,
    ) -> None:
        self.config = config or StoreConfig.from_env()
        self._pool_factory = pool_factory or create_blocking_pool
        self._pools: dict[str, Any] = {}
        self._lock = Lock()

    def pool_for(self, endpoint: str) -> Any:
        """
        Return the pool for ``endpoint``, creating it on first use.

        Concurrent first use from several threads creates exactly one pool.
        """
        pool = self._pools.get(endpoint)
        if pool is not None:
            return pool
        with self._lock:
            pool = self._pools.get(endpoint)
            if pool is None:
                pool = self._pool_factory(endpoint, self.config)
                self._pools[endpoint] = pool
                _LOGGER.debug(
                    "Created connection pool endpoint=%s size=%d",
                    _redact(endpoint),
                    self.config.pool_size,
                )
            return pool

    @contextmanager
    def borrow(self, endpoint: str) -> Iterator[BorrowedConnection]:
        """
        Check out one connection for the duration of the ``with`` block.

        Blocks while the pool is exhausted, up to the configured pool timeout.
        The connection returns to the pool on every exit path; one that failed
        at the socket level is disconnected first so the pool reconnects it.
        """
        pool = self.pool_for(endpoint)
        try:
            raw = pool.get_connection()
        except (redis.ConnectionError, redis.TimeoutError) as exc:
            raise StoreConnectionError(
                f"No Redis connection available for {_redact(endpoint)}: {exc}"
            ) from exc
        borrowed = BorrowedConnection(raw, endpoint)
        try:
            yield borrowed
        finally:
            if borrowed.broken:
                raw.disconnect()
            pool.release(raw)

    def endpoints(self) -> tuple[str, ...]:
        """Return endpoints that currently have a pool."""
        with self._lock:
            return tuple(self._pools)

    def reset(self) -> None:
        """
        Forget every pool so the next use reconnects.

        In-flight checkouts are neither drained nor closed; do not call this
        while operations are outstanding.
        """
        with self._lock:
            self._pools.clear()
        _LOGGER.debug("Connection pool registry reset")

