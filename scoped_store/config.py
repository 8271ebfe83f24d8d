"""
Configuration models for scoped stores and distributed locks.

This module centralizes all tunable runtime settings:

* connection pool sizing and checkout/socket timeouts
* Redis key prefixes for store namespaces and lock keys
* process-wide serializer selection
* queue lock expiry window and poll backoff range
* retry lock TTL, retry count, delay and jitter

Settings are plain dataclasses validated at construction time. Deployments
usually build them once at startup with :meth:`StoreConfig.from_env`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import ConfigurationError

ENV_PREFIX = "SCOPED_STORE_"


class LockStrategy(str, Enum):
    """
    Supported distributed lock algorithms.

    QUEUE
        FIFO ticket queue stored in a Redis list with a self-expiry window.
    RETRY
        Single ``SET NX PX`` key acquired with bounded retries and jitter.
    """

    QUEUE = "queue"
    RETRY = "retry"


@dataclass(slots=True)
class LockConfig:
    """
    Distributed lock settings.

    Parameters
    ----------
    strategy:
        Lock algorithm used by :class:`scoped_store.redis_backend.lock.DistributedLock`.
    key_prefix:
        Prefix for lock keys; the lock name is appended verbatim.
    queue_expiry_seconds:
        Self-expiry window of a lock queue. Keep it comfortably larger than the
        longest expected hold; a holder that outlives it may overlap with the
        next waiter.
    poll_min_seconds / poll_max_seconds:
        Bounds of the random sleep between head-of-queue polls.
    ttl_ms:
        Lifetime of a retry-strategy lock key.
    retry_count / retry_delay_ms / retry_jitter_ms:
        Attempts per acquisition round and the spacing between them for the
        retry strategy.
    """

    strategy: LockStrategy = LockStrategy.QUEUE
    key_prefix: str = "scoped-store-lock:"
    queue_expiry_seconds: int = 10
    poll_min_seconds: float = 0.0002
    poll_max_seconds: float = 0.02
    ttl_ms: int = 5000
    retry_count: int = 3
    retry_delay_ms: int = 100
    retry_jitter_ms: int = 10

    def __post_init__(self) -> None:
        """Validate lock timing values."""
        self.strategy = LockStrategy(self.strategy)
        if self.queue_expiry_seconds <= 0:
            raise ValueError("LockConfig.queue_expiry_seconds must be >= 1.")
        if self.poll_min_seconds < 0:
            raise ValueError("LockConfig.poll_min_seconds must be >= 0.")
        if self.poll_max_seconds < self.poll_min_seconds:
            raise ValueError("LockConfig.poll_max_seconds must be >= poll_min_seconds.")
        if self.ttl_ms <= 0:
            raise ValueError("LockConfig.ttl_ms must be >= 1.")
        if self.retry_count <= 0:
            raise ValueError("LockConfig.retry_count must be >= 1.")
        if self.retry_delay_ms < 0 or self.retry_jitter_ms < 0:
            raise ValueError("LockConfig retry delay and jitter must be >= 0.")


@dataclass(slots=True)
class StoreConfig:
    """
    Top-level runtime configuration shared by a pool registry and its stores.

    Parameters
    ----------
    pool_size:
        Connections per endpoint pool. A held queue lock occupies one
        connection for its whole duration, so size pools for the number of
        concurrent lock holders plus ordinary traffic.
    pool_timeout_seconds:
        How long a checkout waits for a free connection before raising
        :class:`scoped_store.exceptions.StoreConnectionError`. ``None`` waits
        forever.
    socket_timeout_seconds:
        Socket read/connect timeout for Redis connections. ``None`` disables it.
    key_prefix:
        Prefix for the Redis hash that holds one scope.
    serializer:
        Name of the process-wide value codec (see :mod:`scoped_store.serializers`).
    lock:
        Distributed lock settings.
    """

    pool_size: int = 4
    pool_timeout_seconds: float | None = 20.0
    socket_timeout_seconds: float | None = 5.0
    key_prefix: str = "scoped-store:"
    serializer: str = "json"
    lock: LockConfig = field(default_factory=LockConfig)

    def __post_init__(self) -> None:
        """Validate configuration values that affect runtime safety."""
        if self.pool_size <= 0:
            raise ValueError("StoreConfig.pool_size must be >= 1.")
        if self.pool_timeout_seconds is not None and self.pool_timeout_seconds < 0:
            raise ValueError("StoreConfig.pool_timeout_seconds must be >= 0 or None.")
        if self.socket_timeout_seconds is not None and self.socket_timeout_seconds <= 0:
            raise ValueError("StoreConfig.socket_timeout_seconds must be > 0 or None.")
        if not self.serializer or not self.serializer.strip():
            raise ValueError("StoreConfig.serializer must be a non-empty name.")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StoreConfig":
        """
        Build configuration from ``SCOPED_STORE_*`` environment variables.

        Unset variables keep their dataclass defaults.

        Parameters
        ----------
        environ:
            Mapping to read instead of :data:`os.environ`.

        Raises
        ------
        ConfigurationError
            If a variable is present but cannot be parsed or fails validation.
        """
        env = os.environ if environ is None else environ
        reader = _EnvReader(env)

        lock_defaults = LockConfig()
        store_defaults = cls()
        try:
            lock = LockConfig(
                strategy=reader.text("LOCK_STRATEGY", lock_defaults.strategy.value).lower(),
                key_prefix=reader.text("LOCK_KEY_PREFIX", lock_defaults.key_prefix),
                queue_expiry_seconds=reader.integer("LOCK_EXPIRY", lock_defaults.queue_expiry_seconds),
                ttl_ms=reader.integer("LOCK_TTL", lock_defaults.ttl_ms),
                retry_count=reader.integer("LOCK_RETRY_COUNT", lock_defaults.retry_count),
                retry_delay_ms=reader.integer("LOCK_RETRY_DELAY", lock_defaults.retry_delay_ms),
                retry_jitter_ms=reader.integer("LOCK_RETRY_JITTER", lock_defaults.retry_jitter_ms),
            )
            return cls(
                pool_size=reader.integer("POOL_SIZE", store_defaults.pool_size),
                pool_timeout_seconds=reader.seconds("POOL_TIMEOUT", store_defaults.pool_timeout_seconds),
                socket_timeout_seconds=reader.seconds(
                    "SOCKET_TIMEOUT", store_defaults.socket_timeout_seconds
                ),
                key_prefix=reader.text("KEY_PREFIX", store_defaults.key_prefix),
                serializer=reader.text("SERIALIZER", store_defaults.serializer).lower(),
                lock=lock,
            )
        except ConfigurationError:
            raise
        except ValueError as exc:
            raise ConfigurationError(f"Invalid scoped store configuration: {exc}") from exc


class _EnvReader:
    """Typed accessors over an environment mapping."""

    def __init__(self, env: Mapping[str, str]) -> None:
        self._env = env

    def _raw(self, name: str) -> str | None:
        value = self._env.get(ENV_PREFIX + name)
        if value is None:
            return None
        return value.strip()

    def text(self, name: str, default: str) -> str:
        value = self._raw(name)
        return default if value is None else value

    def integer(self, name: str, default: int) -> int:
        value = self._raw(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigurationError(
                f"{ENV_PREFIX}{name} must be an integer, got {value!r}."
            ) from exc

    def seconds(self, name: str, default: float | None) -> float | None:
        value = self._raw(name)
        if value is None:
            return default
        if value == "" or value.lower() == "none":
            return None
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigurationError(
                f"{ENV_PREFIX}{name} must be a number of seconds or 'none', got {value!r}."
            ) from exc
