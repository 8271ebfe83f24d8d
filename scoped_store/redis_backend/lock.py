"""
Cross-process distributed lock built on Redis data structures.

Two strategies are available, selected by :class:`scoped_store.config.LockConfig`:

``queue`` (default)
    Waiters append a random token to a per-name Redis list and poll until
    their token is at the head. The holder pops the head when done. The list
    carries an expiry that every release refreshes, so under steady use it
    never lapses, while a holder that crashes mid-hold stops blocking the
    queue once the window runs out.

``retry``
    The lock is one ``SET NX PX`` key. Acquisition retries a bounded number of
    times with delay and jitter, then backs off and starts another round.
    Release deletes the key only if it still holds the owner's token.

Whichever strategy runs, the lock borrows one pooled connection for the whole
call and hands it to the guarded block through :class:`HeldLock`, so Redis work
done under the lock runs on that same connection.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from ..config import LockConfig, LockStrategy
from ..exceptions import LockOutcome, StoreError
from ..serializers import Serializer
from .connection import BorrowedConnection
from .store import RedisScopedStore

if TYPE_CHECKING:  # pragma: no cover - typing-only import
    from .pools import ConnectionPoolRegistry

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_COMPARE_AND_DELETE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  return redis.call('DEL', KEYS[1])
end
return 0
"""

# Outer backoff between retry-strategy rounds, in seconds.
_ROUND_BACKOFF = (0.001, 0.09)


@dataclass(slots=True)
class HeldLock:
    """
    Execution context handed to a block running under a distributed lock.

    Attributes
    ----------
    name:
        Lock name as given by the caller.
    endpoint:
        Redis URL the lock lives on.
    key:
        Redis key backing the lock.
    token:
        Random waiter token identifying this acquisition.
    outcome:
        :attr:`LockOutcome.HEAD` for a normal grant,
        :attr:`LockOutcome.QUEUE_EXPIRED` when entry followed queue expiry.
    connection:
        The pinned connection; valid only while the lock is held.
    """

    name: str
    endpoint: str
    key: str
    token: str
    outcome: LockOutcome
    connection: BorrowedConnection
    registry: "ConnectionPoolRegistry"

    def store(self, scope: str, *, serializer: Serializer | None = None) -> RedisScopedStore:
        """Return a store on the lock's endpoint that runs on the pinned connection."""
        return RedisScopedStore(
            self.endpoint,
            scope,
            registry=self.registry,
            serializer=serializer,
            connection=self.connection,
        )


class DistributedLock:
    """
    Named mutual exclusion across threads and processes.

    Parameters
    ----------
    registry:
        Pool registry whose endpoints host the lock keys.
    config:
        Lock settings. Defaults to ``registry.config.lock``.
    sleep / rng:
        Injection points for the poll sleep and its randomness.
    """

    def __init__(
        self,
        registry: "ConnectionPoolRegistry",
        *,
        config: LockConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._registry = registry
        self.config = config or registry.config.lock
        self._sleep = sleep
        self._rng = rng or random.Random()

    def key_for(self, name: str) -> str:
        """Return the Redis key backing lock ``name``."""
        return f"{self.config.key_prefix}{name}"

    def with_lock(self, endpoint: str, name: str, body: Callable[[HeldLock], T]) -> T:
        """
        Run ``body(held)`` while holding lock ``name`` and return its result.

        Cleanup always runs; a failure raised by ``body`` propagates after it.
        There is no wait timeout beyond the queue's own expiry window.
        """
        with self.hold(endpoint, name) as held:
            return body(held)

    @contextmanager
    def hold(self, endpoint: str, name: str) -> Iterator[HeldLock]:
        """Context manager form of :meth:`with_lock`."""
        with self._registry.borrow(endpoint) as conn:
            if self.config.strategy is LockStrategy.RETRY:
                held = self._acquire_retry(conn, endpoint, name)
                release = self._release_retry
            else:
                held = self._acquire_queue(conn, endpoint, name)
                release = self._release_queue
            try:
                yield held
            except BaseException:
                # The block's own failure wins over a failed release.
                try:
                    release(held)
                except StoreError:
                    _LOGGER.warning(
                        "Lock release failed while block was failing name=%s token=%s",
                        name,
                        held.token,
                        exc_info=True,
                    )
                raise
            release(held)

    # ------------------------------------------------------------------ #
    # Queue strategy
    # ------------------------------------------------------------------ #

    def _acquire_queue(self, conn: BorrowedConnection, endpoint: str, name: str) -> HeldLock:
        key = self.key_for(name)
        token = uuid.uuid4().hex
        window = self.config.queue_expiry_seconds

        # NX keeps a countdown refreshed by a release from being shortened.
        conn.pipeline(("RPUSH", key, token), ("EXPIRE", key, window, "NX"))
        try:
            outcome = self._wait_for_head(conn, key, token)
        except BaseException:
            with suppress(StoreError):
                conn.call("LREM", key, 1, token)
            raise

        if outcome is LockOutcome.QUEUE_EXPIRED:
            _LOGGER.warning(
                "Lock queue expired before token reached head name=%s token=%s; entering unguarded",
                name,
                token,
            )
        else:
            _LOGGER.debug("Acquired queue lock name=%s token=%s", name, token)
        return HeldLock(
            name=name,
            endpoint=endpoint,
            key=key,
            token=token,
            outcome=outcome,
            connection=conn,
            registry=self._registry,
        )

    def _wait_for_head(self, conn: BorrowedConnection, key: str, token: str) -> LockOutcome:
        while True:
            head = conn.call("LINDEX", key, 0)
            if head is None:
                return LockOutcome.QUEUE_EXPIRED
            if _is_token(head, token):
                return LockOutcome.HEAD
            self._sleep(self._rng.uniform(self.config.poll_min_seconds, self.config.poll_max_seconds))

    def _release_queue(self, held: HeldLock) -> None:
        conn = held.connection
        key = held.key
        window = self.config.queue_expiry_seconds

        if held.outcome is LockOutcome.QUEUE_EXPIRED:
            conn.pipeline(("LREM", key, 1, held.token), ("EXPIRE", key, window))
            _LOGGER.debug("Released expired-queue lock name=%s token=%s", held.name, held.token)
            return

        popped, _ = conn.pipeline(("LPOP", key), ("EXPIRE", key, window))
        if _is_token(popped, held.token):
            _LOGGER.debug("Released queue lock name=%s token=%s", held.name, held.token)
            return
        if popped is None:
            _LOGGER.warning(
                "Lock hold outlived queue expiry name=%s token=%s window=%ds; queue already gone",
                held.name,
                held.token,
                window,
            )
            return

        # The queue lapsed during the hold and other waiters rebuilt it: put
        # their head back and drop our own token wherever it is.
        _LOGGER.warning(
            "Lock hold outlived queue expiry name=%s token=%s window=%ds; restoring head",
            held.name,
            held.token,
            window,
        )
        conn.pipeline(("LPUSH", key, popped), ("LREM", key, 1, held.token), ("EXPIRE", key, window))

    # ------------------------------------------------------------------ #
    # Retry strategy
    # ------------------------------------------------------------------ #

    def _acquire_retry(self, conn: BorrowedConnection, endpoint: str, name: str) -> HeldLock:
        key = self.key_for(name)
        token = uuid.uuid4().hex
        config = self.config
        rounds = 0
        while True:
            rounds += 1
            for attempt in range(config.retry_count):
                if conn.call("SET", key, token, "NX", "PX", config.ttl_ms) is not None:
                    _LOGGER.debug(
                        "Acquired retry lock name=%s token=%s rounds=%d", name, token, rounds
                    )
                    return HeldLock(
                        name=name,
                        endpoint=endpoint,
                        key=key,
                        token=token,
                        outcome=LockOutcome.HEAD,
                        connection=conn,
                        registry=self._registry,
                    )
                if attempt + 1 < config.retry_count:
                    delay_ms = config.retry_delay_ms + self._rng.uniform(0, config.retry_jitter_ms)
                    self._sleep(delay_ms / 1000.0)
            self._sleep(self._rng.uniform(*_ROUND_BACKOFF))

    def _release_retry(self, held: HeldLock) -> None:
        deleted = held.connection.call("EVAL", _COMPARE_AND_DELETE_LUA, 1, held.key, held.token)
        if not deleted:
            _LOGGER.warning(
                "Retry lock expired before release name=%s token=%s ttl_ms=%d",
                held.name,
                held.token,
                self.config.ttl_ms,
            )
        else:
            _LOGGER.debug("Released retry lock name=%s token=%s", held.name, held.token)


def _is_token(reply: bytes | str | None, token: str) -> bool:
    if isinstance(reply, bytes):
        return reply == token.encode("ascii")
    return reply == token


def with_lock(
    registry: "ConnectionPoolRegistry",
    endpoint: str,
    name: str,
    body: Callable[[HeldLock], Any],
) -> Any:
    """Run ``body`` under lock ``name`` using ``registry``'s lock settings."""
    return DistributedLock(registry).with_lock(endpoint, name, body)
