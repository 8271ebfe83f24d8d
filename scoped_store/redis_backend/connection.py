"""
Thin command interface over one checked-out Redis connection.

Stores and locks talk to Redis through :class:`BorrowedConnection` rather than
a ``redis.Redis`` client so that every command of one operation (or of one held
lock) provably runs on the same socket, including pipelined batches. Replies
are returned raw: bytes, integers, lists and ``None``.
"""

from __future__ import annotations

from typing import Any

import redis

from ..exceptions import CommandError, StoreConnectionError


def _redact(endpoint: str) -> str:
    """Hide the password part of a Redis URL for logs and errors."""
    scheme, sep, rest = endpoint.partition("://")
    if not sep or "@" not in rest:
        return endpoint
    credentials, _, host = rest.rpartition("@")
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


class BorrowedConnection:
    """
    One pooled connection checked out for exclusive use.

    Instances are created by
    :meth:`scoped_store.redis_backend.pools.ConnectionPoolRegistry.borrow` and
    are only valid inside that context.
    """

    def __init__(self, connection: Any, endpoint: str) -> None:
        self._connection = connection
        self._endpoint = endpoint
        self.broken = False

    @property
    def endpoint(self) -> str:
        """Return the endpoint URL the connection belongs to."""
        return self._endpoint

    @property
    def raw(self) -> Any:
        """Return the underlying redis-py connection."""
        return self._connection

    def call(self, *args: Any) -> Any:
        """
        Send one command and return its raw reply.

        Raises
        ------
        StoreConnectionError
            On socket, timeout or connect failure.
        CommandError
            When Redis answers with an error reply.
        """
        try:
            self._connection.send_command(*args)
            return self._connection.read_response()
        except redis.ResponseError as exc:
            raise CommandError(f"Redis rejected {args[0]!s}: {exc}") from exc
        except (redis.ConnectionError, redis.TimeoutError) as exc:
            self.broken = True
            raise StoreConnectionError(
                f"Redis command {args[0]!s} failed on {_redact(self._endpoint)}: {exc}"
            ) from exc
        except BaseException:
            # Unread replies may be left on the socket.
            self.broken = True
            raise

    def pipeline(self, *commands: tuple[Any, ...]) -> list[Any]:
        """
        Send all commands in one write and return their replies in order.

        The batch is not transactional: other clients may interleave between
        commands. Every reply is read even when some are errors, so the
        connection stays in sync; the first error is then raised.
        """
        if not commands:
            return []
        replies: list[Any] = []
        first_error: redis.ResponseError | None = None
        try:
            self._connection.send_packed_command(self._connection.pack_commands(commands))
            for _ in commands:
                try:
                    replies.append(self._connection.read_response())
                except redis.ResponseError as exc:
                    replies.append(exc)
                    if first_error is None:
                        first_error = exc
        except (redis.ConnectionError, redis.TimeoutError) as exc:
            self.broken = True
            names = " ".join(str(command[0]) for command in commands)
            raise StoreConnectionError(
                f"Redis pipeline [{names}] failed on {_redact(self._endpoint)}: {exc}"
            ) from exc
        except BaseException:
            self.broken = True
            raise
        if first_error is not None:
            raise CommandError(f"Redis rejected a pipelined command: {first_error}") from first_error
        return replies
