"""
Custom exceptions used by the scoped store runtime.

Keeping library-specific errors in one module gives users a predictable
import surface for catching and handling operational edge cases.
"""

from __future__ import annotations

from enum import Enum


class StoreError(Exception):
    """Base error type for all library-level exceptions."""


class StoreConnectionError(StoreError):
    """
    Raised when the backing Redis engine cannot be reached.

    This covers refused or dropped sockets, read/connect timeouts, and pool
    exhaustion once the configured checkout timeout elapses. The library never
    retries these internally.
    """


class CommandError(StoreError):
    """
    Raised when Redis answers a command with an error reply.

    Typical causes are a key holding the wrong data type (``WRONGTYPE``) or a
    server too old for a command option such as ``EXPIRE ... NX``.
    """


class SerializationError(StoreError):
    """
    Raised when a value cannot be encoded or stored bytes cannot be decoded.

    The failure is fatal to the operation that triggered it; nothing is written
    when encoding fails.
    """


class ConfigurationError(StoreError, ValueError):
    """
    Raised when configuration input is unknown or malformed.

    Examples include an unknown serializer or backend name and environment
    variables that do not parse as numbers.
    """


class LockOutcome(str, Enum):
    """
    How a queue lock waiter was granted entry.

    HEAD
        The waiter's token reached the head of the queue.
    QUEUE_EXPIRED
        The queue expired while the waiter was still queued. Entry is granted
        anyway; the waiter then races openly with anyone else who saw the same
        expiry. This is a documented outcome, not an error.
    """

    HEAD = "head"
    QUEUE_EXPIRED = "queue_expired"
