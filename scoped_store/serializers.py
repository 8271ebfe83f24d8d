"""
Value codecs used at the store boundary.

Stores hand every value to a :class:`Serializer` before it leaves the process
and decode every reply through the same codec. The codec is a process-wide
choice made through :attr:`scoped_store.config.StoreConfig.serializer`.

Mixing codecs against one logical scope is safe: any codec other than the
default stores into its own namespace, ``"<codec name>:<scope>"``. The default
JSON codec keeps the bare scope so existing data stays addressable, except
that a scope which could be read as ``"<codec name>:..."`` or that starts with
``"~"`` gets a ``"~"`` prefix. Codec names are limited to letters, digits,
``_``, ``.`` and ``-``, so the two families of namespaces never meet.
"""

from __future__ import annotations

import json
import pickle
import re
from threading import Lock
from typing import Any, Protocol

from .exceptions import ConfigurationError, SerializationError

DEFAULT_SERIALIZER = "json"

_CODEC_NAME = re.compile(r"[A-Za-z0-9_.-]+")
_CODEC_PREFIXED = re.compile(r"[A-Za-z0-9_.-]+:")
_ESCAPE = "~"


class Serializer(Protocol):
    """Behavioral contract for value codecs."""

    name: str
    """Stable codec name, also used to derive storage namespaces."""

    def dump(self, value: Any) -> bytes:
        """Encode one value to bytes."""

    def load(self, data: bytes) -> Any:
        """Decode bytes produced by :meth:`dump`."""


class JsonSerializer:
    """
    Compact JSON codec.

    Round trip follows JSON semantics: tuples come back as lists and mapping
    keys come back as strings.
    """

    name = DEFAULT_SERIALIZER

    def dump(self, value: Any) -> bytes:
        try:
            return json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Value is not JSON serializable: {exc}") from exc

    def load(self, data: bytes) -> Any:
        try:
            return json.loads(data)
        except (UnicodeDecodeError, ValueError) as exc:
            raise SerializationError(f"Stored value is not valid JSON: {exc}") from exc


class PickleSerializer:
    """
    Python-native codec for values JSON cannot represent.

    Only use it when every writer to the endpoint is trusted: unpickling
    executes arbitrary code embedded in the payload.
    """

    name = "pickle"

    def dump(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            raise SerializationError(f"Value cannot be pickled: {exc}") from exc

    def load(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except Exception as exc:  # noqa: BLE001 - unpickling can raise nearly anything
            raise SerializationError(f"Stored value cannot be unpickled: {exc}") from exc


_catalog_lock = Lock()
_catalog: dict[str, Serializer] = {
    JsonSerializer.name: JsonSerializer(),
    PickleSerializer.name: PickleSerializer(),
}


def register_serializer(serializer: Serializer, *, replace: bool = False) -> None:
    """
    Add a codec to the catalog so it can be selected by name.

    Raises
    ------
    ConfigurationError
        If the name is blank or malformed, or already taken and ``replace`` is
        false.
    """
    name = str(getattr(serializer, "name", "")).strip()
    if not name:
        raise ConfigurationError("Serializer.name must be a non-empty string.")
    _check_name(name)
    with _catalog_lock:
        if name.lower() in _catalog and not replace:
            raise ConfigurationError(f"Serializer {name!r} is already registered.")
        _catalog[name.lower()] = serializer


def get_serializer(name: str) -> Serializer:
    """Return the registered codec called ``name``."""
    key = str(name).strip().lower()
    with _catalog_lock:
        serializer = _catalog.get(key)
    if serializer is None:
        valid = ", ".join(available_serializers())
        raise ConfigurationError(f"Unknown serializer {name!r}. Registered: {valid}.")
    return serializer


def available_serializers() -> tuple[str, ...]:
    """Return registered codec names in sorted order."""
    with _catalog_lock:
        return tuple(sorted(_catalog))


def effective_scope(scope: str, serializer: Serializer) -> str:
    """
    Return the storage namespace for ``scope`` under ``serializer``.

    The default codec maps a scope to itself unless the scope starts with
    ``"~"`` or with something shaped like ``"<codec name>:"``; such scopes get
    a ``"~"`` prefix. Every other codec prefixes ``"<name>:"``. No two
    ``(scope, codec)`` pairs share a namespace.
    """
    if serializer.name == DEFAULT_SERIALIZER:
        if scope.startswith(_ESCAPE) or _CODEC_PREFIXED.match(scope):
            return f"{_ESCAPE}{scope}"
        return scope
    _check_name(serializer.name)
    return f"{serializer.name}:{scope}"


def _check_name(name: str) -> None:
    if not _CODEC_NAME.fullmatch(name):
        raise ConfigurationError(
            f"Serializer name {name!r} may only contain letters, digits, '_', '.' and '-'."
        )
