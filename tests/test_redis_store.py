"""
Unit tests for the Redis scoped store running on the in-process engine emulator.
"""

from __future__ import annotations

import unittest

from fake_engine import FakeEngine
from scoped_store.config import StoreConfig
from scoped_store.exceptions import CommandError, SerializationError, StoreConnectionError
from scoped_store.redis_backend import ConnectionPoolRegistry, RedisScopedStore, list_namespaces
from scoped_store.serializers import PickleSerializer

ENDPOINT = "redis://fake:6379/8"
MISSING = object()


class RedisScopedStoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = FakeEngine()
        self.registry = ConnectionPoolRegistry(StoreConfig(), pool_factory=self.engine.pool_factory)
        self.store = RedisScopedStore(ENDPOINT, "foobar", registry=self.registry)

    def test_example_scenario(self) -> None:
        store = self.store
        store.clear()
        self.assertTrue(store.is_empty())

        store["foobar"] = {"a": 1}
        self.assertEqual({"a": 1}, store["foobar"])
        store.set("baz", True)

        self.assertEqual({"foobar", "baz"}, store.keys())
        self.assertFalse(store.is_empty())

        store.delete("baz")
        self.assertEqual({"foobar"}, store.keys())

        store.merge({"foobar": 1, "baz": 2, "blah": 4})
        self.assertEqual(1, store.get("foobar"))
        self.assertEqual(2, store.get("baz"))
        self.assertEqual(
            {"foobar": 1, "baz": 2, "blah": 4},
            store.multi_read("foobar", "baz", "blah", "fake"),
        )

        store.clear()
        self.assertTrue(store.is_empty())

    def test_commands_target_one_hash_per_scope(self) -> None:
        self.store.set("foo", {"a": 1})
        self.assertEqual({b"foo": b'{"a":1}'}, self.engine.raw_hash("scoped-store:foobar"))
        self.assertEqual(("HSET", "scoped-store:foobar", "foo", '{"a":1}'), self.engine.log[-1])

    def test_absent_is_distinct_from_stored_falsy_values(self) -> None:
        self.store.set("none", None)
        self.store.set("zero", 0)
        self.assertIsNone(self.store.get("none", MISSING))
        self.assertEqual(0, self.store.get("zero", MISSING))
        self.assertIs(MISSING, self.store.get("nope", MISSING))
        self.assertIsNone(self.store.get("nope"))
        self.assertIn("none", self.store)
        self.assertNotIn("nope", self.store)
        with self.assertRaises(KeyError):
            self.store["nope"]

    def test_keys_are_stored_as_strings(self) -> None:
        self.store.set(7, "seven")
        self.assertEqual("seven", self.store.get("7"))
        self.assertEqual({"7"}, self.store.keys())
        self.assertEqual({7: "seven"}, self.store.multi_read(7))

    def test_empty_inputs_issue_no_remote_command(self) -> None:
        self.assertIsNone(self.store.multi_write({}))
        self.assertIsNone(self.store.multi_write(None))
        self.assertIsNone(self.store.merge({}))
        self.assertIsNone(self.store.delete())
        self.assertEqual({}, self.store.multi_read())
        self.assertEqual([], self.engine.log)
        self.assertEqual((), self.registry.endpoints())

    def test_multi_read_omits_missing_keys(self) -> None:
        self.store.multi_write({"x": {"x": 1}, "z": {"z": 3}})
        self.assertEqual({"x": {"x": 1}, "z": {"z": 3}}, self.store.multi_read("x", "y", "z"))
        self.assertEqual({}, self.store.multi_read("p", "q"))

    def test_multi_write_is_a_single_command(self) -> None:
        self.store.multi_write({"a": {"a": 1}, "b": {"b": 2}})
        self.assertEqual(["HSET"], self.engine.command_names())
        self.assertEqual(2, len(self.store))

    def test_keys_pages_through_hscan(self) -> None:
        self.store.multi_write({f"k{index}": index for index in range(12_000)})
        keys = self.store.keys()
        self.assertEqual(12_000, len(keys))
        self.assertEqual(3, self.engine.command_names().count("HSCAN"))

    def test_keys_of_empty_scope(self) -> None:
        self.assertEqual(set(), self.store.keys())

    def test_scopes_are_isolated(self) -> None:
        other = RedisScopedStore(ENDPOINT, "other", registry=self.registry)
        self.store.set("shared", "A")
        other.set("shared", "B")
        other.set("only-b", 1)
        self.assertEqual("A", self.store.get("shared"))
        self.assertEqual({"shared"}, self.store.keys())
        other.clear()
        self.assertEqual("A", self.store.get("shared"))
        self.assertTrue(other.is_empty())

    def test_non_default_serializer_uses_disjoint_namespace(self) -> None:
        pickled = RedisScopedStore(ENDPOINT, "foobar", registry=self.registry, serializer=PickleSerializer())
        self.assertEqual("pickle:foobar", pickled.namespace)
        self.assertEqual("foobar", self.store.namespace)

        self.store.set("k", [1, 2])
        pickled.set("k", (1, 2))
        self.assertEqual([1, 2], self.store.get("k"))
        self.assertEqual((1, 2), pickled.get("k"))
        self.assertTrue(self.engine.exists("scoped-store:pickle:foobar"))

    def test_codec_namespace_never_shadows_a_default_scope(self) -> None:
        pickled = RedisScopedStore(ENDPOINT, "jobs", registry=self.registry, serializer=PickleSerializer())
        lookalike = RedisScopedStore(ENDPOINT, "pickle:jobs", registry=self.registry)
        pickled.set("k", 1)
        self.assertEqual(set(), lookalike.keys())
        lookalike.set("k", "json")
        self.assertEqual(1, pickled.get("k"))
        self.assertEqual("json", lookalike.get("k"))

    def test_configured_serializer_is_used_by_default(self) -> None:
        registry = ConnectionPoolRegistry(
            StoreConfig(serializer="pickle"), pool_factory=self.engine.pool_factory
        )
        store = RedisScopedStore(ENDPOINT, "foobar", registry=registry)
        self.assertEqual("pickle", store.serializer.name)
        self.assertEqual("pickle:foobar", store.namespace)

    def test_unencodable_value_writes_nothing(self) -> None:
        with self.assertRaises(SerializationError):
            self.store.set("bad", object())
        with self.assertRaises(SerializationError):
            self.store.multi_write({"ok": 1, "bad": object()})
        self.assertEqual([], self.engine.log)

    def test_malformed_stored_bytes_raise_serialization_error(self) -> None:
        self.engine.execute(("HSET", "scoped-store:foobar", "bad", b"\xff{"))
        with self.assertRaises(SerializationError):
            self.store.get("bad")
        with self.assertRaises(SerializationError):
            self.store.multi_read("bad")

    def test_wrong_key_type_raises_command_error(self) -> None:
        self.engine.execute(("RPUSH", "scoped-store:foobar", "x"))
        with self.assertRaises(CommandError):
            self.store.get("anything")

    def test_connection_failure_surfaces_and_returns_connection(self) -> None:
        self.engine.fail_commands = {"HGET"}
        with self.assertRaises(StoreConnectionError):
            self.store.get("k")
        pool = self.registry.pool_for(ENDPOINT)
        self.assertEqual(0, pool.checked_out)

    def test_pinned_store_never_borrows(self) -> None:
        with self.registry.borrow(ENDPOINT) as conn:
            pinned = self.store.pinned_to(conn)
            pinned.set("k", 1)
            self.assertEqual(1, pinned.get("k"))
            pool = self.registry.pool_for(ENDPOINT)
            self.assertEqual(1, pool.max_checked_out)
        self.assertEqual(1, self.store.get("k"))


class ListNamespacesTest(unittest.TestCase):
    def test_lists_hash_namespaces_under_prefix(self) -> None:
        engine = FakeEngine()
        registry = ConnectionPoolRegistry(StoreConfig(), pool_factory=engine.pool_factory)
        RedisScopedStore(ENDPOINT, "a", registry=registry).set("k", 1)
        RedisScopedStore(ENDPOINT, "b", registry=registry, serializer=PickleSerializer()).set("k", 1)
        engine.execute(("SET", "scoped-store:not-a-hash", "v"))
        engine.execute(("HSET", "unrelated", "f", "v"))

        self.assertEqual({"a", "pickle:b"}, list_namespaces(registry, ENDPOINT))
        self.assertEqual({"a"}, list_namespaces(registry, ENDPOINT, pattern="a*"))


if __name__ == "__main__":
    unittest.main()
