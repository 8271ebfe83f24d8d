"""
Unit tests for the in-process backend.
"""

from __future__ import annotations

import threading
import time
import unittest

from scoped_store.config import StoreConfig
from scoped_store.exceptions import SerializationError
from scoped_store.serializers import PickleSerializer
from scoped_store.store import MemoryEngine, MemoryLock, MemoryScopedStore

ENDPOINT = "memory://local"
MISSING = object()


class MemoryScopedStoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = MemoryEngine()
        self.store = MemoryScopedStore(ENDPOINT, "foobar", engine=self.engine)

    def test_example_scenario(self) -> None:
        store = self.store
        store.clear()
        self.assertTrue(store.is_empty())

        store["foobar"] = {"a": 1}
        self.assertEqual({"a": 1}, store["foobar"])
        store.set("baz", True)
        self.assertEqual({"foobar", "baz"}, store.keys())

        store.delete("baz")
        self.assertEqual({"foobar"}, store.keys())

        store.merge({"foobar": 1, "baz": 2, "blah": 4})
        self.assertEqual(
            {"foobar": 1, "baz": 2, "blah": 4},
            store.multi_read("foobar", "baz", "blah", "fake"),
        )

        store.clear()
        self.assertTrue(store.is_empty())

    def test_absent_is_distinct_from_stored_none(self) -> None:
        self.store.set("none", None)
        self.assertIsNone(self.store.get("none", MISSING))
        self.assertIs(MISSING, self.store.get("nope", MISSING))
        self.assertIn("none", self.store)
        with self.assertRaises(KeyError):
            self.store["nope"]

    def test_values_are_copied_through_the_codec(self) -> None:
        record = {"items": [1]}
        self.store.set("r", record)
        record["items"].append(2)
        self.assertEqual({"items": [1]}, self.store.get("r"))

    def test_unencodable_value_raises(self) -> None:
        with self.assertRaises(SerializationError):
            self.store.set("bad", object())
        self.assertTrue(self.store.is_empty())

    def test_scopes_endpoints_and_codecs_are_isolated(self) -> None:
        other_scope = MemoryScopedStore(ENDPOINT, "other", engine=self.engine)
        other_endpoint = MemoryScopedStore("memory://elsewhere", "foobar", engine=self.engine)
        pickled = MemoryScopedStore(ENDPOINT, "foobar", engine=self.engine, serializer=PickleSerializer())

        self.store.set("k", "json")
        other_scope.set("k", "scope")
        other_endpoint.set("k", "endpoint")
        pickled.set("k", ("pickle",))

        self.assertEqual("json", self.store.get("k"))
        self.assertEqual(("pickle",), pickled.get("k"))
        self.assertEqual({"foobar", "other", "pickle:foobar"}, self.engine.namespaces(ENDPOINT))

    def test_codec_namespace_never_shadows_a_default_scope(self) -> None:
        MemoryScopedStore(ENDPOINT, "jobs", engine=self.engine, serializer=PickleSerializer()).set("k", 1)
        self.assertTrue(MemoryScopedStore(ENDPOINT, "pickle:jobs", engine=self.engine).is_empty())

    def test_configured_serializer_is_used_by_default(self) -> None:
        engine = MemoryEngine(StoreConfig(serializer="pickle"))
        self.assertEqual("pickle:foobar", MemoryScopedStore(ENDPOINT, "foobar", engine=engine).namespace)

    def test_empty_inputs_are_no_ops(self) -> None:
        self.store.multi_write(None)
        self.store.merge({})
        self.store.delete()
        self.assertEqual({}, self.store.multi_read())
        self.assertEqual(set(), self.engine.namespaces(ENDPOINT))


class MemoryLockTest(unittest.TestCase):
    def test_concurrent_increments_are_not_lost(self) -> None:
        engine = MemoryEngine()
        lock = MemoryLock(engine)

        def increment(held) -> None:
            counters = held.store("counters")
            current = counters.get("n", 0)
            time.sleep(0.001)
            counters.set("n", current + 1)

        threads = [
            threading.Thread(target=lock.with_lock, args=(ENDPOINT, "counter", increment))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10.0)

        self.assertEqual(8, MemoryScopedStore(ENDPOINT, "counters", engine=engine).get("n"))

    def test_returns_body_result_and_releases_on_failure(self) -> None:
        lock = MemoryLock(MemoryEngine())

        def boom(held) -> None:
            raise RuntimeError("body failed")

        with self.assertRaises(RuntimeError):
            lock.with_lock(ENDPOINT, "foobar", boom)
        self.assertEqual("foobar", lock.with_lock(ENDPOINT, "foobar", lambda held: held.name))


if __name__ == "__main__":
    unittest.main()
