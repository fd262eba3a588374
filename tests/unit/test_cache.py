from __future__ import annotations

import unittest

from tests.unit._bootstrap import ensure_project_on_path


ensure_project_on_path()


class TestCache(unittest.TestCase):
    def test_inmemory_cache_set_get(self) -> None:
        from services.cache import InMemoryCache

        c = InMemoryCache(max_items=2)
        c.set("a", 1)
        self.assertEqual(c.get("a"), 1)
        self.assertIsNone(c.get("missing"))

    def test_make_cache_key_is_stable(self) -> None:
        from services.cache import make_cache_key

        k1 = make_cache_key(namespace="x", version="v1", payload={"a": 1, "b": 2})
        k2 = make_cache_key(namespace="x", version="v1", payload={"b": 2, "a": 1})
        k3 = make_cache_key(namespace="x", version="v2", payload={"a": 1, "b": 2})
        self.assertEqual(k1, k2)
        self.assertNotEqual(k1, k3)
        self.assertTrue(k1.startswith("x:"))

    def test_inmemory_cache_ttl_expires(self) -> None:
        from services.cache import InMemoryCache

        c = InMemoryCache(max_items=2)
        c.set("a", 1, ttl_s=0)
        self.assertIsNone(c.get("a"))

    def test_lru_eviction_and_stats(self) -> None:
        from services.cache import InMemoryCache

        c = InMemoryCache(max_items=2)
        c.set("a", 1)
        c.set("b", 2)
        self.assertEqual(c.get("a"), 1)
        c.set("c", 3)
        # "b" est le moins recemment utilise.
        self.assertIsNone(c.get("b"))
        self.assertEqual(c.get("c"), 3)

        stats = c.stats()
        self.assertEqual((stats.hits, stats.misses, stats.size), (2, 1, 2))

    def test_null_cache(self) -> None:
        from services.cache import NullCache

        c = NullCache()
        c.set("a", 1)
        self.assertIsNone(c.get("a"))


if __name__ == "__main__":
    unittest.main()
