"""
Tests for the TTL cache backend, the best-effort facade and the key scheme.
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from pickup_checkout import cache as cache_module
from pickup_checkout.cache import (
    CacheLayer,
    TTLCache,
    available_windows_key,
    window_key,
    window_list_key,
)


class TestTTLCache:
    def test_set_and_get(self):
        c = TTLCache()
        c.set("a", {"x": 1}, ttl_seconds=60)
        assert c.get("a") == {"x": 1}

    def test_values_are_copied(self):
        c = TTLCache()
        rows = [{"reserved": 0}]
        c.set("rows", rows, ttl_seconds=60)
        rows[0]["reserved"] = 9

        cached = c.get("rows")
        assert cached == [{"reserved": 0}]
        cached[0]["reserved"] = 5
        assert c.get("rows") == [{"reserved": 0}]

    def test_expired_entry_is_a_miss(self, monkeypatch):
        clock = {"now": 1000.0}
        monkeypatch.setattr(cache_module.time, "time", lambda: clock["now"])
        c = TTLCache()
        c.set("a", 1, ttl_seconds=10)

        clock["now"] += 11
        assert c.get("a") is None
        assert len(c) == 0

    def test_lru_eviction(self, monkeypatch):
        clock = {"now": 1000.0}
        monkeypatch.setattr(cache_module.time, "time", lambda: clock["now"])
        c = TTLCache(max_entries=3)
        for key in ("a", "b", "c"):
            c.set(key, key, ttl_seconds=60)
            clock["now"] += 1
        c.get("a")
        clock["now"] += 1

        c.set("d", "d", ttl_seconds=60)

        assert len(c) == 3
        assert c.get("b") is None
        assert c.get("a") == "a"

    def test_delete_pattern(self):
        c = TTLCache()
        c.set(available_windows_key(1), [], 60)
        c.set(available_windows_key(1, datetime(2030, 1, 1)), [], 60)
        c.set(available_windows_key(12), [], 60)

        assert c.delete_pattern("pickup-window:available:point:1:*") == 2
        assert c.get(available_windows_key(12)) == []


class TestCacheLayer:
    """The facade never lets backend failures escape."""

    def test_backend_errors_are_swallowed(self):
        backend = MagicMock()
        backend.get.side_effect = ConnectionError("down")
        backend.set.side_effect = ConnectionError("down")
        backend.delete.side_effect = ConnectionError("down")
        backend.delete_pattern.side_effect = ConnectionError("down")
        layer = CacheLayer(backend)

        assert layer.get("k") is None
        layer.set("k", 1, 60)
        layer.delete("k")
        assert layer.invalidate_by_pattern("k*") == 0
        layer.invalidate_window(1, point_id=2)

    def test_invalidate_point_scope(self):
        layer = CacheLayer(TTLCache())
        own = available_windows_key(1)
        other = available_windows_key(10)
        listing_own = window_list_key(1, 20, point_id=1)
        listing_all = window_list_key(1, 20)
        listing_other = window_list_key(1, 20, point_id=10)
        for key in (own, other, listing_own, listing_all, listing_other, window_key(5)):
            layer.set(key, "v", 60)

        layer.invalidate_window(5, point_id=1)

        assert layer.get(own) is None
        assert layer.get(listing_own) is None
        assert layer.get(listing_all) is None
        assert layer.get(window_key(5)) is None
        assert layer.get(other) == "v"
        assert layer.get(listing_other) == "v"


class TestKeys:
    @pytest.mark.parametrize(
        "args,expected",
        [
            ((3,), "pickup-window:available:point:3:start:none:end:none"),
            (
                (3, datetime(2030, 3, 2, 10, 0), None),
                "pickup-window:available:point:3:start:2030-03-02T10:00:00:end:none",
            ),
        ],
    )
    def test_available_windows_key(self, args, expected):
        assert available_windows_key(*args) == expected

    def test_list_key_without_point(self):
        assert window_list_key(2, 50) == "pickup-window:all:page:2:limit:50:point:all:start:none:end:none"
