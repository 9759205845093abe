from pathlib import Path
from typing import List
from unittest.mock import MagicMock

import pytest

from hypercli.domain.interfaces.observer import DiagnosticObserver
from hypercli.infrastructure.cache.response_cache import ResponseCache


@pytest.fixture
def observer():
    return MagicMock(spec=DiagnosticObserver)


@pytest.fixture
def cache(clock, observer):
    return ResponseCache(
        capacity=3,
        default_ttl_ms=5000,
        namespace_ttls_ms={"search": 10_000, "block": 1000},
        observer=observer,
        clock=clock,
    )


def events(observer: MagicMock) -> List[str]:
    return [c.args[0].event for c in observer.emit.call_args_list]


def test_set_then_get_returns_value_and_age(cache: ResponseCache, clock):
    cache.set("search", "tasks", ["result"])
    clock.advance(2)
    hit = cache.get("search", "tasks")
    assert hit is not None
    assert hit.value == ["result"]
    assert hit.age_ms == 2000


def test_entry_expires_exactly_at_ttl(cache: ResponseCache, clock):
    cache.set("block", "b1", "content")
    clock.advance(0.5)
    assert cache.get("block", "b1") is not None
    clock.advance(0.5)
    assert cache.get("block", "b1") is None


def test_ttl_defaults_per_namespace_then_global(cache: ResponseCache):
    assert cache.ttl_for("search") == 10_000
    assert cache.ttl_for("unknown") == 5000


def test_explicit_ttl_overrides_namespace_default(cache: ResponseCache, clock):
    cache.set("search", "k", 1, ttl_ms=500)
    clock.advance(0.5)
    assert cache.get("search", "k") is None


def test_lru_eviction_removes_least_recently_accessed(cache: ResponseCache, observer):
    cache.set("search", "a", 1)
    cache.set("search", "b", 2)
    cache.set("page", "c", 3)
    cache.get("search", "a")
    cache.set("page", "d", 4)

    assert len(cache) == 3
    assert cache.get("search", "b") is None
    assert cache.get("search", "a").value == 1
    evictions = [c.args[0] for c in observer.emit.call_args_list if c.args[0].event == "cache_evict"]
    assert [(e.key, e.cause) for e in evictions] == [("b", "lru")]


def test_invalidate_key_and_namespace(cache: ResponseCache):
    cache.set("search", "a", 1)
    cache.set("search", "b", 2)
    cache.set("page", "c", 3)

    assert cache.invalidate("search", "a") == 1
    assert cache.get("search", "a") is None
    assert cache.invalidate("search") == 1
    assert cache.get("page", "c").value == 3
    assert cache.invalidate("search") == 0


def test_clear_and_stats(cache: ResponseCache):
    cache.set("search", "a", 1)
    cache.get("search", "a")
    cache.get("search", "missing")
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["sets"] == 1
    assert stats["hit_rate"] == 0.5
    assert stats["size"] == 1

    cache.clear()
    assert cache.stats()["size"] == 0


def test_events_are_emitted(cache: ResponseCache, observer, clock):
    cache.set("block", "k", 1)
    cache.get("block", "k")
    clock.advance(5)
    cache.get("block", "k")
    cache.invalidate("block")
    assert events(observer) == ["cache_set", "cache_hit", "cache_evict", "cache_miss", "cache_invalidate"]


def test_disabled_cache_always_misses(clock):
    cache = ResponseCache(enabled=False, clock=clock)
    cache.set("search", "a", 1)
    assert cache.get("search", "a") is None
    assert cache.stats()["sets"] == 0


def test_persistent_tier_survives_new_instance(tmp_path: Path, clock):
    first = ResponseCache(disk_dir=tmp_path / "disk", clock=clock)
    first.set("search", "tasks", {"id": "abc"})
    first.close()

    clock.advance(1)
    second = ResponseCache(disk_dir=tmp_path / "disk", clock=clock)
    hit = second.get("search", "tasks")
    assert hit is not None
    assert hit.value == {"id": "abc"}
    assert hit.age_ms == 1000
    assert second.stats()["size"] == 1  # promoted to memory
    second.close()


def test_persistent_entries_respect_ttl(tmp_path: Path, clock):
    first = ResponseCache(disk_dir=tmp_path / "disk", clock=clock, namespace_ttls_ms={"search": 1000})
    first.set("search", "tasks", 1)
    first.close()

    clock.advance(2)
    second = ResponseCache(disk_dir=tmp_path / "disk", clock=clock, namespace_ttls_ms={"search": 1000})
    assert second.get("search", "tasks") is None
    second.close()


def test_namespace_invalidation_reaches_persistent_tier(tmp_path: Path, clock):
    cache = ResponseCache(disk_dir=tmp_path / "disk", clock=clock)
    cache.set("search", "a", 1)
    cache.set("page", "b", 2)
    assert cache.invalidate("search") == 1
    cache.close()

    reopened = ResponseCache(disk_dir=tmp_path / "disk", clock=clock)
    assert reopened.get("search", "a") is None
    assert reopened.get("page", "b").value == 2
    reopened.close()


def test_lru_eviction_reaches_persistent_tier(tmp_path: Path, clock):
    cache = ResponseCache(capacity=1, disk_dir=tmp_path / "disk", clock=clock)
    cache.set("search", "a", 1)
    cache.set("search", "b", 2)

    assert cache.get("search", "a") is None
    assert cache.get("search", "b").value == 2
    assert cache.stats()["evictions"] == 1
    cache.close()
