"""
Unit tests for the file store and result cache.
"""

import pytest

from service_proxy.app.caching.result_cache import MISS, ResultCache
from service_proxy.app.caching.store import CacheEntry, FileStore
from shared.errors import CacheCorruptionError


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    file_store = FileStore(tmp_path / "cache", clock=clock)
    yield file_store
    file_store.close()


@pytest.fixture
def metrics():
    return DummyMetrics()


@pytest.fixture
def cache(store, metrics):
    return ResultCache("gallery", store, metrics)


class TestFileStore:
    """FileStore behaviour."""

    def test_write_then_read(self, store, clock):
        entry = store.write("k", {"a": 1}, ttl=10)

        assert entry.created_at == clock.now
        assert entry.expires_at == clock.now + 10
        assert store.read("k") == entry

    def test_missing_key(self, store):
        assert store.read("absent") is None

    def test_malformed_entry_raises(self, store):
        store._cache.set("broken", "not-a-dict")

        with pytest.raises(CacheCorruptionError):
            store.read("broken")

    def test_entries_survive_reopen(self, tmp_path, clock):
        first = FileStore(tmp_path / "shared", clock=clock)
        first.write("k", [1, 2, 3], ttl=60)
        first.close()

        second = FileStore(tmp_path / "shared", clock=clock)
        try:
            assert second.read("k").value == [1, 2, 3]
        finally:
            second.close()

    def test_health_check(self, store):
        assert store.check() is True


def test_cache_entry_from_dict_rejects_missing_fields():
    with pytest.raises(CacheCorruptionError):
        CacheEntry.from_dict({"key": "k", "value": 1})


class TestResultCache:
    """ResultCache behaviour."""

    def test_get_after_put_until_expiry(self, cache, clock):
        cache.put("2024", ["x"], ttl=300)

        assert cache.get("2024") == ["x"]
        assert cache.was_hit is True

        clock.now += 299
        assert cache.get("2024") == ["x"]

        clock.now += 1
        assert cache.get("2024") is MISS
        assert cache.was_hit is False

    def test_keys_do_not_share_entries(self, cache):
        cache.put("2024", ["2024"], ttl=300)
        cache.put("all", ["all"], ttl=300)

        assert cache.get("2023") is MISS
        assert cache.get("2024") == ["2024"]
        assert cache.get("all") == ["all"]

    def test_caches_are_namespaced(self, store):
        gallery = ResultCache("gallery", store)
        news = ResultCache("news", store)

        gallery.put("all", "images", ttl=60)

        assert news.get("all") is MISS
        assert gallery.get("all") == "images"

    def test_corrupt_entry_is_a_miss(self, cache, store):
        store._cache.set("gallery:2024", {"garbage": True})

        assert cache.get("2024") is MISS

    def test_write_failure_is_swallowed(self, cache, store, monkeypatch):
        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(store, "write", fail)

        cache.put("2024", ["x"], ttl=60)

        assert cache.get("2024") is MISS

    def test_hits_and_misses_are_counted(self, cache, metrics):
        cache.get("2024")
        cache.put("2024", [], ttl=60)
        cache.get("2024")

        assert metrics.counters == [
            ("cache_misses_total", {"cache": "gallery"}),
            ("cache_hits_total", {"cache": "gallery"}),
        ]

    def test_falsy_values_are_hits(self, cache):
        cache.put("empty", [], ttl=60)

        assert cache.get("empty") == []
        assert cache.was_hit is True
