import pytest

from tablestore.services import cache_service
from tablestore.services.cache_service import TTLCache


@pytest.fixture
def clock(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(cache_service.time, "monotonic", lambda: now[0])
    return now


def test_entries_expire(clock):
    cache = TTLCache(default_ttl=10)
    cache.set("a", 1)
    assert cache.get("a") == 1
    clock[0] += 10
    assert cache.get("a") is None


def test_non_positive_ttl_is_not_stored():
    cache = TTLCache()
    cache.set("a", 1, ttl=0)
    assert cache.get("a", "missing") == "missing"


def test_delete_prefix_only_touches_matching_keys():
    cache = TTLCache()
    cache.set("table:1:summary", "x")
    cache.set("table:1:column:sku:values", ["a"])
    cache.set("table:12:summary", "y")

    assert cache.delete_prefix("table:1:") == 2
    assert cache.get("table:12:summary") == "y"


def test_get_or_compute_caches_result():
    cache = TTLCache()
    calls = []

    def compute():
        calls.append(1)
        return {"total": 3}

    assert cache.get_or_compute("k", compute) == {"total": 3}
    assert cache.get_or_compute("k", compute) == {"total": 3}
    assert len(calls) == 1


def test_get_or_compute_survives_write_failure(monkeypatch):
    cache = TTLCache()

    def broken_set(*args, **kwargs):
        raise RuntimeError("cache down")

    monkeypatch.setattr(cache, "set", broken_set)
    assert cache.get_or_compute("k", lambda: 5) == 5
