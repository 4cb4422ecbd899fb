import asyncio
import time

import pytest

from codelens.infrastructure.cache.caching_service import ResponseCache, canonicalize_options


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(default_ttl=60, clock=clock)


def test_get_after_set_returns_value(cache):
    value = {"issues": [], "suggestions": [], "metrics": {}}
    cache.set("const x=1;", value, {"language": "javascript", "rules": ["security"]})

    assert cache.get("const x=1;", {"language": "javascript", "rules": ["security"]}) == value
    assert cache.has("const x=1;", {"language": "javascript", "rules": ["security"]})


def test_cached_values_are_copied_on_write_and_read(cache):
    value = {"issues": [], "suggestions": [], "metrics": {}}
    cache.set("code", value)
    value["issues"].append({"message": "after write"})

    first = cache.get("code")
    first["issues"].append({"message": "after read"})

    assert first is not value
    assert cache.get("code") == {"issues": [], "suggestions": [], "metrics": {}}


def test_get_by_key_matches_get(cache):
    cache.set("code", "value", {"language": "go"})
    key = cache.fingerprint("code", {"language": "go"})

    assert cache.get_by_key(key) == "value"
    assert cache.get_by_key(None) is None


def test_option_key_order_does_not_change_fingerprint(cache):
    options_a = {"language": "python", "rules": ["a", "b"], "extra": {"x": 1, "y": 2}}
    options_b = {"extra": {"y": 2, "x": 1}, "rules": ["a", "b"], "language": "python"}

    cache.set("print(1)", "result", options_a)

    assert cache.fingerprint("print(1)", options_a) == cache.fingerprint("print(1)", options_b)
    assert cache.get("print(1)", options_b) == "result"


def test_sets_are_canonicalized():
    assert canonicalize_options({"rules": {"b", "a"}}) == canonicalize_options({"rules": frozenset({"a", "b"})})


def test_different_content_or_options_miss(cache):
    cache.set("a", 1, {"language": "go"})

    assert cache.get("b", {"language": "go"}) is None
    assert cache.get("a", {"language": "rust"}) is None
    assert cache.get("a") is None


def test_fingerprint_is_fixed_length_hex(cache):
    key = cache.fingerprint("x" * 10000, {"language": "c"})
    assert len(key) == 64
    int(key, 16)


def test_entry_expires_lazily_on_read(cache, clock):
    cache.set("code", "value", ttl=10)

    clock.now = 10
    assert cache.get("code") == "value"
    clock.now = 10.001
    assert cache.get("code") is None
    assert cache.stats()["size"] == 0


def test_entry_expires_after_real_time():
    cache = ResponseCache()
    cache.set("code", "value", ttl=0.010)

    time.sleep(0.020)

    assert cache.get("code") is None


def test_overwrite_resets_created_at_and_ttl(cache, clock):
    cache.set("code", "old", ttl=5)
    clock.now = 4
    cache.set("code", "new", ttl=5)
    clock.now = 8

    assert cache.get("code") == "new"


def test_cleanup_removes_only_expired_entries(cache, clock):
    cache.set("short", 1, ttl=1)
    cache.set("long", 2, ttl=100)
    clock.now = 2

    assert cache.cleanup() == 1
    assert cache.stats() == {"size": 1, "entries": 1}
    assert cache.get("long") == 2


def test_unserializable_options_degrade_to_miss(cache):
    options = {"callback": object()}

    cache.set("code", "value", options)

    assert cache.get("code", options) is None
    assert cache.stats()["size"] == 0


def test_delete_and_clear(cache):
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    assert cache.get("a") is None
    cache.clear()
    assert cache.stats()["size"] == 0


@pytest.mark.asyncio
async def test_auto_cleanup_sweeps_without_reads():
    cache = ResponseCache()
    cache.set("code", "value", ttl=0.01)

    task = cache.start_auto_cleanup(interval=0.02)
    try:
        await asyncio.sleep(0.06)
        assert cache.stats()["size"] == 0
    finally:
        task.cancel()


def test_auto_cleanup_rejects_non_positive_interval(cache):
    with pytest.raises(ValueError):
        cache.start_auto_cleanup(interval=0)
