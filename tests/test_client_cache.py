"""
Tests for the process-local client list cache.
"""

import pytest

from taxengine.client_cache import ClientListCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingLoader:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


def test_served_from_cache_within_ttl():
    clock = FakeClock()
    loader = CountingLoader([{"uuid": "a"}], [{"uuid": "a"}, {"uuid": "b"}])
    cache = ClientListCache(loader, ttl_seconds=60, clock=clock)

    assert cache.get() == [{"uuid": "a"}]
    clock.now += 59
    assert cache.get() == [{"uuid": "a"}]
    assert loader.calls == 1


def test_reloads_after_ttl():
    clock = FakeClock()
    loader = CountingLoader([{"uuid": "a"}], [{"uuid": "a"}, {"uuid": "b"}])
    cache = ClientListCache(loader, ttl_seconds=60, clock=clock)

    cache.get()
    clock.now += 60
    assert len(cache.get()) == 2
    assert loader.calls == 2


def test_invalidate_forces_reload():
    loader = CountingLoader([{"uuid": "a"}], [])
    cache = ClientListCache(loader, clock=FakeClock())

    cache.get()
    cache.invalidate()
    assert not cache.is_fresh()
    assert cache.get() == []
    assert loader.calls == 2


def test_refresh_ignores_ttl():
    loader = CountingLoader([{"uuid": "a"}], [{"uuid": "b"}])
    cache = ClientListCache(loader, clock=FakeClock())

    cache.get()
    assert cache.refresh() == [{"uuid": "b"}]


def test_failed_refresh_keeps_previous_contents():
    loader = CountingLoader([{"uuid": "a"}], RuntimeError("database down"))
    cache = ClientListCache(loader, clock=FakeClock())

    cache.get()
    with pytest.raises(RuntimeError):
        cache.refresh()
    assert cache.get() == [{"uuid": "a"}]


def test_returned_list_is_a_copy():
    cache = ClientListCache(CountingLoader([{"uuid": "a"}]), clock=FakeClock())
    cache.get().clear()
    assert cache.get() == [{"uuid": "a"}]
