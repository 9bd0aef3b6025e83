import threading

import pytest

from chatbridge.core.exceptions import ConfigurationInvalidError
from chatbridge.services.rate_limiter import RateLimiter


def test_rejects_the_permit_after_the_last_in_window(clock):
    limiter = RateLimiter("refreshToken", permits=3, window_seconds=60, clock=clock)
    assert [limiter.try_acquire("ip-1") for _ in range(3)] == [True, True, True]
    assert limiter.try_acquire("ip-1") is False
    assert limiter.retry_after("ip-1") == 60


def test_window_slides_and_frees_permits(clock):
    limiter = RateLimiter("refreshToken", permits=2, window_seconds=60, clock=clock)
    assert limiter.try_acquire("ip-1")
    clock.advance(30)
    assert limiter.try_acquire("ip-1")
    assert not limiter.try_acquire("ip-1")
    assert limiter.retry_after("ip-1") == 30

    clock.advance(30)
    assert limiter.try_acquire("ip-1")
    assert not limiter.try_acquire("ip-1")

    clock.advance(60)
    assert limiter.retry_after("ip-1") == 0
    assert limiter.try_acquire("ip-1")
    assert limiter.try_acquire("ip-1")


def test_keys_are_limited_independently(clock):
    limiter = RateLimiter("refreshToken", permits=1, window_seconds=60, clock=clock)
    assert limiter.try_acquire("ip-1")
    assert not limiter.try_acquire("ip-1")
    assert limiter.try_acquire("ip-2")


def test_idle_keys_are_forgotten_once_the_window_passes(clock):
    limiter = RateLimiter("loginPerMinute", permits=5, window_seconds=60, clock=clock)
    for i in range(1000):
        assert limiter.try_acquire(f"10.0.0.1:user-{i}")
    assert len(limiter._buckets) == 1000

    clock.advance(3600)
    assert limiter.try_acquire("10.0.0.1:fresh")
    assert len(limiter._buckets) == 1


def test_keys_still_in_the_window_survive_a_sweep(clock):
    limiter = RateLimiter("loginPerMinute", permits=1, window_seconds=60, clock=clock)
    limiter.try_acquire("old")
    clock.advance(59)
    limiter.try_acquire("recent")
    clock.advance(1)

    assert limiter.try_acquire("other")
    assert set(limiter._buckets) == {"recent", "other"}
    assert not limiter.try_acquire("recent")


def test_denied_calls_do_not_consume_permits(clock):
    limiter = RateLimiter("refreshToken", permits=1, window_seconds=10, clock=clock)
    limiter.try_acquire("k")
    for _ in range(5):
        assert not limiter.try_acquire("k")
    clock.advance(10)
    assert limiter.try_acquire("k")


def test_concurrent_callers_never_exceed_permits(clock):
    limiter = RateLimiter("refreshToken", permits=25, window_seconds=60, clock=clock)
    barrier = threading.Barrier(8)
    granted = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        for _ in range(20):
            if limiter.try_acquire("shared"):
                with lock:
                    granted.append(1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(granted) == 25


@pytest.mark.parametrize("permits,window", [(0, 60), (5, 0), (-1, 10)])
def test_invalid_configuration(permits, window):
    with pytest.raises(ConfigurationInvalidError):
        RateLimiter("bad", permits=permits, window_seconds=window)
