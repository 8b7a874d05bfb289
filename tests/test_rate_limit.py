import threading

import pytest

from gatehouse.services.errors import RateLimitedError
from gatehouse.services.rate_limit import RateLimiter, TokenBucket


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


def test_bucket_allows_burst_then_refills_lazily():
    now = FakeMonotonic()
    bucket = TokenBucket(capacity=3, refill_per_second=1.0, clock=now)

    assert [bucket.try_consume() for _ in range(4)] == [True, True, True, False]

    now.value += 1.0
    assert bucket.try_consume() is True
    assert bucket.try_consume() is False


def test_bucket_never_exceeds_capacity():
    now = FakeMonotonic()
    bucket = TokenBucket(capacity=2, refill_per_second=10.0, clock=now)

    now.value += 3600
    assert [bucket.try_consume() for _ in range(3)] == [True, True, False]


def test_bucket_is_safe_under_concurrent_consumers():
    bucket = TokenBucket(capacity=50, refill_per_second=0.0)
    granted = []
    lock = threading.Lock()

    def consume():
        for _ in range(20):
            if bucket.try_consume():
                with lock:
                    granted.append(1)

    threads = [threading.Thread(target=consume) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(granted) == 50


def test_limiter_keys_are_independent():
    limiter = RateLimiter(capacity=1, refill_per_minute=0, clock=FakeMonotonic())

    limiter.check("10.0.0.1:/api/auth/login")
    limiter.check("10.0.0.2:/api/auth/login")
    with pytest.raises(RateLimitedError):
        limiter.check("10.0.0.1:/api/auth/login")


def test_prune_drops_idle_buckets():
    now = FakeMonotonic()
    limiter = RateLimiter(capacity=1, refill_per_minute=60, clock=now)
    limiter.allow("stale")
    now.value += 120
    limiter.allow("fresh")

    assert limiter.prune(idle_seconds=60) == 1
    assert len(limiter) == 1
