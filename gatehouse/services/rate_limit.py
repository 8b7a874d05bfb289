"""In-memory token-bucket rate limiting, keyed per client."""
import threading
import time
from typing import Callable

from gatehouse.services.errors import RateLimitedError


class TokenBucket:
    """Refilled lazily from elapsed time on each access; no background timer."""

    def __init__(
        self,
        capacity: int,
        refill_per_second: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock = threading.Lock()

    @property
    def last_access(self) -> float:
        return self._updated

    def try_consume(self, amount: int = 1) -> bool:
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._updated)
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
            self._updated = now
            if self._tokens >= amount:
                self._tokens -= amount
                return True
            return False


class RateLimiter:
    """Registry of buckets. Buckets are created on first use and pruned when idle."""

    def __init__(
        self,
        capacity: int,
        refill_per_minute: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.capacity = capacity
        self.refill_per_second = refill_per_minute / 60.0
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def _bucket(self, key: str) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(self.capacity, self.refill_per_second, self._clock)
                self._buckets[key] = bucket
            return bucket

    def allow(self, key: str) -> bool:
        return self._bucket(key).try_consume()

    def check(self, key: str) -> None:
        if not self.allow(key):
            raise RateLimitedError(reason=f"bucket empty for {key}")

    def prune(self, idle_seconds: float) -> int:
        """Drop buckets untouched for ``idle_seconds``; returns how many were removed."""
        cutoff = self._clock() - idle_seconds
        with self._lock:
            stale = [key for key, bucket in self._buckets.items() if bucket.last_access < cutoff]
            for key in stale:
                del self._buckets[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._buckets)
