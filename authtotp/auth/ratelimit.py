"""
Per-identity token bucket rate limiting.

Guards the verification and recovery paths against brute force. Each
identity gets `capacity` attempts in a burst, refilled continuously at one
token per `rate` seconds.

State is in-process only: several service replicas each enforce their own
limit.
"""
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    tokens: float
    last_update: float


class TokenBucketLimiter:
    """
    Thread-safe in-memory token bucket limiter.

    The identity map is bounded: buckets idle long enough to be full again
    are swept, and when the map is still at `max_entries` the bucket with the
    most tokens is evicted (least recently used among equals). Drained
    buckets are evicted only once every tracked identity is drained.

    Example usage:
        limiter = TokenBucketLimiter(rate=30, capacity=3)
        if not limiter.allow("alice"):
            raise RateLimited()
    """

    def __init__(
        self,
        rate: float = 30.0,
        capacity: int = 3,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10000,
    ):
        """
        Args:
            rate: Seconds to refill one token.
            capacity: Maximum burst size.
            clock: Monotonic time source in seconds.
            max_entries: Maximum number of tracked identities.
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.rate = float(rate)
        self.capacity = capacity
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: "OrderedDict[str, _Bucket]" = OrderedDict()

    @property
    def idle_after(self) -> float:
        """Seconds after which an untouched bucket is full again."""
        return self.capacity * self.rate

    def allow(self, identity: str) -> bool:
        """
        Consume one token for `identity` if available.

        Returns:
            True if the attempt is allowed, False if rate limited.
        """
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(identity)

            if bucket is None:
                self._make_room(now)
                # First sighting consumes the implicit first token
                self._buckets[identity] = _Bucket(tokens=float(self.capacity - 1), last_update=now)
                return True

            self._buckets.move_to_end(identity)

            bucket.tokens = self._refilled(bucket, now)
            bucket.last_update = now

            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True

        logger.warning(f"Rate limit exceeded for identity {identity}")
        return False

    def sweep(self) -> int:
        """
        Drop buckets that have been idle long enough to be full.

        A full bucket behaves exactly like a missing one, so this never
        changes an allow/deny decision.

        Returns:
            Number of buckets removed.
        """
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        stale = [
            key for key, bucket in self._buckets.items()
            if now - bucket.last_update >= self.idle_after
        ]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug(f"Swept {len(stale)} idle rate limit buckets")
        return len(stale)

    def _make_room(self, now: float) -> None:
        if len(self._buckets) < self.max_entries:
            return
        self._sweep_locked(now)
        while len(self._buckets) >= self.max_entries:
            # Fullest first; max() keeps the least recently used among ties
            evicted = max(self._buckets, key=lambda key: self._refilled(self._buckets[key], now))
            del self._buckets[evicted]
            logger.info(f"Rate limit map full, evicted bucket for {evicted}")

    def _refilled(self, bucket: _Bucket, now: float) -> float:
        elapsed = max(0.0, now - bucket.last_update)
        return min(float(self.capacity), bucket.tokens + elapsed / self.rate)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)
