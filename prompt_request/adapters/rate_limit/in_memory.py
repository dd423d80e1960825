"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: keys are spread over lock-striped shards, so a read-modify-write
  on one key is atomic and unrelated keys rarely share a lock.
- Bounded: a key whose window has lapsed carries no state, so each shard drops
  such keys at most once per window, on the next check that touches it.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from prompt_request.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

DEFAULT_SHARDS = 16


class _Shard:
    __slots__ = ("lock", "last_permitted", "last_sweep")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.last_permitted: dict[str, float] = {}
        self.last_sweep: float | None = None


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Permit one call per key per window.

    Every admitted call restarts the key's window, so a caller hammering at
    exactly the window boundary is admitted at most once per window. A
    rejected call does not move the window.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        shards: int = DEFAULT_SHARDS,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            window_seconds: Size of the fixed window in seconds.
            clock: Monotonic time source returning seconds.
            shards: Number of independently locked partitions of the key space.

        Raises:
            ValueError: If window_seconds or shards are invalid.
        """
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if shards < 1:
            raise ValueError("shards must be >= 1")

        self._window_seconds = float(window_seconds)
        self._clock = clock
        self._shards = tuple(_Shard() for _ in range(shards))

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    def _retry_after(self, elapsed: float) -> int:
        """Remaining window rounded up to whole seconds, never below 1."""
        return max(1, math.ceil(self._window_seconds - elapsed))

    def _sweep(self, shard: _Shard, now: float) -> None:
        """Drop expired keys from a shard. Caller holds the shard lock."""
        if shard.last_sweep is not None and now - shard.last_sweep < self._window_seconds:
            return
        shard.last_sweep = now
        expired = [
            key
            for key, permitted_at in shard.last_permitted.items()
            if now - permitted_at >= self._window_seconds
        ]
        for key in expired:
            del shard.last_permitted[key]

    def check(self, key: str) -> RateLimitResult:
        """Admit the call and restart the window, or reject with a retry hint.

        Args:
            key: Unique identifier for rate limiting.

        Returns:
            RateLimitResult with the allowance decision.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        shard = self._shard_for(key)
        with shard.lock:
            now = self._clock()
            self._sweep(shard, now)
            previous = shard.last_permitted.get(key)
            if previous is not None:
                elapsed = now - previous
                if elapsed < self._window_seconds:
                    return RateLimitResult(
                        allowed=False,
                        window_seconds=self._window_seconds,
                        retry_after_seconds=self._retry_after(elapsed),
                    )
            shard.last_permitted[key] = now

        return RateLimitResult(
            allowed=True,
            window_seconds=self._window_seconds,
            retry_after_seconds=None,
        )

    def __len__(self) -> int:
        return sum(len(shard.last_permitted) for shard in self._shards)
