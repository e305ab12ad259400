"""Fixed-window request limiting, keyed by source IP."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import redis


@dataclass(frozen=True)
class Hit:
    allowed: bool
    limit: int
    remaining: int
    reset_s: int  # seconds until the window rolls over


class RateLimiter(Protocol):
    def hit(self, key: str) -> Hit: ...

    def ping(self) -> bool: ...


class MemoryRateLimiter:
    """Per-process counters. Good for a single worker and for tests.

    Only the current window is kept: rolling over drops every count at once,
    and within a window at most ``max_keys`` sources are tracked (the oldest
    one seen is forgotten first).
    """

    def __init__(
        self,
        limit: int = 10,
        window_s: int = 60,
        clock: Callable[[], float] = time.time,
        max_keys: int = 10_000,
    ):
        self.limit = limit
        self.window_s = window_s
        self.max_keys = max_keys
        self._clock = clock
        self._lock = threading.Lock()
        self._start: int | None = None
        self._counts: dict[str, int] = {}  # insertion order = first seen

    def hit(self, key: str) -> Hit:
        now = self._clock()
        start = int(now // self.window_s) * self.window_s
        with self._lock:
            if start != self._start:
                self._start = start
                self._counts = {}
            count = self._counts.get(key)
            if count is None:
                if len(self._counts) >= self.max_keys:
                    del self._counts[next(iter(self._counts))]
                count = 0
            count += 1
            self._counts[key] = count
        reset = max(1, int(start + self.window_s - now))
        return Hit(allowed=count <= self.limit, limit=self.limit, remaining=max(0, self.limit - count), reset_s=reset)

    def tracked(self) -> int:
        return len(self._counts)

    def ping(self) -> bool:
        return True


class RedisRateLimiter:
    """Counters shared across workers: INCR + EXPIRE on a per-window key."""

    def __init__(self, client: redis.Redis, limit: int = 10, window_s: int = 60, prefix: str = "rl"):
        self.r = client
        self.limit = limit
        self.window_s = window_s
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> RedisRateLimiter:
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def hit(self, key: str) -> Hit:
        now = time.time()
        start = int(now // self.window_s) * self.window_s
        rkey = f"{self.prefix}:{key}:{start}"
        pipe = self.r.pipeline()
        pipe.incr(rkey)
        pipe.expire(rkey, self.window_s)
        count, _ = pipe.execute()
        count = int(count)
        reset = max(1, int(start + self.window_s - now))
        return Hit(allowed=count <= self.limit, limit=self.limit, remaining=max(0, self.limit - count), reset_s=reset)

    def ping(self) -> bool:
        try:
            return bool(self.r.ping())
        except redis.RedisError:
            return False
