"""
Storefront Rate Limiter: Fixed-Window Request Counting.

Per-process, in-memory counters keyed by client (usually the IP address).
The store never blocks and stays bounded: expired windows are pruned on
access at most once per window, and the number of tracked keys is capped.
Multi-process deployments that need a global limit should back this with
an external store instead.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable
import time


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single rate-limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


class RateLimiter:
    """Fixed-window rate limiter. Replace backing store for multi-process use."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        max_tracked_keys: int = 10_000,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_tracked_keys = max_tracked_keys
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._next_prune = clock() + window_seconds

    @property
    def tracked_keys(self) -> int:
        return len(self._entries)

    def check(self, key: str) -> RateLimitDecision:
        """Count one request for `key` and report whether it is allowed."""
        now = self._clock()
        if now >= self._next_prune or len(self._entries) >= self.max_tracked_keys:
            self.prune(now)

        entry = self._entries.get(key)
        if entry is None or entry.reset_at <= now:
            if entry is None and len(self._entries) >= self.max_tracked_keys:
                # Still full after pruning: evict the window closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k].reset_at)
                del self._entries[oldest]
            entry = RateLimitEntry(count=0, reset_at=now + self.window_seconds)
            self._entries[key] = entry

        entry.count += 1
        return RateLimitDecision(
            allowed=entry.count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - entry.count),
            reset_at=entry.reset_at,
        )

    def prune(self, now: float | None = None) -> int:
        """Drop expired windows. Returns count removed."""
        now = self._clock() if now is None else now
        expired = [k for k, v in self._entries.items() if v.reset_at <= now]
        for k in expired:
            del self._entries[k]
        self._next_prune = now + self.window_seconds
        return len(expired)

    def reset(self) -> None:
        self._entries.clear()
