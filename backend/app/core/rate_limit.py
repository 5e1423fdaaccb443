"""
Fixed-window rate limiter for the SOS endpoint.

Each client key (network origin) owns one bucket:

    window_start ──────────── window_seconds ────────────▶
        │ count = 1, 2, … quota → allow
        │ count > quota         → deny (retry after window end)
    next request after the window elapses starts a fresh window

The bucket map is the only state shared between concurrent requests, so
every read-modify-write happens under one ``asyncio.Lock``. Buckets whose
window has elapsed are pruned once the map reaches ``max_keys``; if it is
still full the oldest live bucket is evicted, so the map never exceeds
``max_keys``. Buckets are kept in window-start order, which makes pruning
look only at the front of the map.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict

logger = logging.getLogger(__name__)


@dataclass
class RateLimitBucket:
    window_start: float
    count: int = 0


@dataclass(frozen=True)
class RateDecision:
    """Admission result for one request."""
    allowed: bool
    remaining: int
    retry_after_seconds: float


class FixedWindowRateLimiter:
    """Per-key fixed window counter (default 20 requests / 60 seconds)."""

    def __init__(
        self,
        quota: int = 20,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10_000,
    ):
        if quota < 1:
            raise ValueError("quota must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.quota = quota
        self.window_seconds = window_seconds
        self._clock = clock
        self._max_keys = max_keys
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._lock = asyncio.Lock()

    async def admit(self, client_key: str) -> RateDecision:
        """Count one request for *client_key* and decide whether to admit it."""
        async with self._lock:
            now = self._clock()
            bucket = self._buckets.get(client_key)
            if bucket is None or now - bucket.window_start >= self.window_seconds:
                # Re-insert so iteration order stays oldest window first
                self._buckets.pop(client_key, None)
                if len(self._buckets) >= self._max_keys:
                    self._prune(now)
                bucket = RateLimitBucket(window_start=now)
                self._buckets[client_key] = bucket

            retry_after = bucket.window_start + self.window_seconds - now
            if bucket.count >= self.quota:
                return RateDecision(False, 0, retry_after)

            bucket.count += 1
            return RateDecision(True, self.quota - bucket.count, retry_after)

    def _prune(self, now: float) -> None:
        """Drop expired buckets, then the oldest live ones, until below max_keys."""
        expired = evicted = 0
        while self._buckets:
            key, oldest = next(iter(self._buckets.items()))
            if now - oldest.window_start >= self.window_seconds:
                expired += 1
            elif len(self._buckets) >= self._max_keys:
                evicted += 1
            else:
                break
            del self._buckets[key]
        logger.debug("Pruned %d expired rate-limit buckets", expired)
        if evicted:
            logger.warning(
                "Rate limiter at capacity (%d keys): evicted %d live bucket(s)",
                self._max_keys, evicted,
            )

    @property
    def tracked_keys(self) -> int:
        return len(self._buckets)
