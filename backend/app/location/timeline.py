"""
timeline.py — Retention-bounded store of recent location samples.

    oldest ──────────────────────────────────────────▶ newest
    [s0] [s1] [s2] ... [sN]          (sorted by timestamp)
      ▲
      └── evicted once older than now - retention

Samples are appended in timestamp order; an out-of-order sample is
inserted at its sorted position. Eviction happens on every insert and
snapshots additionally filter by the current time, so a reader never sees
a sample older than the retention window even if no insert happened
recently.
"""

from __future__ import annotations

import bisect
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from backend.app.alerts.models import LocationSample

DEFAULT_RETENTION_SECONDS = 30 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocationTimeline:
    """
    Parameters
    ----------
    retention_seconds : float
        Samples older than this (relative to *clock*) are dropped.
    clock : callable
        Returns the current timezone-aware time. Injected by tests.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be positive")
        self.retention = timedelta(seconds=retention_seconds)
        self._clock = clock
        self._samples: List[LocationSample] = []

    def __len__(self) -> int:
        return len(self._samples)

    def _cutoff(self) -> datetime:
        return self._clock() - self.retention

    def _evict(self) -> None:
        cutoff = self._cutoff()
        keep_from = 0
        while keep_from < len(self._samples) and self._samples[keep_from].timestamp < cutoff:
            keep_from += 1
        if keep_from:
            del self._samples[:keep_from]

    def insert(self, sample: LocationSample) -> None:
        """Add *sample* in timestamp order and drop expired entries."""
        keys = [s.timestamp for s in self._samples]
        self._samples.insert(bisect.bisect_right(keys, sample.timestamp), sample)
        self._evict()

    def snapshot(self) -> Tuple[LocationSample, ...]:
        """Immutable, ordered copy of the samples inside the retention window."""
        cutoff = self._cutoff()
        return tuple(s for s in self._samples if s.timestamp >= cutoff)

    def latest(self) -> Optional[LocationSample]:
        retained = self.snapshot()
        return retained[-1] if retained else None

    def clear(self) -> None:
        self._samples.clear()
