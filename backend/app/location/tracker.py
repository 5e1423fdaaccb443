"""
tracker.py — Periodic location sampling for the SOS timeline.

═══════════════════════════════════════════════════════════════════════════
SAMPLING LOOP
═══════════════════════════════════════════════════════════════════════════

    start()
      │
      ▼
    ┌──────────────────────┐   GeolocationError / timeout
    │ provider.acquire()   │ ─────────────────────────────▶ log, skip tick
    │ under acquire timeout│
    └──────────┬───────────┘
               │ sample
               ▼
    timeline.insert(sample)   (expired samples evicted)
               │
               ▼
    sleep(interval) ──▶ next tick          stop() cancels the task

The loop runs as one asyncio task on the application's event loop. Readers
get immutable snapshots, so an alert composed mid-tick sees either the
timeline before the insert or after it, never a partial state.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional, Tuple

from backend.app.alerts.models import LocationSample
from backend.app.core.redaction import log_operation
from backend.app.location.providers import GeolocationError, GeolocationProvider
from backend.app.location.timeline import LocationTimeline

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_INTERVAL_SECONDS = 3 * 60
DEFAULT_ACQUIRE_TIMEOUT_SECONDS = 15.0


class LocationTimelineTracker:
    """
    Keeps a LocationTimeline filled from a GeolocationProvider.

    Parameters
    ----------
    provider : GeolocationProvider
        Source of fixes.
    timeline : LocationTimeline
        Retention-bounded store the samples go into.
    interval_seconds : float
        Delay between two sampling ticks.
    acquire_timeout_seconds : float
        Upper bound on a single acquire() call.
    """

    def __init__(
        self,
        provider: GeolocationProvider,
        timeline: LocationTimeline,
        *,
        interval_seconds: float = DEFAULT_SAMPLE_INTERVAL_SECONDS,
        acquire_timeout_seconds: float = DEFAULT_ACQUIRE_TIMEOUT_SECONDS,
    ):
        self.provider = provider
        self.timeline = timeline
        self.interval_seconds = interval_seconds
        self.acquire_timeout_seconds = acquire_timeout_seconds
        self._task: Optional[asyncio.Task] = None
        self.failed_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Sample immediately, then every interval, until stop()."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="location-tracker")
        logger.info(
            "Location tracker started (provider=%s, every %.0fs)",
            self.provider.name, self.interval_seconds,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Location tracker stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.sample_once()
            except Exception as e:
                self.failed_ticks += 1
                logger.exception("Location sampling tick failed: %s", type(e).__name__)
            await asyncio.sleep(self.interval_seconds)

    async def _acquire(self) -> Optional[LocationSample]:
        """One bounded acquisition; failures are logged and yield None."""
        async with log_operation(
            logger, "location_sample", f"loc-{uuid.uuid4().hex[:8]}",
            provider=self.provider.name,
        ) as op:
            try:
                return await asyncio.wait_for(
                    self.provider.acquire(), timeout=self.acquire_timeout_seconds,
                )
            except asyncio.TimeoutError:
                op.fail("timeout", outcome="skipped")
            except GeolocationError as exc:
                op.fail(exc.reason, outcome="skipped")
        self.failed_ticks += 1
        return None

    async def sample_once(self) -> Optional[LocationSample]:
        """Run a single tick: acquire and, on success, record the sample."""
        sample = await self._acquire()
        if sample is not None:
            self.timeline.insert(sample)
        return sample

    def current_timeline(self) -> Tuple[LocationSample, ...]:
        return self.timeline.snapshot()

    def current_sample(self) -> Optional[LocationSample]:
        return self.timeline.latest()
