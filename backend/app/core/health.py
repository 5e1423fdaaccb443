"""
Health check aggregation — deep health probe for the SOS service.

Checks:
    • Delivery channels (at least one configured, in priority order)
    • Location tracker (running, samples retained)
    • Rate limiter (tracked client keys)

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards

Readiness fails (UNHEALTHY) only when no channel is configured: without a
channel every SOS request would end in a 500.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from backend.app.core.config import Settings

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = ""
    environment: str = ""
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


def check_channels(dispatcher) -> ComponentHealth:
    """At least one delivery channel must be usable."""
    comp = ComponentHealth(name="channels")
    start = time.monotonic()
    channel_ids = dispatcher.channel_ids if dispatcher is not None else []
    comp.details = {"configured": channel_ids}
    if not channel_ids:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "No notification channel is configured"
    else:
        comp.message = f"{len(channel_ids)} channel(s) available"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_tracker(tracker) -> ComponentHealth:
    """Location tracking is optional; a stopped tracker only degrades."""
    comp = ComponentHealth(name="location_tracker")
    start = time.monotonic()
    if tracker is None:
        comp.message = "Location tracking disabled"
        comp.details = {"enabled": False}
    else:
        latest = tracker.current_sample()
        comp.details = {
            "enabled": True,
            "provider": tracker.provider.name,
            "running": tracker.is_running,
            "retained_samples": len(tracker.current_timeline()),
            "failed_ticks": tracker.failed_ticks,
            "last_sample_at": latest.timestamp.isoformat() if latest else None,
        }
        if not tracker.is_running:
            comp.status = HealthStatus.DEGRADED
            comp.message = "Tracker not running"
        else:
            comp.message = "Sampling"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_rate_limiter(limiter) -> ComponentHealth:
    comp = ComponentHealth(name="rate_limiter")
    start = time.monotonic()
    if limiter is None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Rate limiter not initialised"
    else:
        comp.details = {
            "quota": limiter.quota,
            "window_seconds": limiter.window_seconds,
            "tracked_keys": limiter.tracked_keys,
        }
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(
    settings: Settings,
    *,
    dispatcher=None,
    tracker=None,
    rate_limiter=None,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    report.components.extend([
        check_channels(dispatcher),
        check_tracker(tracker),
        check_rate_limiter(rate_limiter),
    ])

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
