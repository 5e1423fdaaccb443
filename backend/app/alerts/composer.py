"""
composer.py — Render the location-aware SOS message.

Message template:

    🚨 SOS Alert - Emergency Location Update

    Current Time: 2026-10-19 14:03:27 UTC
    Current Location: https://maps.google.com/?q=13.082700,80.270700

    Last 30 min timeline:
    1. 13:36:01 UTC - https://maps.google.com/?q=13.080100,80.268800
    2. 13:39:01 UTC - https://maps.google.com/?q=13.081000,80.269900
    ...

Pure formatting: the output depends only on the arguments, so the same
samples always produce the same text.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from backend.app.alerts.models import LocationSample

SOS_HEADER = "🚨 SOS Alert - Emergency Location Update"
MAP_LINK = "https://maps.google.com/?q={lat:.6f},{lng:.6f}"


def map_link(sample: LocationSample) -> str:
    return MAP_LINK.format(lat=sample.latitude, lng=sample.longitude)


def _utc(ts: datetime, fmt: str) -> str:
    return ts.astimezone(timezone.utc).strftime(fmt)


def compose_alert_message(
    current: LocationSample,
    timeline: Iterable[LocationSample],
    *,
    window_minutes: int = 30,
) -> str:
    """Merge the current fix and the retained timeline into alert text."""
    ordered = sorted(timeline, key=lambda s: s.timestamp)

    lines = [
        SOS_HEADER,
        "",
        f"Current Time: {_utc(current.timestamp, '%Y-%m-%d %H:%M:%S UTC')}",
        f"Current Location: {map_link(current)}",
        "",
        f"Last {window_minutes} min timeline:",
    ]
    if ordered:
        lines.extend(
            f"{idx}. {_utc(sample.timestamp, '%H:%M:%S UTC')} - {map_link(sample)}"
            for idx, sample in enumerate(ordered, start=1)
        )
    else:
        lines.append("No location history recorded.")

    return "\n".join(lines)
