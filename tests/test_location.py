"""
test_location.py — Location timeline, providers, tracker and message composer.

Covers:
    • Retention window eviction and ordering
    • Static and IP geolocation providers
    • Tracker ticks: success, provider failure, timeout, start/stop
    • Alert message composition

Run with:
    pytest tests/test_location.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from backend.app.alerts.composer import SOS_HEADER, compose_alert_message, map_link
from backend.app.alerts.models import LocationSample
from backend.app.location import (
    GeolocationError,
    GeolocationProvider,
    IpGeolocationProvider,
    LocationTimeline,
    LocationTimelineTracker,
    StaticLocationProvider,
    build_geolocation_provider,
)

from conftest import BASE_TIME, CHENNAI_LAT, CHENNAI_LON, make_settings, mock_client


def _sample(minutes_ago: float, lat: float = CHENNAI_LAT, lon: float = CHENNAI_LON) -> LocationSample:
    return LocationSample(BASE_TIME - timedelta(minutes=minutes_ago), lat, lon)


class ScriptedProvider(GeolocationProvider):
    """Returns queued results in order; exceptions are raised."""

    name = "scripted"

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def acquire(self) -> LocationSample:
        self.calls += 1
        result = self.results.pop(0) if self.results else GeolocationError("exhausted")
        if result == "hang":
            await asyncio.sleep(3600)
        if isinstance(result, Exception):
            raise result
        return result


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Samples & Timeline
# ═══════════════════════════════════════════════════════════════════════════

class TestLocationSample:
    """Coordinate and timestamp checks."""

    def test_latitude_range(self):
        with pytest.raises(ValueError):
            LocationSample(BASE_TIME, 91.0, 0.0)

    def test_longitude_range(self):
        with pytest.raises(ValueError):
            LocationSample(BASE_TIME, 0.0, -181.0)

    def test_naive_timestamp_rejected(self):
        with pytest.raises(ValueError):
            LocationSample(datetime(2026, 1, 1), 0.0, 0.0)


class TestLocationTimeline:
    """Retention-bounded ordered store."""

    def test_evicts_expired_on_insert(self, utc_clock):
        timeline = LocationTimeline(30 * 60, clock=utc_clock)
        timeline.insert(_sample(40))
        timeline.insert(_sample(10))
        assert len(timeline) == 1
        assert timeline.snapshot()[0].timestamp == BASE_TIME - timedelta(minutes=10)

    def test_snapshot_filters_by_current_time(self, utc_clock):
        timeline = LocationTimeline(30 * 60, clock=utc_clock)
        timeline.insert(_sample(20))
        utc_clock.advance(15 * 60)
        assert timeline.snapshot() == ()
        assert timeline.latest() is None

    def test_out_of_order_insert_sorted(self, utc_clock):
        timeline = LocationTimeline(30 * 60, clock=utc_clock)
        timeline.insert(_sample(5))
        timeline.insert(_sample(15))
        timeline.insert(_sample(10))
        minutes = [(BASE_TIME - s.timestamp).seconds // 60 for s in timeline.snapshot()]
        assert minutes == [15, 10, 5]
        assert timeline.latest().timestamp == BASE_TIME - timedelta(minutes=5)

    def test_snapshot_is_immutable(self, utc_clock):
        timeline = LocationTimeline(60, clock=utc_clock)
        timeline.insert(_sample(0))
        snap = timeline.snapshot()
        timeline.insert(_sample(0.5))
        assert isinstance(snap, tuple)
        assert len(snap) == 1

    def test_positive_retention_required(self):
        with pytest.raises(ValueError):
            LocationTimeline(0)


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Providers
# ═══════════════════════════════════════════════════════════════════════════

class TestProviders:
    """Static and IP-based geolocation."""

    @pytest.mark.asyncio
    async def test_static(self):
        sample = await StaticLocationProvider(CHENNAI_LAT, CHENNAI_LON).acquire()
        assert (sample.latitude, sample.longitude) == (CHENNAI_LAT, CHENNAI_LON)
        assert sample.timestamp.tzinfo is not None

    def test_static_out_of_range(self):
        with pytest.raises(ValueError):
            StaticLocationProvider(100.0, 0.0)

    @pytest.mark.asyncio
    async def test_ip_success(self):
        client = mock_client(lambda r: httpx.Response(
            200, json={"status": "success", "lat": 13.08, "lon": 80.27},
        ))
        sample = await IpGeolocationProvider(client, "http://geo.test/json").acquire()
        assert sample.latitude == 13.08

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response, reason", [
        (httpx.Response(200, json={"status": "fail", "message": "private range"}), "lookup_failed"),
        (httpx.Response(503), "http_503"),
        (httpx.Response(200, content=b"nope"), "bad_response"),
        (httpx.Response(200, json={"status": "success", "lat": "x", "lon": 1}), "bad_coordinates"),
    ])
    async def test_ip_failures(self, response, reason):
        client = mock_client(lambda r: response)
        with pytest.raises(GeolocationError) as exc_info:
            await IpGeolocationProvider(client, "http://geo.test/json").acquire()
        assert exc_info.value.reason == reason

    def test_build_from_settings(self):
        client = httpx.AsyncClient()
        assert build_geolocation_provider(make_settings(), client) is None
        assert build_geolocation_provider(make_settings(GEOLOCATION_PROVIDER="static"), client) is None
        static = build_geolocation_provider(
            make_settings(GEOLOCATION_PROVIDER="static", STATIC_LATITUDE=1.0, STATIC_LONGITUDE=2.0),
            client,
        )
        assert isinstance(static, StaticLocationProvider)
        assert isinstance(
            build_geolocation_provider(make_settings(GEOLOCATION_PROVIDER="IP"), client),
            IpGeolocationProvider,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Tracker
# ═══════════════════════════════════════════════════════════════════════════

class TestTracker:
    """Periodic sampling into the timeline."""

    def _tracker(self, provider, **kwargs):
        return LocationTimelineTracker(provider, LocationTimeline(30 * 60), **kwargs)

    @pytest.mark.asyncio
    async def test_sample_once_records(self):
        now = datetime.now(timezone.utc)
        tracker = self._tracker(ScriptedProvider(LocationSample(now, 1.0, 2.0)))
        sample = await tracker.sample_once()
        assert sample is not None
        assert tracker.current_timeline() == (sample,)
        assert tracker.current_sample() == sample

    @pytest.mark.asyncio
    async def test_failure_keeps_timeline(self):
        now = datetime.now(timezone.utc)
        tracker = self._tracker(ScriptedProvider(
            LocationSample(now, 1.0, 2.0), GeolocationError("lookup_failed"),
        ))
        await tracker.sample_once()
        assert await tracker.sample_once() is None
        assert len(tracker.current_timeline()) == 1
        assert tracker.failed_ticks == 1

    @pytest.mark.asyncio
    async def test_acquire_timeout_skipped(self):
        tracker = self._tracker(ScriptedProvider("hang"), acquire_timeout_seconds=0.05)
        assert await tracker.sample_once() is None
        assert tracker.failed_ticks == 1

    @pytest.mark.asyncio
    async def test_readers_never_acquire(self):
        now = datetime.now(timezone.utc)
        first = LocationSample(now, 1.0, 2.0)
        provider = ScriptedProvider(first)
        tracker = self._tracker(provider)
        await tracker.sample_once()
        calls = provider.calls

        assert tracker.current_sample() == first
        assert tracker.current_timeline() == (first,)
        assert provider.calls == calls

    @pytest.mark.asyncio
    async def test_start_samples_immediately_and_stops(self):
        provider = StaticLocationProvider(CHENNAI_LAT, CHENNAI_LON)
        tracker = self._tracker(provider, interval_seconds=3600)
        await tracker.start()
        assert tracker.is_running
        for _ in range(20):
            if tracker.current_sample() is not None:
                break
            await asyncio.sleep(0.01)
        assert tracker.current_sample() is not None
        await tracker.stop()
        assert not tracker.is_running

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await self._tracker(ScriptedProvider()).stop()


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Composer
# ═══════════════════════════════════════════════════════════════════════════

class TestComposer:
    """Location-aware alert text."""

    def test_map_link(self):
        assert map_link(_sample(0)) == "https://maps.google.com/?q=13.082700,80.270700"

    def test_full_message(self):
        current = _sample(0)
        timeline = [_sample(6, 13.0810, 80.2699), _sample(24, 13.0801, 80.2688)]
        text = compose_alert_message(current, timeline)
        lines = text.split("\n")

        assert lines[0] == SOS_HEADER
        assert lines[2] == "Current Time: 2026-10-19 14:00:00 UTC"
        assert lines[3] == "Current Location: https://maps.google.com/?q=13.082700,80.270700"
        assert lines[5] == "Last 30 min timeline:"
        assert lines[6] == "1. 13:36:00 UTC - https://maps.google.com/?q=13.080100,80.268800"
        assert lines[7] == "2. 13:54:00 UTC - https://maps.google.com/?q=13.081000,80.269900"

    def test_empty_timeline(self):
        text = compose_alert_message(_sample(0), [])
        assert text.endswith("No location history recorded.")

    def test_non_utc_timestamp_rendered_in_utc(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        current = LocationSample(datetime(2026, 10, 19, 19, 30, tzinfo=ist), 0.0, 0.0)
        assert "Current Time: 2026-10-19 14:00:00 UTC" in compose_alert_message(current, [])

    def test_deterministic(self):
        timeline = [_sample(3), _sample(9)]
        assert compose_alert_message(_sample(0), timeline) == compose_alert_message(
            _sample(0), list(reversed(timeline)),
        )
