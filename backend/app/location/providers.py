"""
providers.py — Where location fixes come from.

Provider contract:
    await provider.acquire() → LocationSample
    raises GeolocationError when no fix is available

Available providers (GEOLOCATION_PROVIDER):
    none    — tracker disabled, alerts carry no location block
    static  — fixed coordinates from STATIC_LATITUDE / STATIC_LONGITUDE
    ip      — coarse IP geolocation over HTTP (ip-api.com JSON format)

The IP lookup expects:

    {"status": "success", "lat": 13.0827, "lon": 80.2707, ...}

Any other status, a non-2xx response or a network error is a failed
acquisition; the tracker logs it and keeps the existing timeline.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import httpx

from backend.app.alerts.models import LocationSample
from backend.app.core.config import Settings

logger = logging.getLogger(__name__)


class GeolocationError(Exception):
    """No location fix could be acquired."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class GeolocationProvider(ABC):
    """Source of location fixes."""

    name = "abstract"

    @abstractmethod
    async def acquire(self) -> LocationSample:
        ...


class StaticLocationProvider(GeolocationProvider):
    """Always reports the same coordinates, stamped with the current time."""

    name = "static"

    def __init__(self, latitude: float, longitude: float):
        LocationSample(datetime.now(timezone.utc), latitude, longitude)
        self.latitude = latitude
        self.longitude = longitude

    async def acquire(self) -> LocationSample:
        return LocationSample(datetime.now(timezone.utc), self.latitude, self.longitude)


class IpGeolocationProvider(GeolocationProvider):
    """Coarse location from the public IP address of this host."""

    name = "ip"

    def __init__(self, client: httpx.AsyncClient, url: str):
        self._client = client
        self._url = url

    async def acquire(self) -> LocationSample:
        try:
            response = await self._client.get(self._url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise GeolocationError(f"http_{exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise GeolocationError("network_error") from exc
        except ValueError as exc:
            raise GeolocationError("bad_response") from exc

        if not isinstance(data, dict) or data.get("status") != "success":
            raise GeolocationError("lookup_failed")
        try:
            return LocationSample(
                timestamp=datetime.now(timezone.utc),
                latitude=float(data["lat"]),
                longitude=float(data["lon"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise GeolocationError("bad_coordinates") from exc


def build_geolocation_provider(
    settings: Settings,
    client: httpx.AsyncClient,
) -> Optional[GeolocationProvider]:
    """Pick the provider named by GEOLOCATION_PROVIDER; None disables tracking."""
    kind = settings.GEOLOCATION_PROVIDER
    if kind == "static":
        if settings.STATIC_LATITUDE is None or settings.STATIC_LONGITUDE is None:
            logger.warning("GEOLOCATION_PROVIDER=static without coordinates; tracking disabled")
            return None
        return StaticLocationProvider(settings.STATIC_LATITUDE, settings.STATIC_LONGITUDE)
    if kind == "ip":
        return IpGeolocationProvider(client, settings.GEOLOCATION_URL)
    return None
