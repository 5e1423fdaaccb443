"""
Background location timeline for location-aware SOS alerts.

This module provides:
- A bounded, time-ordered timeline of recent location samples
- Geolocation providers (static coordinates, IP lookup)
- A tracker that samples on a fixed interval inside the app's event loop
"""

from .providers import (
    GeolocationError,
    GeolocationProvider,
    IpGeolocationProvider,
    StaticLocationProvider,
    build_geolocation_provider,
)
from .timeline import LocationTimeline
from .tracker import LocationTimelineTracker

__all__ = [
    "GeolocationError",
    "GeolocationProvider",
    "IpGeolocationProvider",
    "StaticLocationProvider",
    "build_geolocation_provider",
    "LocationTimeline",
    "LocationTimelineTracker",
]
