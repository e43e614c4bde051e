"""Geographic helpers for the "nearby" filter and distance sort."""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate pair in degrees."""

    latitude: float
    longitude: float

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.latitude) and math.isfinite(self.longitude)


def haversine_km(a: GeoPoint | None, b: GeoPoint | None) -> float:
    """Great-circle distance in kilometers; `inf` when either point is missing or non-finite."""

    if a is None or b is None or not (a.is_finite and b.is_finite):
        return math.inf

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    h = min(1.0, h)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
