"""Geospatial utility helpers."""
from math import asin, cos, degrees, radians, sin, sqrt

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the distance in meters between two WGS84 coordinates."""

    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = sin(dlat / 2.0) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2.0) ** 2
    c = 2 * asin(sqrt(a))
    return EARTH_RADIUS_M * c


def bounding_box(lat: float, lon: float, radius_m: float) -> tuple[float, float, float, float]:
    """Return ``(min_lat, max_lat, min_lon, max_lon)`` enclosing a circle of ``radius_m``.

    Used as a coarse SQL prefilter; callers still apply :func:`haversine_m`.
    Near the poles the longitude span degenerates to the full range.
    """

    dlat = degrees(radius_m / EARTH_RADIUS_M)
    min_lat = max(-90.0, lat - dlat)
    max_lat = min(90.0, lat + dlat)
    cos_lat = cos(radians(lat))
    if cos_lat < 1e-6 or max_lat >= 90.0 or min_lat <= -90.0:
        return min_lat, max_lat, -180.0, 180.0
    dlon = degrees(radius_m / (EARTH_RADIUS_M * cos_lat))
    if dlon >= 180.0 or lon - dlon < -180.0 or lon + dlon > 180.0:
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, lon - dlon, lon + dlon


__all__ = ["EARTH_RADIUS_M", "haversine_m", "bounding_box"]
