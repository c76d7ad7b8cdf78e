"""Geospatial utilities (no external dependencies)."""

from __future__ import annotations

import math

from railtrack.models import Coord

EARTH_RADIUS_M = 6_371_000.0  # mean Earth radius in meters


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial great-circle bearing from point 1 to point 2.

    Returns:
        Bearing in degrees, normalized to [0, 360).
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lambda = math.radians(lon2 - lon1)
    y = math.sin(d_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return math.degrees(math.atan2(y, x)) % 360.0


def lerp_coord(a: Coord, b: Coord, fraction: float) -> Coord:
    """Linear interpolation between two coordinates.

    Plain lat/lon interpolation, adequate for the short legs between consecutive
    samples. ``fraction`` is clamped to [0, 1].
    """

    f = min(1.0, max(0.0, fraction))
    return (a[0] + (b[0] - a[0]) * f, a[1] + (b[1] - a[1]) * f)


def interpolate_at(a_ms: int, a: Coord, b_ms: int, b: Coord, t_ms: float) -> Coord:
    """Position at ``t_ms`` on the segment a -> b (timestamps in epoch ms)."""

    span = b_ms - a_ms
    if span <= 0:
        return a
    return lerp_coord(a, b, (t_ms - a_ms) / span)
