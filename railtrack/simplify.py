"""Route thinning for map display (Douglas-Peucker, even sampling)."""

from __future__ import annotations

import math
from typing import Sequence

from railtrack.models import Coord

# (max camera distance in meters, epsilon in degrees); lower epsilon keeps more points
ZOOM_TIERS: tuple[tuple[float, float], ...] = (
    (500.0, 0.00001),
    (2000.0, 0.00005),
    (5000.0, 0.0001),
    (10000.0, 0.0002),
    (math.inf, 0.0005),
)


def epsilon_for_camera_distance(camera_distance_m: float) -> float:
    for max_distance, eps in ZOOM_TIERS:
        if camera_distance_m <= max_distance:
            return eps
    return ZOOM_TIERS[-1][1]


def _perpendicular_distance(p: Coord, start: Coord, end: Coord) -> float:
    """Planar distance (degrees) from p to the line start-end."""

    dx = end[1] - start[1]
    dy = end[0] - start[0]
    if dx == 0 and dy == 0:
        return math.hypot(p[1] - start[1], p[0] - start[0])
    num = abs(dy * p[1] - dx * p[0] + end[1] * start[0] - end[0] * start[1])
    return num / math.hypot(dx, dy)


def simplify(coords: Sequence[Coord], epsilon: float) -> list[Coord]:
    """Douglas-Peucker simplification.

    Args:
        coords: Polyline as (lat, lon) tuples.
        epsilon: Tolerance in decimal degrees.

    Returns:
        Simplified polyline; endpoints are always kept.
    """

    pts = list(coords)
    if len(pts) <= 2:
        return pts

    keep = [False] * len(pts)
    keep[0] = keep[-1] = True
    # iterative: tracks can be longer than the recursion limit
    stack = [(0, len(pts) - 1)]
    while stack:
        lo, hi = stack.pop()
        if hi - lo < 2:
            continue
        max_d = 0.0
        max_i = lo
        for i in range(lo + 1, hi):
            d = _perpendicular_distance(pts[i], pts[lo], pts[hi])
            if d > max_d:
                max_d = d
                max_i = i
        if max_d > epsilon:
            keep[max_i] = True
            stack.append((lo, max_i))
            stack.append((max_i, hi))
    return [p for p, k in zip(pts, keep) if k]


def simplify_for_camera(coords: Sequence[Coord], camera_distance_m: float) -> list[Coord]:
    return simplify(coords, epsilon_for_camera_distance(camera_distance_m))


def sample_evenly(coords: Sequence[Coord], max_points: int = 100) -> list[Coord]:
    """Pick at most ``max_points`` evenly spaced points, always keeping the last one."""

    pts = list(coords)
    if len(pts) <= max(1, max_points):
        return pts
    if max_points <= 1:
        return [pts[-1]]
    step = (len(pts) - 1) / (max_points - 1)
    out = [pts[int(i * step)] for i in range(max_points - 1)]
    out.append(pts[-1])
    return out
