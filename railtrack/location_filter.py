"""Accept/reject decisions for incoming location fixes."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

from railtrack.geo import haversine_m
from railtrack.models import GeoSample, RawFix

MIN_THRESHOLD_M = 1.0
MAX_THRESHOLD_M = 200.0
MIN_DISTANCE_FLOOR_M = 0.0
MIN_DISTANCE_CEIL_M = 100.0
MIN_INTERVAL_S = 0.1
MAX_INTERVAL_S = 60.0


def clamp_threshold(value: float) -> float:
    return max(MIN_THRESHOLD_M, min(MAX_THRESHOLD_M, float(value)))


def clamp_min_distance(value: float) -> float:
    return max(MIN_DISTANCE_FLOOR_M, min(MIN_DISTANCE_CEIL_M, float(value)))


def clamp_interval(seconds: float) -> float:
    """Clamp a recording interval hint to [0.1, 60] seconds."""

    return max(MIN_INTERVAL_S, min(MAX_INTERVAL_S, float(seconds)))


def accept(
    fix: RawFix,
    threshold_m: float,
    min_distance_m: float,
    last_accepted: GeoSample | RawFix | None = None,
) -> bool:
    """Decide whether a raw fix is trustworthy enough to keep.

    Args:
        fix: Candidate fix.
        threshold_m: Worst acceptable horizontal accuracy (inclusive).
        min_distance_m: Minimum distance from the last accepted fix (inclusive).
        last_accepted: The previously accepted sample, if any.

    Returns:
        True if the fix should be appended to the session. Non-finite
        accuracy or coordinates are always rejected.
    """

    acc = fix.horizontal_accuracy_m
    if not math.isfinite(acc) or acc < 0 or acc > threshold_m:
        return False
    if not (math.isfinite(fix.latitude) and math.isfinite(fix.longitude)):
        return False
    if last_accepted is None:
        return True
    moved = haversine_m(last_accepted.latitude, last_accepted.longitude, fix.latitude, fix.longitude)
    return moved >= min_distance_m


def sample_from_fix(fix: RawFix) -> GeoSample:
    """Build a GeoSample, normalizing unknown speed/course (negative) to 0."""

    return GeoSample(
        geo_time_ms=fix.geo_time_ms,
        latitude=fix.latitude,
        longitude=fix.longitude,
        altitude_m=fix.altitude_m,
        horizontal_accuracy_m=fix.horizontal_accuracy_m,
        vertical_accuracy_m=fix.vertical_accuracy_m,
        speed_mps=max(0.0, fix.speed_mps),
        course_deg=fix.course_deg if fix.course_deg >= 0 else 0.0,
    )


@dataclass(frozen=True, slots=True)
class FilterConfig:
    """Filter parameters. Out-of-range values are saturated, never rejected."""

    accuracy_threshold_m: float = 50.0
    min_distance_m: float = 5.0

    def __post_init__(self) -> None:
        # frozen dataclass: write through object.__setattr__
        object.__setattr__(self, "accuracy_threshold_m", clamp_threshold(self.accuracy_threshold_m))
        object.__setattr__(self, "min_distance_m", clamp_min_distance(self.min_distance_m))

    def with_threshold(self, value: float) -> FilterConfig:
        return replace(self, accuracy_threshold_m=value)

    def with_min_distance(self, value: float) -> FilterConfig:
        return replace(self, min_distance_m=value)

    def accept(self, fix: RawFix, last_accepted: GeoSample | RawFix | None = None) -> bool:
        return accept(fix, self.accuracy_threshold_m, self.min_distance_m, last_accepted)
