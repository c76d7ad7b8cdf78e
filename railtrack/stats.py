"""Distance and speed statistics over a session's samples."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from railtrack.geo import haversine_m
from railtrack.models import GeoSample, Session


def compute_distance(samples: Sequence[GeoSample]) -> float:
    """Sum of great-circle legs between consecutive timestamp-sorted samples.

    Returns:
        Meters; 0.0 for fewer than two samples.
    """

    if len(samples) < 2:
        return 0.0
    pts = sorted(samples, key=lambda s: s.geo_time_ms)
    total = 0.0
    for prev, cur in zip(pts, pts[1:]):
        total += haversine_m(prev.latitude, prev.longitude, cur.latitude, cur.longitude)
    return total


def compute_average_speed(total_distance_m: float, elapsed_seconds: float) -> float:
    """Mean speed in m/s; 0.0 when no time has elapsed."""

    if elapsed_seconds <= 0:
        return 0.0
    return total_distance_m / elapsed_seconds


class RunningDistance:
    """Incremental distance for the live readout while recording."""

    def __init__(self) -> None:
        self._last: GeoSample | None = None
        self.total_m = 0.0
        self.count = 0

    def add(self, sample: GeoSample) -> float:
        if self._last is not None:
            self.total_m += haversine_m(
                self._last.latitude, self._last.longitude, sample.latitude, sample.longitude
            )
        self._last = sample
        self.count += 1
        return self.total_m

    @classmethod
    def from_samples(cls, samples: Sequence[GeoSample]) -> RunningDistance:
        rd = cls()
        for s in sorted(samples, key=lambda x: x.geo_time_ms):
            rd.add(s)
        return rd


@dataclass(frozen=True, slots=True)
class TrackSummary:
    """Derived numbers shown for a session."""

    samples: int
    total_distance_m: float
    average_speed_mps: float
    duration_s: float

    @property
    def total_distance_km(self) -> float:
        return self.total_distance_m / 1000.0

    @property
    def average_speed_kmh(self) -> float:
        return self.average_speed_mps * 3.6


def finalize_statistics(session: Session) -> None:
    """Compute and cache distance/speed on the session (elapsed = session duration)."""

    total = compute_distance(session.samples)
    session.total_distance_m = total
    session.average_speed_mps = compute_average_speed(total, session.duration_s)


def summarize(session: Session) -> TrackSummary:
    total = session.total_distance_m
    if total is None:
        total = compute_distance(session.samples)
    speed = session.average_speed_mps
    if speed is None:
        speed = compute_average_speed(total, session.duration_s)
    return TrackSummary(
        samples=len(session.samples),
        total_distance_m=total,
        average_speed_mps=speed,
        duration_s=session.duration_s,
    )
