"""Health report for a recorded session.

Looks for the things that make a recording look wrong on the map or in the
statistics: long silences between samples (signal loss, or a train standing
still under the minimum-distance filter), samples that would fail today's
accuracy threshold, pass events whose indices no longer fit the samples, and
cached distance that disagrees with the samples.
"""

from __future__ import annotations

from dataclasses import dataclass

from railtrack.models import Session
from railtrack.stats import compute_distance
from railtrack.timeutils import DeltaStats, delta_stats

# a gap is this many recording intervals without an accepted sample
GAP_FACTOR = 10.0
MIN_GAP_S = 30.0


@dataclass(frozen=True, slots=True)
class SampleGap:
    """A silence between two consecutive (timestamp-sorted) samples."""

    after_index: int
    start_ms: int
    seconds: float


@dataclass(frozen=True, slots=True)
class SessionReport:
    samples: int
    events: int
    unlinked_events: int
    broken_events: int
    first_sample_ms: int | None
    last_sample_ms: int | None
    start_lag_s: float | None
    delta: DeltaStats | None
    gap_threshold_s: float
    gaps: tuple[SampleGap, ...]
    duplicates_geo_time: int
    worst_accuracy_m: float | None
    over_threshold: int
    distance_drift_m: float | None

    @property
    def longest_gap_s(self) -> float:
        return max((g.seconds for g in self.gaps), default=0.0)


def gap_threshold_s(recording_interval_s: float) -> float:
    return max(MIN_GAP_S, GAP_FACTOR * recording_interval_s)


def inspect_session(session: Session, accuracy_threshold_m: float | None = None) -> SessionReport:
    """Diagnose one session.

    Args:
        session: Loaded session (active or finished).
        accuracy_threshold_m: Count samples worse than this. None skips the check.

    Returns:
        SessionReport. ``distance_drift_m`` is None while no distance is cached.
    """

    pts = session.sorted_samples()
    events = session.events
    unlinked = sum(1 for e in events if e.station_id is None)
    broken = sum(
        1
        for e in events
        if not 0 <= e.entry_index < len(pts) or (e.exit_index is not None and not e.entry_index <= e.exit_index < len(pts))
    )
    limit = gap_threshold_s(session.recording_interval_s)

    if not pts:
        return SessionReport(
            samples=0,
            events=len(events),
            unlinked_events=unlinked,
            broken_events=broken,
            first_sample_ms=None,
            last_sample_ms=None,
            start_lag_s=None,
            delta=None,
            gap_threshold_s=limit,
            gaps=(),
            duplicates_geo_time=0,
            worst_accuracy_m=None,
            over_threshold=0,
            distance_drift_m=None,
        )

    times = [p.geo_time_ms for p in pts]
    gaps: list[SampleGap] = []
    dupe = 0
    for i in range(1, len(times)):
        step_s = (times[i] - times[i - 1]) / 1000.0
        if step_s == 0:
            dupe += 1
        elif step_s > limit:
            gaps.append(SampleGap(after_index=i - 1, start_ms=times[i - 1], seconds=step_s))

    over = 0
    if accuracy_threshold_m is not None:
        over = sum(1 for p in pts if p.horizontal_accuracy_m > accuracy_threshold_m)

    drift = None
    if session.total_distance_m is not None:
        drift = session.total_distance_m - compute_distance(pts)

    return SessionReport(
        samples=len(pts),
        events=len(events),
        unlinked_events=unlinked,
        broken_events=broken,
        first_sample_ms=times[0],
        last_sample_ms=times[-1],
        start_lag_s=max(0.0, (times[0] - session.start_ms) / 1000.0),
        delta=delta_stats(times),
        gap_threshold_s=limit,
        gaps=tuple(gaps),
        duplicates_geo_time=dupe,
        worst_accuracy_m=max(p.horizontal_accuracy_m for p in pts),
        over_threshold=over,
        distance_drift_m=drift,
    )
