"""Station pass detection over a session's sample stream."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Sequence

from railtrack.geo import haversine_m
from railtrack.models import GeoSample, Session, Station, StationPassEvent

DEFAULT_RADIUS_M = 100.0

_EVENT_NAMESPACE = uuid.UUID("6f1c1a52-5f0e-4d5e-9a57-2b8f0f3f1c11")


@dataclass(frozen=True, slots=True)
class Outside:
    """Not within the radius of the station."""


@dataclass(frozen=True, slots=True)
class Inside:
    """Within the radius; tracks where the episode began and the closest sample so far."""

    entry_index: int
    best_distance: float
    best_index: int


ProximityState = Outside | Inside

OUTSIDE = Outside()


def event_id_for(session_id: str, station_id: str, entry_index: int) -> str:
    """Stable event id, so re-running detection reproduces identical events."""

    return str(uuid.uuid5(_EVENT_NAMESPACE, f"{session_id}:{station_id}:{entry_index}"))


def _make_event(
    session_id: str,
    station: Station,
    pts: Sequence[GeoSample],
    state: Inside,
    exit_index: int | None,
) -> StationPassEvent:
    return StationPassEvent(
        event_id=event_id_for(session_id, station.station_id, state.entry_index),
        session_id=session_id,
        station_id=station.station_id,
        geo_time_ms=pts[state.best_index].geo_time_ms,
        distance_m=state.best_distance,
        entry_index=state.entry_index,
        exit_index=exit_index,
    )


def _passes_for_station(
    pts: Sequence[GeoSample],
    station: Station,
    radius_m: float,
    session_id: str,
) -> list[StationPassEvent]:
    events: list[StationPassEvent] = []
    state: ProximityState = OUTSIDE

    for idx, pt in enumerate(pts):
        d = haversine_m(pt.latitude, pt.longitude, station.latitude, station.longitude)
        if isinstance(state, Outside):
            if d <= radius_m:
                state = Inside(entry_index=idx, best_distance=d, best_index=idx)
        elif d > radius_m:
            events.append(_make_event(session_id, station, pts, state, exit_index=idx))
            state = OUTSIDE
        elif d < state.best_distance:
            # keep the true closest approach, not just the entry point
            state = replace(state, best_distance=d, best_index=idx)

    if isinstance(state, Inside):
        # session ended within the radius
        events.append(_make_event(session_id, station, pts, state, exit_index=None))
    return events


def detect_station_passes(
    samples: Sequence[GeoSample],
    stations: Sequence[Station],
    radius_m: float = DEFAULT_RADIUS_M,
    session_id: str = "",
) -> list[StationPassEvent]:
    """Detect proximity episodes for every station.

    Each station is walked independently through ``Outside``/``Inside``
    states. A station passed several times yields one event per episode.

    Args:
        samples: Session samples (any order; stable-sorted by timestamp here).
        stations: Station reference set.
        radius_m: Proximity radius in meters.
        session_id: Owning session id, used in event ids.

    Returns:
        Events ordered by entry index; ties keep the input station order.
        ``display_order`` is assigned 0..n-1 in that order.
    """

    if not samples or not stations:
        return []

    pts = sorted(samples, key=lambda s: s.geo_time_ms)
    found: list[StationPassEvent] = []
    for station in stations:
        found.extend(_passes_for_station(pts, station, radius_m, session_id))

    found.sort(key=lambda e: e.entry_index)
    return [replace(e, display_order=i) for i, e in enumerate(found)]


def analyze_session(
    session: Session,
    stations: Sequence[Station],
    *,
    radius_m: float = DEFAULT_RADIUS_M,
    now_ms: int,
    force: bool = False,
) -> list[StationPassEvent]:
    """Run detection and store the result on the session.

    Skips the work when the session was already analyzed, unless ``force``.
    """

    if session.station_analysis_completed and not force:
        return list(session.events)
    session.events = detect_station_passes(
        session.samples, stations, radius_m=radius_m, session_id=session.session_id
    )
    session.station_analysis_completed = True
    session.station_analysis_ms = now_ms
    return list(session.events)


def reset_station_analysis(session: Session) -> None:
    """Drop all pass events and clear the analysis flags."""

    session.events = []
    session.station_analysis_completed = False
    session.station_analysis_ms = None


def _renumber(events: Sequence[StationPassEvent]) -> list[StationPassEvent]:
    return [replace(e, display_order=i) for i, e in enumerate(events)]


def move_event(session: Session, from_index: int, to_index: int) -> None:
    """Manually reorder one event in display order.

    Raises:
        IndexError: If ``from_index`` is out of range.
    """

    ordered = session.sorted_events()
    if not 0 <= from_index < len(ordered):
        raise IndexError(f"event index out of range: {from_index}")
    ev = ordered.pop(from_index)
    to_index = max(0, min(len(ordered), to_index))
    ordered.insert(to_index, ev)
    session.events = _renumber(ordered)


def remove_event(session: Session, event_id: str) -> bool:
    """Delete one event; remaining events are renumbered."""

    kept = [e for e in session.sorted_events() if e.event_id != event_id]
    if len(kept) == len(session.events):
        return False
    session.events = _renumber(kept)
    return True


def active_events(
    events: Sequence[StationPassEvent],
    samples: Sequence[GeoSample],
    at_ms: float,
) -> list[StationPassEvent]:
    """Events whose entry sample was reached at or before ``at_ms``.

    Args:
        events: Pass events of the session.
        samples: Timestamp-sorted samples the event indices refer to.
        at_ms: Mapped playback time (epoch ms).
    """

    out: list[StationPassEvent] = []
    for e in sorted(events, key=lambda ev: ev.display_order):
        if 0 <= e.entry_index < len(samples) and samples[e.entry_index].geo_time_ms <= at_ms:
            out.append(e)
    return out
