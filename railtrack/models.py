"""Data models for journey sessions, samples and station passes."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Final


Coord = tuple[float, float]

DEFAULT_TZ: Final[str] = "Asia/Shanghai"


@dataclass(frozen=True, slots=True)
class RawFix:
    """One raw reading from the location source, before filtering.

    Attributes:
        geo_time_ms: Unix epoch milliseconds.
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        altitude_m: Altitude in meters.
        horizontal_accuracy_m: Horizontal accuracy in meters. Negative means invalid.
        vertical_accuracy_m: Vertical accuracy in meters.
        speed_mps: Speed in meters/second. Negative means unknown.
        course_deg: Course in degrees. Negative means unknown.
    """

    geo_time_ms: int
    latitude: float
    longitude: float
    altitude_m: float = 0.0
    horizontal_accuracy_m: float = 0.0
    vertical_accuracy_m: float = 0.0
    speed_mps: float = 0.0
    course_deg: float = 0.0


@dataclass(frozen=True, slots=True)
class GeoSample:
    """An accepted location reading, owned by exactly one session.

    Speed and course are already normalized (never negative).
    """

    geo_time_ms: int
    latitude: float
    longitude: float
    altitude_m: float
    horizontal_accuracy_m: float
    vertical_accuracy_m: float
    speed_mps: float
    course_deg: float

    @property
    def coord(self) -> Coord:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Station:
    """A known station (reference data, supplied externally)."""

    station_id: str
    name: str
    latitude: float
    longitude: float
    station_type: str | None = None
    operator: str | None = None

    @property
    def coord(self) -> Coord:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class StationPassEvent:
    """Closest approach to a station during one proximity episode.

    Note:
        Indices refer to the session's timestamp-sorted sample sequence.
        ``station_id`` is a weak reference: it becomes None when the station
        is deleted, the distance/index data stays.
    """

    event_id: str
    session_id: str
    station_id: str | None
    geo_time_ms: int
    distance_m: float
    entry_index: int
    exit_index: int | None
    display_order: int = 0


@dataclass(frozen=True, slots=True)
class SessionNote:
    """A geotagged free-text note attached to a session.

    Note:
        ``station_id`` is weak like on pass events. ``event_id`` is only a
        hint: event ids are derived from (session, station, entry index), so a
        re-run of station detection gives the same passes back their ids.
    """

    note_id: str
    session_id: str
    geo_time_ms: int
    latitude: float
    longitude: float
    text: str
    station_id: str | None = None
    event_id: str | None = None
    display_order: int = 0

    @property
    def coord(self) -> Coord:
        return (self.latitude, self.longitude)

    def preview(self, max_length: int = 50) -> str:
        text = " ".join(self.text.split())
        if not text:
            return "Empty note"
        return text if len(text) <= max_length else text[:max_length] + "..."


@dataclass(frozen=True, slots=True)
class RailwayRoute:
    """A railway polyline between two stations, used only for map display."""

    route_id: str
    way_id: int
    start_station_id: str
    end_station_id: str
    coordinates: tuple[Coord, ...]
    fetched_ms: int

    def encoded_coordinates(self) -> str:
        """JSON-encoded ``[[lat, lon], ...]``."""

        return json.dumps([[lat, lon] for lat, lon in self.coordinates])

    @staticmethod
    def decode_coordinates(text: str) -> tuple[Coord, ...]:
        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            return ()
        return tuple((float(p[0]), float(p[1])) for p in raw if len(p) >= 2)


@dataclass(slots=True)
class Session:
    """A recorded journey.

    Samples are kept in arrival order; use ``sorted_samples()`` for the
    timestamp-ordered view that event indices refer to.
    """

    session_id: str
    name: str
    start_ms: int
    recording_interval_s: float = 1.0
    end_ms: int | None = None
    is_active: bool = True
    samples: list[GeoSample] = field(default_factory=list)
    events: list[StationPassEvent] = field(default_factory=list)
    notes: list[SessionNote] = field(default_factory=list)
    total_distance_m: float | None = None
    average_speed_mps: float | None = None
    station_analysis_completed: bool = False
    station_analysis_ms: int | None = None
    playback_duration_s: float = 30.0

    @property
    def is_finalized(self) -> bool:
        return self.end_ms is not None and not self.is_active

    @property
    def duration_s(self) -> float:
        """Session duration in seconds (0 while still open)."""

        if self.end_ms is None:
            return 0.0
        return max(0.0, (self.end_ms - self.start_ms) / 1000.0)

    def sorted_samples(self) -> list[GeoSample]:
        # sorted() is stable: equal timestamps keep arrival order
        return sorted(self.samples, key=lambda s: s.geo_time_ms)

    def sorted_events(self) -> list[StationPassEvent]:
        return sorted(self.events, key=lambda e: e.display_order)

    def sorted_notes(self) -> list[SessionNote]:
        return sorted(self.notes, key=lambda n: n.display_order)
