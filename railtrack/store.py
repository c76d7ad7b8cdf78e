"""On-disk persistence for sessions, stations and routes.

Layout under the store root::

    sessions/<id>.json            snapshot (session fields, samples, events, notes)
    sessions/<id>.journal.jsonl   samples appended since the last snapshot
    stations.json                 station reference set
    routes.json                   railway polylines (display only)

Samples are journaled one line at a time while recording, so a crash loses at
most the line being written. Loading replays the journal on top of the
snapshot; ``save_session`` writes a fresh snapshot and clears the journal.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Iterable

from railtrack.models import GeoSample, RailwayRoute, Session, SessionNote, Station, StationPassEvent

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """No session with the given id exists in the store."""


def sample_to_dict(s: GeoSample) -> dict[str, Any]:
    return asdict(s)


def sample_from_dict(d: dict[str, Any]) -> GeoSample:
    return GeoSample(
        geo_time_ms=int(d["geo_time_ms"]),
        latitude=float(d["latitude"]),
        longitude=float(d["longitude"]),
        altitude_m=float(d.get("altitude_m", 0.0)),
        horizontal_accuracy_m=float(d.get("horizontal_accuracy_m", 0.0)),
        vertical_accuracy_m=float(d.get("vertical_accuracy_m", 0.0)),
        speed_mps=float(d.get("speed_mps", 0.0)),
        course_deg=float(d.get("course_deg", 0.0)),
    )


def event_from_dict(d: dict[str, Any]) -> StationPassEvent:
    exit_index = d.get("exit_index")
    return StationPassEvent(
        event_id=str(d["event_id"]),
        session_id=str(d["session_id"]),
        station_id=d.get("station_id"),
        geo_time_ms=int(d["geo_time_ms"]),
        distance_m=float(d["distance_m"]),
        entry_index=int(d["entry_index"]),
        exit_index=None if exit_index is None else int(exit_index),
        display_order=int(d.get("display_order", 0)),
    )


def note_from_dict(d: dict[str, Any]) -> SessionNote:
    return SessionNote(
        note_id=str(d["note_id"]),
        session_id=str(d["session_id"]),
        geo_time_ms=int(d["geo_time_ms"]),
        latitude=float(d["latitude"]),
        longitude=float(d["longitude"]),
        text=str(d.get("text", "")),
        station_id=d.get("station_id"),
        event_id=d.get("event_id"),
        display_order=int(d.get("display_order", 0)),
    )


def session_to_dict(session: Session) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "name": session.name,
        "start_ms": session.start_ms,
        "end_ms": session.end_ms,
        "recording_interval_s": session.recording_interval_s,
        "is_active": session.is_active,
        "total_distance_m": session.total_distance_m,
        "average_speed_mps": session.average_speed_mps,
        "station_analysis_completed": session.station_analysis_completed,
        "station_analysis_ms": session.station_analysis_ms,
        "playback_duration_s": session.playback_duration_s,
        "samples": [sample_to_dict(s) for s in session.samples],
        "events": [asdict(e) for e in session.events],
        "notes": [asdict(n) for n in session.notes],
    }


def session_from_dict(d: dict[str, Any]) -> Session:
    return Session(
        session_id=str(d["session_id"]),
        name=str(d.get("name", "")),
        start_ms=int(d["start_ms"]),
        end_ms=None if d.get("end_ms") is None else int(d["end_ms"]),
        recording_interval_s=float(d.get("recording_interval_s", 1.0)),
        is_active=bool(d.get("is_active", False)),
        samples=[sample_from_dict(s) for s in d.get("samples", [])],
        events=[event_from_dict(e) for e in d.get("events", [])],
        notes=[note_from_dict(n) for n in d.get("notes", [])],
        total_distance_m=d.get("total_distance_m"),
        average_speed_mps=d.get("average_speed_mps"),
        station_analysis_completed=bool(d.get("station_analysis_completed", False)),
        station_analysis_ms=d.get("station_analysis_ms"),
        playback_duration_s=float(d.get("playback_duration_s", 30.0)),
    )


def _atomic_write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


class SessionStore:
    """A small JSON store persisted on disk."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._sessions_dir = self._root / "sessions"
        self._stations_path = self._root / "stations.json"
        self._routes_path = self._root / "routes.json"
        self._lock = threading.RLock()

    @property
    def root(self) -> Path:
        return self._root

    def _snapshot_path(self, session_id: str) -> Path:
        return self._sessions_dir / f"{session_id}.json"

    def _journal_path(self, session_id: str) -> Path:
        return self._sessions_dir / f"{session_id}.journal.jsonl"

    # -- sessions -------------------------------------------------------

    def create_session(self, session: Session) -> None:
        """Persist a new session (snapshot plus an empty journal)."""

        with self._lock:
            if self._snapshot_path(session.session_id).exists():
                raise ValueError(f"session already exists: {session.session_id}")
            self.save_session(session)
            self._journal_path(session.session_id).write_text("", encoding="utf-8")

    def save_session(self, session: Session) -> None:
        """Write a full snapshot and clear the journal."""

        with self._lock:
            _atomic_write_json(self._snapshot_path(session.session_id), session_to_dict(session))
            journal = self._journal_path(session.session_id)
            try:
                if journal.exists():
                    journal.unlink()
            except OSError:
                # stale lines are ignored on replay (seq < snapshot sample count)
                logger.warning("could not clear journal %s", journal)

    def append_sample(self, session_id: str, seq: int, sample: GeoSample) -> None:
        """Append one sample to the session journal.

        Args:
            session_id: Owning session.
            seq: Position of the sample in the session's arrival order.
            sample: The accepted sample.
        """

        with self._lock:
            if not self._snapshot_path(session_id).exists():
                raise SessionNotFoundError(session_id)
            record = {"seq": seq, "v": sample_to_dict(sample)}
            with self._journal_path(session_id).open("a", encoding="utf-8", newline="\n") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")

    def get_session(self, session_id: str) -> Session:
        """Load a session, replaying any journaled samples.

        Raises:
            SessionNotFoundError: If the session does not exist or its snapshot is unreadable.
        """

        with self._lock:
            path = self._snapshot_path(session_id)
            if not path.exists():
                raise SessionNotFoundError(session_id)
            text = path.read_text(encoding="utf-8")
            try:
                session = session_from_dict(json.loads(text))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                backup = path.with_suffix(path.suffix + ".broken")
                backup.write_text(text, encoding="utf-8")
                logger.error("session snapshot %s is corrupt (%s); copy kept at %s", path, exc, backup)
                raise SessionNotFoundError(session_id) from exc
            self._replay_journal(session)
            return session

    def _replay_journal(self, session: Session) -> None:
        journal = self._journal_path(session.session_id)
        if not journal.exists():
            return
        replayed = 0
        try:
            with journal.open("r", encoding="utf-8") as f:
                for line in f:
                    s = line.strip()
                    if not s:
                        continue
                    try:
                        rec = json.loads(s)
                        seq = int(rec["seq"])
                        sample = sample_from_dict(rec["v"])
                    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                        # ignore broken tail lines
                        continue
                    if seq < len(session.samples):
                        continue
                    session.samples.append(sample)
                    replayed += 1
        except OSError:
            logger.warning("could not read journal %s", journal)
            return
        if replayed:
            logger.info("replayed %s journaled samples for session %s", replayed, session.session_id)

    def list_sessions(self) -> list[Session]:
        """All readable sessions, newest first."""

        with self._lock:
            if not self._sessions_dir.exists():
                return []
            out: list[Session] = []
            for p in self._sessions_dir.glob("*.json"):
                try:
                    out.append(self.get_session(p.stem))
                except SessionNotFoundError:
                    continue
            out.sort(key=lambda s: s.start_ms, reverse=True)
            return out

    def find_active_sessions(self) -> list[Session]:
        """Sessions still flagged active with no end time (abnormal shutdown)."""

        return [s for s in self.list_sessions() if s.is_active and s.end_ms is None]

    def delete_session(self, session_id: str) -> None:
        """Delete a session together with its samples and pass events."""

        with self._lock:
            path = self._snapshot_path(session_id)
            if not path.exists():
                raise SessionNotFoundError(session_id)
            path.unlink()
            self._journal_path(session_id).unlink(missing_ok=True)

    # -- stations -------------------------------------------------------

    def _load_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        text = path.read_text(encoding="utf-8").strip()
        if not text:
            return default
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            backup = path.with_suffix(path.suffix + ".broken")
            backup.write_text(text, encoding="utf-8")
            logger.error("%s is corrupt; starting fresh (copy kept at %s)", path, backup)
            return default

    def upsert_stations(self, stations: Iterable[Station]) -> int:
        """Insert or replace stations by id. Returns the number written."""

        with self._lock:
            data: dict[str, dict[str, Any]] = self._load_json(self._stations_path, {})
            n = 0
            for st in stations:
                data[st.station_id] = asdict(st)
                n += 1
            _atomic_write_json(self._stations_path, data)
            return n

    def list_stations(self) -> list[Station]:
        with self._lock:
            data: dict[str, dict[str, Any]] = self._load_json(self._stations_path, {})
            return [Station(**v) for v in data.values()]

    def get_station(self, station_id: str) -> Station | None:
        for st in self.list_stations():
            if st.station_id == station_id:
                return st
        return None

    def delete_station(self, station_id: str) -> int:
        """Delete a station and unlink it from pass events and notes (both are kept).

        Returns:
            Number of events whose station link was cleared.
        """

        with self._lock:
            data: dict[str, dict[str, Any]] = self._load_json(self._stations_path, {})
            if data.pop(station_id, None) is None:
                return 0
            _atomic_write_json(self._stations_path, data)

            cleared = 0
            for session in self.list_sessions():
                hit = [e for e in session.events if e.station_id == station_id]
                noted = [n for n in session.notes if n.station_id == station_id]
                if not hit and not noted:
                    continue
                session.events = [
                    replace(e, station_id=None) if e.station_id == station_id else e for e in session.events
                ]
                session.notes = [
                    replace(n, station_id=None) if n.station_id == station_id else n for n in session.notes
                ]
                cleared += len(hit)
                self.save_session(session)
            return cleared

    # -- routes ---------------------------------------------------------

    def save_route(self, route: RailwayRoute) -> None:
        with self._lock:
            data: dict[str, dict[str, Any]] = self._load_json(self._routes_path, {})
            data[route.route_id] = {
                "route_id": route.route_id,
                "way_id": route.way_id,
                "start_station_id": route.start_station_id,
                "end_station_id": route.end_station_id,
                "coordinates": route.encoded_coordinates(),
                "fetched_ms": route.fetched_ms,
            }
            _atomic_write_json(self._routes_path, data)

    def list_routes(self) -> list[RailwayRoute]:
        with self._lock:
            data: dict[str, dict[str, Any]] = self._load_json(self._routes_path, {})
            return [
                RailwayRoute(
                    route_id=v["route_id"],
                    way_id=int(v["way_id"]),
                    start_station_id=v["start_station_id"],
                    end_station_id=v["end_station_id"],
                    coordinates=RailwayRoute.decode_coordinates(v.get("coordinates", "[]")),
                    fetched_ms=int(v["fetched_ms"]),
                )
                for v in data.values()
            ]
