"""JSON session export and import."""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any, Sequence

from railtrack.models import GeoSample, Session, Station
from railtrack.stats import compute_average_speed, compute_distance
from railtrack.timeutils import epoch_ms_from_iso, iso_from_epoch_ms


class SessionImportError(ValueError):
    """The file is not a usable session export."""


def session_export_payload(session: Session) -> dict[str, Any]:
    pts = session.sorted_samples()
    return {
        "sessionId": session.session_id,
        "sessionName": session.name,
        "startTime": iso_from_epoch_ms(session.start_ms),
        "endTime": iso_from_epoch_ms(session.end_ms) if session.end_ms is not None else None,
        "totalDistance": session.total_distance_m,
        "averageSpeed": session.average_speed_mps,
        "locations": [
            {
                "timestamp": iso_from_epoch_ms(s.geo_time_ms),
                "latitude": s.latitude,
                "longitude": s.longitude,
                "altitude": s.altitude_m,
                "speed": s.speed_mps,
                "course": s.course_deg,
                "horizontalAccuracy": s.horizontal_accuracy_m,
                "verticalAccuracy": s.vertical_accuracy_m,
            }
            for s in pts
        ],
    }


def stations_export_payload(session: Session, stations: Sequence[Station]) -> dict[str, Any]:
    """Pass events in display order; events whose station was deleted are left out."""

    by_id = {st.station_id: st for st in stations}
    rows: list[dict[str, Any]] = []
    for e in session.sorted_events():
        st = by_id.get(e.station_id) if e.station_id is not None else None
        if st is None:
            continue
        rows.append(
            {
                "stationName": st.name,
                "stationLatitude": st.latitude,
                "stationLongitude": st.longitude,
                "stationType": st.station_type,
                "operatorName": st.operator,
                "passedAt": iso_from_epoch_ms(e.geo_time_ms),
                "distanceFromStation": e.distance_m,
            }
        )
    return {"sessionId": session.session_id, "sessionName": session.name, "stations": rows}


def write_json(payload: dict[str, Any], out_path: str | Path) -> Path:
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")
    return p


def export_session_json(session: Session, out_path: str | Path) -> Path:
    return write_json(session_export_payload(session), out_path)


def _require(d: dict[str, Any], key: str) -> Any:
    if key not in d or d[key] is None:
        raise SessionImportError(f"Missing required field: {key}")
    return d[key]


def _parse_time(text: Any) -> int:
    try:
        return epoch_ms_from_iso(str(text))
    except ValueError as exc:
        raise SessionImportError(f"Invalid timestamp format: {text}") from exc


def import_session_json(path: str | Path) -> Session:
    """Read a session export back into a finalized Session with a fresh id.

    Raises:
        SessionImportError: If the file is not a valid export, misses fields,
            has unparseable timestamps or contains no locations.
    """

    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SessionImportError("The file is not a valid session export format.") from exc
    if not isinstance(raw, dict):
        raise SessionImportError("The file is not a valid session export format.")

    locations = _require(raw, "locations")
    if not isinstance(locations, list) or not locations:
        raise SessionImportError("The file contains no location data.")

    samples: list[GeoSample] = []
    for loc in locations:
        if not isinstance(loc, dict):
            raise SessionImportError("The file is not a valid session export format.")
        try:
            samples.append(
                GeoSample(
                    geo_time_ms=_parse_time(_require(loc, "timestamp")),
                    latitude=float(_require(loc, "latitude")),
                    longitude=float(_require(loc, "longitude")),
                    altitude_m=float(loc.get("altitude", 0.0) or 0.0),
                    horizontal_accuracy_m=float(loc.get("horizontalAccuracy", 0.0) or 0.0),
                    vertical_accuracy_m=float(loc.get("verticalAccuracy", 0.0) or 0.0),
                    speed_mps=max(0.0, float(loc.get("speed", 0.0) or 0.0)),
                    course_deg=max(0.0, float(loc.get("course", 0.0) or 0.0)),
                )
            )
        except SessionImportError:
            raise
        except (TypeError, ValueError) as exc:
            raise SessionImportError(f"Invalid location entry: {loc}") from exc

    samples.sort(key=lambda s: s.geo_time_ms)
    start_ms = _parse_time(_require(raw, "startTime"))
    end_raw = raw.get("endTime")
    end_ms = _parse_time(end_raw) if end_raw else samples[-1].geo_time_ms

    session = Session(
        session_id=str(uuid.uuid4()),
        name=str(raw.get("sessionName") or "Imported session"),
        start_ms=start_ms,
        end_ms=max(end_ms, start_ms),
        is_active=False,
        samples=samples,
    )
    total = raw.get("totalDistance")
    session.total_distance_m = float(total) if total is not None else compute_distance(samples)
    speed = raw.get("averageSpeed")
    session.average_speed_mps = (
        float(speed) if speed is not None else compute_average_speed(session.total_distance_m, session.duration_s)
    )
    return session
