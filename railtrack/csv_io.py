"""CSV input/output: raw location exports, station lists, session exports."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from railtrack.models import Coord, GeoSample, RawFix, Station, StationPassEvent
from railtrack.timeutils import iso_from_epoch_ms

logger = logging.getLogger(__name__)

REQUIRED_FIX_COLUMNS = ("geoTime", "latitude", "longitude")


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    fieldnames: Sequence[str]


def _parse_int(value: str) -> int:
    return int(value.strip())


def _parse_float(value: str) -> float:
    return float(value.strip())


def _fix_from_row(row: dict[str, str]) -> RawFix:
    return RawFix(
        geo_time_ms=_parse_int(row["geoTime"]),
        latitude=_parse_float(row["latitude"]),
        longitude=_parse_float(row["longitude"]),
        altitude_m=_parse_float(row.get("altitude", "0") or "0"),
        horizontal_accuracy_m=_parse_float(row.get("horizontalAccuracy", "-1") or "-1"),
        vertical_accuracy_m=_parse_float(row.get("verticalAccuracy", "-1") or "-1"),
        speed_mps=_parse_float(row.get("speed", "-1") or "-1"),
        course_deg=_parse_float(row.get("course", "-1") or "-1"),
    )


def load_raw_fixes(csv_path: str | Path) -> tuple[list[RawFix], CsvSummary]:
    """Load all fixes into memory, sorted by time.

    Columns used:
      - geoTime: epoch milliseconds
      - latitude/longitude: decimal degrees
      - altitude/course/horizontalAccuracy/verticalAccuracy/speed (optional;
        missing accuracy/speed/course read as -1, i.e. invalid/unknown)

    Returns:
        (fixes, summary)

    Raises:
        KeyError: If geoTime, latitude or longitude is missing from the header.
    """

    p = Path(csv_path)
    rows_total = 0
    parsed: list[RawFix] = []
    fieldnames: Sequence[str] = ()

    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or ()
        missing = [c for c in REQUIRED_FIX_COLUMNS if c not in fieldnames]
        if missing:
            raise KeyError(f"CSV缺少必要字段：{missing}. 实际字段：{list(fieldnames)}")
        for row in reader:
            rows_total += 1
            try:
                parsed.append(_fix_from_row(row))
            except (KeyError, ValueError, TypeError, AttributeError):
                continue

    parsed.sort(key=lambda x: x.geo_time_ms)
    summary = CsvSummary(
        rows_total=rows_total,
        rows_parsed=len(parsed),
        rows_skipped=rows_total - len(parsed),
        fieldnames=fieldnames,
    )
    if summary.rows_skipped > 0:
        logger.warning("CSV中有 %s 行解析失败已跳过", summary.rows_skipped)
    return parsed, summary


def load_stations_csv(csv_path: str | Path) -> list[Station]:
    """Read a station list (id,name,latitude,longitude[,station_type,operator]).

    Raises:
        KeyError: If a required column is missing.
    """

    p = Path(csv_path)
    out: list[Station] = []
    skipped = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            try:
                out.append(
                    Station(
                        station_id=row["id"].strip(),
                        name=row["name"].strip(),
                        latitude=_parse_float(row["latitude"]),
                        longitude=_parse_float(row["longitude"]),
                        station_type=(row.get("station_type") or "").strip() or None,
                        operator=(row.get("operator") or "").strip() or None,
                    )
                )
            except KeyError as exc:
                raise KeyError(f"车站CSV缺少必要字段：{exc}. 实际字段：{reader.fieldnames}") from exc
            except (ValueError, AttributeError):
                skipped += 1
    if skipped:
        logger.warning("车站CSV中有 %s 行解析失败已跳过", skipped)
    return out


def load_route_csv(csv_path: str | Path) -> list[Coord]:
    """Read a route polyline (latitude,longitude per row, in drawing order).

    Raises:
        KeyError: If latitude or longitude is missing from the header.
    """

    p = Path(csv_path)
    out: list[Coord] = []
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or ()
        missing = [c for c in ("latitude", "longitude") if c not in fieldnames]
        if missing:
            raise KeyError(f"路线CSV缺少必要字段：{missing}. 实际字段：{list(fieldnames)}")
        for row in reader:
            try:
                out.append((_parse_float(row["latitude"]), _parse_float(row["longitude"])))
            except (ValueError, AttributeError):
                continue
    return out


def sanitize_filename(name: str) -> str:
    return name.strip().replace(" ", "_").replace("/", "-").replace("\\", "-") or "session"


def write_samples_csv(samples: Sequence[GeoSample], out_path: str | Path) -> int:
    """Write samples in timestamp order. Returns the row count."""

    p = Path(out_path)
    pts = sorted(samples, key=lambda s: s.geo_time_ms)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=[
                "timestamp",
                "latitude",
                "longitude",
                "altitude",
                "speed",
                "course",
                "horizontal_accuracy",
                "vertical_accuracy",
            ],
        )
        w.writeheader()
        for s in pts:
            w.writerow(
                {
                    "timestamp": iso_from_epoch_ms(s.geo_time_ms),
                    "latitude": s.latitude,
                    "longitude": s.longitude,
                    "altitude": s.altitude_m,
                    "speed": s.speed_mps,
                    "course": s.course_deg,
                    "horizontal_accuracy": s.horizontal_accuracy_m,
                    "vertical_accuracy": s.vertical_accuracy_m,
                }
            )
    return len(pts)


def write_events_csv(
    events: Sequence[StationPassEvent],
    stations: Sequence[Station],
    out_path: str | Path,
) -> int:
    """Write pass events in display order. Unlinked events get an empty station."""

    by_id = {st.station_id: st for st in stations}
    p = Path(out_path)
    ordered = sorted(events, key=lambda e: e.display_order)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=[
                "display_order",
                "timestamp",
                "station_name",
                "station_latitude",
                "station_longitude",
                "distance_from_station",
                "station_type",
                "entry_index",
                "exit_index",
            ],
        )
        w.writeheader()
        for e in ordered:
            st = by_id.get(e.station_id) if e.station_id is not None else None
            w.writerow(
                {
                    "display_order": e.display_order,
                    "timestamp": iso_from_epoch_ms(e.geo_time_ms),
                    "station_name": st.name if st else "Unknown",
                    "station_latitude": st.latitude if st else "",
                    "station_longitude": st.longitude if st else "",
                    "distance_from_station": f"{e.distance_m:.3f}",
                    "station_type": (st.station_type or "") if st else "",
                    "entry_index": e.entry_index,
                    "exit_index": "" if e.exit_index is None else e.exit_index,
                }
            )
    return len(ordered)
