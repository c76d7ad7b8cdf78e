"""Shared builders for railtrack tests."""

from __future__ import annotations

import csv
import math
from pathlib import Path

import pytest

from railtrack.geo import EARTH_RADIUS_M
from railtrack.models import GeoSample, RawFix, Station
from railtrack.store import SessionStore

BASE_LAT = 31.0
BASE_LON = 121.0
T0_MS = 1_735_689_600_000  # 2025-01-01 00:00:00 UTC

# meters per degree of latitude on the haversine sphere
M_PER_DEG_LAT = EARTH_RADIUS_M * math.pi / 180.0


def north(meters: float, lat: float = BASE_LAT) -> float:
    """Latitude ``meters`` north of ``lat``."""

    return lat + meters / M_PER_DEG_LAT


def make_sample(t_s: float, lat: float = BASE_LAT, lon: float = BASE_LON, acc: float = 5.0) -> GeoSample:
    return GeoSample(
        geo_time_ms=T0_MS + int(t_s * 1000),
        latitude=lat,
        longitude=lon,
        altitude_m=10.0,
        horizontal_accuracy_m=acc,
        vertical_accuracy_m=5.0,
        speed_mps=10.0,
        course_deg=90.0,
    )


def make_fix(
    t_s: float,
    lat: float = BASE_LAT,
    lon: float = BASE_LON,
    acc: float = 5.0,
    speed: float = 10.0,
    course: float = 90.0,
) -> RawFix:
    return RawFix(
        geo_time_ms=T0_MS + int(t_s * 1000),
        latitude=lat,
        longitude=lon,
        altitude_m=10.0,
        horizontal_accuracy_m=acc,
        vertical_accuracy_m=5.0,
        speed_mps=speed,
        course_deg=course,
    )


def line_samples(n: int, step_m: float = 20.0, step_s: float = 10.0) -> list[GeoSample]:
    """``n`` samples heading north, ``step_m`` apart."""

    return [make_sample(i * step_s, lat=north(i * step_m)) for i in range(n)]


class FakeClock:
    """Manual epoch-ms clock."""

    def __init__(self, now_ms: int = T0_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / "data")


@pytest.fixture
def station_mid() -> Station:
    return Station(station_id="mid", name="Middle", latitude=north(100.0), longitude=BASE_LON)


def write_fixes_csv(path: Path, fixes: list[RawFix]) -> Path:
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=[
                "geoTime",
                "latitude",
                "longitude",
                "altitude",
                "course",
                "horizontalAccuracy",
                "verticalAccuracy",
                "speed",
            ],
        )
        w.writeheader()
        for fx in fixes:
            w.writerow(
                {
                    "geoTime": fx.geo_time_ms,
                    "latitude": f"{fx.latitude:.9f}",
                    "longitude": f"{fx.longitude:.9f}",
                    "altitude": fx.altitude_m,
                    "course": fx.course_deg,
                    "horizontalAccuracy": fx.horizontal_accuracy_m,
                    "verticalAccuracy": fx.vertical_accuracy_m,
                    "speed": fx.speed_mps,
                }
            )
    return path


def write_stations_csv(path: Path, stations: list[Station]) -> Path:
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=["id", "name", "latitude", "longitude", "station_type"])
        w.writeheader()
        for s in stations:
            w.writerow(
                {
                    "id": s.station_id,
                    "name": s.name,
                    "latitude": f"{s.latitude:.9f}",
                    "longitude": f"{s.longitude:.9f}",
                    "station_type": s.station_type or "",
                }
            )
    return path
