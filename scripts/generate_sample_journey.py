from __future__ import annotations

import argparse
import csv
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Final

from zoneinfo import ZoneInfo


TZ: Final[str] = "Asia/Shanghai"


@dataclass(frozen=True, slots=True)
class Stop:
    station_id: str
    name: str
    lat: float
    lon: float


def _epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def generate_fixes(
    *,
    stops: list[Stop],
    seed: int,
    start_local: datetime,
    step_seconds: float,
    legs_points: int,
) -> list[dict[str, str]]:
    """Generate fake location-export rows for a train running along ``stops``."""

    rng = random.Random(seed)
    cur = start_local.replace(tzinfo=ZoneInfo(TZ))
    out: list[dict[str, str]] = []

    for a, b in zip(stops, stops[1:]):
        for i in range(legs_points):
            f = i / legs_points
            lat = a.lat + (b.lat - a.lat) * f + rng.uniform(-0.00005, 0.00005)
            lon = a.lon + (b.lon - a.lon) * f + rng.uniform(-0.00005, 0.00005)
            cur = cur + timedelta(seconds=step_seconds * rng.uniform(0.9, 1.1))
            # Occasionally emit a bad fix (poor accuracy / unknown speed+course)
            bad = rng.random() < 0.05
            out.append(
                {
                    "geoTime": str(_epoch_ms(cur)),
                    "latitude": f"{lat:.7f}",
                    "longitude": f"{lon:.7f}",
                    "altitude": f"{rng.uniform(5, 60):.1f}",
                    "course": "-1.0" if bad else f"{rng.uniform(0, 360):.1f}",
                    "horizontalAccuracy": f"{rng.choice([120.0, 250.0]) if bad else rng.choice([3.0, 5.0, 8.0, 12.0]):.1f}",
                    "verticalAccuracy": f"{rng.choice([3.0, 5.0, 8.0]):.1f}",
                    "speed": "-1.0" if bad else f"{rng.uniform(15.0, 45.0):.1f}",
                }
            )

    last = stops[-1]
    cur = cur + timedelta(seconds=step_seconds)
    out.append(
        {
            "geoTime": str(_epoch_ms(cur)),
            "latitude": f"{last.lat:.7f}",
            "longitude": f"{last.lon:.7f}",
            "altitude": "10.0",
            "course": "0.0",
            "horizontalAccuracy": "5.0",
            "verticalAccuracy": "5.0",
            "speed": "0.0",
        }
    )
    return out


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a fake journey (fixes CSV + stations CSV) for demo/testing.")
    p.add_argument("--out", type=str, default="sample_data/Path.csv", help="Output fixes CSV path")
    p.add_argument("--stations-out", type=str, default="sample_data/stations.csv", help="Output stations CSV path")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument("--step-seconds", type=float, default=5.0, help="Seconds between fixes")
    p.add_argument("--legs-points", type=int, default=120, help="Fixes per leg between two stations")
    p.add_argument(
        "--start",
        type=str,
        default="2025-01-01 08:00:00",
        help="Start local time in Asia/Shanghai, e.g. '2025-01-01 08:00:00'",
    )
    args = p.parse_args()

    stops = [
        Stop("sh_hongqiao", "上海虹桥", 31.1941000, 121.3199000),
        Stop("kunshan_south", "昆山南", 31.3740000, 120.9510000),
        Stop("suzhou", "苏州", 31.3319000, 120.6110000),
        Stop("wuxi", "无锡", 31.5870000, 120.3020000),
    ]
    rows = generate_fixes(
        stops=stops,
        seed=args.seed,
        start_local=datetime.fromisoformat(args.start),
        step_seconds=args.step_seconds,
        legs_points=args.legs_points,
    )

    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fieldnames = [
        "geoTime",
        "latitude",
        "longitude",
        "altitude",
        "course",
        "horizontalAccuracy",
        "verticalAccuracy",
        "speed",
    ]
    with out_path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        w.writerows(rows)

    st_path = Path(args.stations_out)
    st_path.parent.mkdir(parents=True, exist_ok=True)
    with st_path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=["id", "name", "latitude", "longitude", "station_type"])
        w.writeheader()
        for s in stops:
            w.writerow({"id": s.station_id, "name": s.name, "latitude": s.lat, "longitude": s.lon, "station_type": "railway"})

    print(f"Generated: {out_path} (rows={len(rows)}), {st_path} (stations={len(stops)}), seed={args.seed}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
