"""Tracker configuration (JSON file + CLI overrides)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from railtrack.location_filter import FilterConfig, clamp_interval, clamp_min_distance, clamp_threshold
from railtrack.models import DEFAULT_TZ
from railtrack.playback import DEFAULT_FRAME_RATE, DEFAULT_PLAYBACK_DURATION_S
from railtrack.stations import DEFAULT_RADIUS_M

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    """All tunables of the recorder.

    Filter values and the recording interval are clamped silently.
    """

    accuracy_threshold_m: float = 50.0
    min_distance_m: float = 5.0
    recording_interval_s: float = 1.0
    proximity_radius_m: float = DEFAULT_RADIUS_M
    playback_duration_s: float = DEFAULT_PLAYBACK_DURATION_S
    frame_rate: int = DEFAULT_FRAME_RATE
    tz_name: str = DEFAULT_TZ
    store_dir: str = "railtrack_data"

    def __post_init__(self) -> None:
        object.__setattr__(self, "accuracy_threshold_m", clamp_threshold(self.accuracy_threshold_m))
        object.__setattr__(self, "min_distance_m", clamp_min_distance(self.min_distance_m))
        object.__setattr__(self, "recording_interval_s", clamp_interval(self.recording_interval_s))

    @property
    def filter(self) -> FilterConfig:
        return FilterConfig(self.accuracy_threshold_m, self.min_distance_m)

    def override(self, **values: Any) -> TrackerConfig:
        """Return a copy with the non-None values applied."""

        changes = {k: v for k, v in values.items() if v is not None}
        return replace(self, **changes) if changes else self


def load_config(path: str | Path | None) -> TrackerConfig:
    """Load a TrackerConfig from a JSON object file.

    A missing path gives the defaults. Unknown keys are ignored with a warning.

    Raises:
        ValueError: If the file is not a JSON object.
    """

    if path is None:
        return TrackerConfig()
    p = Path(path)
    if not p.exists():
        logger.info("config file %s not found, using defaults", p)
        return TrackerConfig()
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"配置文件不是合法JSON：{p}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"配置文件必须是JSON对象：{p}")

    known = {f.name for f in fields(TrackerConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        logger.warning("ignoring unknown config keys: %s", ", ".join(unknown))
    return TrackerConfig(**{k: v for k, v in raw.items() if k in known})
