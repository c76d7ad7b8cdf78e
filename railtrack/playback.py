"""Time-interpolated playback positions and the video frame schedule.

The same ``position_at`` backs the on-screen replay (driven by a redraw clock)
and frame export (driven by a fixed frame schedule). Nothing in here mutates
its inputs, so concurrent readers of one finished session are safe.
"""

from __future__ import annotations

import json
import logging
import threading
from bisect import bisect_right
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal, Sequence

from railtrack.geo import bearing_deg, interpolate_at
from railtrack.models import Coord, GeoSample, StationPassEvent
from railtrack.stations import active_events

logger = logging.getLogger(__name__)

DEFAULT_PLAYBACK_DURATION_S = 30.0
DEFAULT_FRAME_RATE = 30


@dataclass(frozen=True, slots=True)
class PlaybackPosition:
    """Where the replay marker is at a given playback time.

    Attributes:
        coord: Interpolated (lat, lon).
        traveled: Solid part of the route: samples up to ``index`` plus ``coord``.
        index: Index of the bracketing sample at or before ``mapped_ms``.
        mapped_ms: Playback time mapped onto the session's real time axis.
    """

    coord: Coord
    traveled: tuple[Coord, ...]
    index: int
    mapped_ms: float


def map_playback_time(samples: Sequence[GeoSample], t: float, duration_s: float) -> float:
    """Map playback offset ``t`` (seconds) onto [first, last] sample time (ms)."""

    first = samples[0].geo_time_ms
    last = samples[-1].geo_time_ms
    if duration_s <= 0:
        return float(last)
    progress = min(1.0, max(0.0, t / duration_s))
    return first + (last - first) * progress


def position_at(
    samples: Sequence[GeoSample],
    t: float,
    duration_s: float = DEFAULT_PLAYBACK_DURATION_S,
) -> PlaybackPosition | None:
    """Interpolated position for playback time ``t``.

    Args:
        samples: Finished session samples, sorted by timestamp.
        t: Seconds into the playback clock.
        duration_s: Length of the playback clock in seconds.

    Returns:
        PlaybackPosition, or None when there are no samples.
    """

    if not samples:
        return None

    first = samples[0]
    last = samples[-1]
    coords = [s.coord for s in samples]

    if t <= 0:
        return PlaybackPosition(coord=first.coord, traveled=(), index=0, mapped_ms=float(first.geo_time_ms))
    if t >= duration_s or len(samples) < 2:
        return PlaybackPosition(
            coord=last.coord,
            traveled=tuple(coords),
            index=len(samples) - 1,
            mapped_ms=float(last.geo_time_ms),
        )

    mapped = map_playback_time(samples, t, duration_s)
    times = [s.geo_time_ms for s in samples]
    # last sample with timestamp <= mapped
    a_idx = max(0, bisect_right(times, mapped) - 1)
    if a_idx >= len(samples) - 1:
        return PlaybackPosition(
            coord=last.coord,
            traveled=tuple(coords),
            index=len(samples) - 1,
            mapped_ms=mapped,
        )

    a = samples[a_idx]
    b = samples[a_idx + 1]
    coord = interpolate_at(a.geo_time_ms, a.coord, b.geo_time_ms, b.coord, mapped)
    return PlaybackPosition(
        coord=coord,
        traveled=tuple(coords[: a_idx + 1]) + (coord,),
        index=a_idx,
        mapped_ms=mapped,
    )


@dataclass(frozen=True, slots=True)
class FrameSchedule:
    """Fixed frame timing for video export."""

    duration_s: float = DEFAULT_PLAYBACK_DURATION_S
    frame_rate: int = DEFAULT_FRAME_RATE

    @property
    def frame_count(self) -> int:
        return max(0, int(round(self.duration_s * self.frame_rate)))

    def time_at(self, frame_index: int) -> float:
        """Playback time of a frame; the last frame lands exactly on ``duration_s``."""

        n = self.frame_count
        if n <= 1:
            return self.duration_s
        return self.duration_s * frame_index / (n - 1)


@dataclass(frozen=True, slots=True)
class Frame:
    """Everything an external renderer needs for one output frame."""

    index: int
    t: float
    position: PlaybackPosition
    active_event_ids: tuple[str, ...]
    heading_deg: float | None = None

    def to_record(self) -> dict[str, object]:
        return {
            "frame": self.index,
            "t": round(self.t, 6),
            "mapped_ms": round(self.position.mapped_ms, 3),
            "lat": self.position.coord[0],
            "lon": self.position.coord[1],
            "heading": None if self.heading_deg is None else round(self.heading_deg, 2),
            "traveled_points": len(self.position.traveled),
            "active_events": list(self.active_event_ids),
        }


def heading_at(samples: Sequence[GeoSample], index: int) -> float | None:
    """Direction of travel along the segment starting at ``index``.

    The last sample reuses the heading of the segment leading into it.
    Returns None for fewer than two samples.
    """

    if len(samples) < 2:
        return None
    i = max(0, min(index, len(samples) - 2))
    a, b = samples[i], samples[i + 1]
    return bearing_deg(a.latitude, a.longitude, b.latitude, b.longitude)


def frame_at(
    samples: Sequence[GeoSample],
    events: Sequence[StationPassEvent],
    schedule: FrameSchedule,
    frame_index: int,
) -> Frame | None:
    t = schedule.time_at(frame_index)
    pos = position_at(samples, t, schedule.duration_s)
    if pos is None:
        return None
    active = active_events(events, samples, pos.mapped_ms)
    return Frame(
        index=frame_index,
        t=t,
        position=pos,
        active_event_ids=tuple(e.event_id for e in active),
        heading_deg=heading_at(samples, pos.index),
    )


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Outcome of a frame export. ``canceled`` is a normal outcome, not a failure."""

    status: Literal["completed", "canceled"]
    path: Path | None
    frames_written: int
    frame_count: int


def export_frames(
    samples: Sequence[GeoSample],
    events: Sequence[StationPassEvent],
    out_path: str | Path,
    schedule: FrameSchedule | None = None,
    *,
    cancel: threading.Event | None = None,
    on_frame: Callable[[Frame], None] | None = None,
    progress: Callable[[float], None] | None = None,
) -> ExportResult:
    """Write the frame track (one JSON line per frame) for a video encoder.

    Output goes to ``<out>.part`` first and is renamed on completion. When
    ``cancel`` is set, production stops at the next frame boundary and the
    partial file is removed.

    Raises:
        ValueError: If there are no samples to export.
    """

    if not samples:
        raise ValueError("no location samples to export")

    sched = schedule or FrameSchedule()
    pts = sorted(samples, key=lambda s: s.geo_time_ms)
    target = Path(out_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    part = target.with_name(target.name + ".part")
    total = sched.frame_count

    written = 0
    canceled = False
    try:
        with part.open("w", encoding="utf-8", newline="\n") as f:
            for i in range(total):
                if cancel is not None and cancel.is_set():
                    canceled = True
                    break
                frame = frame_at(pts, events, sched, i)
                if frame is None:
                    break
                if on_frame is not None:
                    on_frame(frame)
                f.write(json.dumps(frame.to_record(), ensure_ascii=False) + "\n")
                written += 1
                if progress is not None:
                    progress(written / max(1, total))
    except BaseException:
        part.unlink(missing_ok=True)
        raise

    if canceled:
        part.unlink(missing_ok=True)
        logger.info("frame export canceled after %s/%s frames", written, total)
        return ExportResult(status="canceled", path=None, frames_written=written, frame_count=total)

    part.replace(target)
    logger.info("frame export finished: %s (%s frames)", target, written)
    return ExportResult(status="completed", path=target, frames_written=written, frame_count=total)
