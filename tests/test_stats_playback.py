"""Tests for distance/speed statistics, playback interpolation and frame export."""

import json
import threading

import pytest

from conftest import BASE_LON, T0_MS, line_samples, make_sample, north
from railtrack.models import Session, StationPassEvent
from railtrack.playback import FrameSchedule, export_frames, frame_at, map_playback_time, position_at
from railtrack.stats import (
    RunningDistance,
    compute_average_speed,
    compute_distance,
    finalize_statistics,
    summarize,
)


class TestDistance:
    def test_empty_and_single(self):
        assert compute_distance([]) == 0.0
        assert compute_distance([make_sample(0)]) == 0.0

    def test_straight_line(self):
        assert compute_distance(line_samples(5, step_m=20.0)) == pytest.approx(80.0, abs=1e-6)

    def test_closed_loop_counts_every_leg(self):
        pts = [make_sample(0), make_sample(10, lat=north(100.0)), make_sample(20)]
        assert compute_distance(pts) == pytest.approx(200.0, abs=1e-6)

    def test_order_is_by_timestamp(self):
        pts = line_samples(4)
        assert compute_distance(list(reversed(pts))) == pytest.approx(compute_distance(pts))

    def test_running_distance_matches_batch(self):
        pts = line_samples(6, step_m=15.0)
        rd = RunningDistance.from_samples(pts)
        assert rd.count == 6
        assert rd.total_m == pytest.approx(compute_distance(pts))


class TestSpeed:
    def test_zero_elapsed(self):
        assert compute_average_speed(1000.0, 0.0) == 0.0

    def test_mean_speed(self):
        assert compute_average_speed(1000.0, 100.0) == 10.0

    def test_finalize_uses_session_duration(self):
        session = Session(session_id="s", name="n", start_ms=T0_MS, end_ms=T0_MS + 40_000, is_active=False)
        session.samples = line_samples(5, step_m=20.0, step_s=10.0)
        finalize_statistics(session)
        assert session.total_distance_m == pytest.approx(80.0, abs=1e-6)
        assert session.average_speed_mps == pytest.approx(2.0, abs=1e-6)

    def test_summarize_without_cached_values(self):
        session = Session(session_id="s", name="n", start_ms=T0_MS, end_ms=T0_MS + 10_000, is_active=False)
        session.samples = [make_sample(0)]
        summary = summarize(session)
        assert summary.total_distance_m == 0.0
        assert summary.average_speed_mps == 0.0
        assert summary.samples == 1


def _two_point_track():
    return [make_sample(0, lat=31.0), make_sample(10, lat=31.01)]


class TestPositionAt:
    def test_no_samples(self):
        assert position_at([], 5.0) is None

    def test_start_of_playback(self):
        pts = line_samples(4)
        pos = position_at(pts, 0.0, 30.0)
        assert pos.coord == pts[0].coord
        assert pos.traveled == ()
        assert pos.index == 0

    def test_end_of_playback(self):
        pts = line_samples(4)
        pos = position_at(pts, 30.0, 30.0)
        assert pos.coord == pts[-1].coord
        assert pos.traveled == tuple(p.coord for p in pts)

    def test_single_sample_mid_playback(self):
        pt = make_sample(0)
        pos = position_at([pt], 12.0, 30.0)
        assert pos.coord == pt.coord
        assert pos.traveled == (pt.coord,)

    def test_midpoint_interpolation(self):
        pts = _two_point_track()
        pos = position_at(pts, 15.0, 30.0)
        assert pos.mapped_ms == pytest.approx(T0_MS + 5_000)
        assert pos.coord[0] == pytest.approx(31.005)
        assert pos.coord[1] == pytest.approx(BASE_LON)
        assert pos.traveled == (pts[0].coord, pos.coord)

    def test_prefix_grows_with_time(self):
        pts = line_samples(5, step_s=10.0)
        pos = position_at(pts, 22.5, 30.0)
        # mapped to 30 s of a 40 s session: exactly on sample 3
        assert pos.index == 3
        assert pos.traveled[:4] == tuple(p.coord for p in pts[:4])
        assert pos.coord[0] == pytest.approx(pts[3].latitude)

    def test_map_playback_time_clamps(self):
        pts = _two_point_track()
        assert map_playback_time(pts, -5.0, 30.0) == T0_MS
        assert map_playback_time(pts, 99.0, 30.0) == T0_MS + 10_000


class TestFrameSchedule:
    def test_frame_count_and_endpoints(self):
        sched = FrameSchedule(duration_s=2.0, frame_rate=5)
        assert sched.frame_count == 10
        assert sched.time_at(0) == 0.0
        assert sched.time_at(9) == pytest.approx(2.0)

    def test_first_and_last_frames_hit_track_ends(self):
        pts = line_samples(3)
        sched = FrameSchedule(duration_s=1.0, frame_rate=4)
        first = frame_at(pts, [], sched, 0)
        last = frame_at(pts, [], sched, sched.frame_count - 1)
        assert first.position.coord == pts[0].coord
        assert last.position.coord == pts[-1].coord

    def test_heading_follows_the_track(self):
        pts = line_samples(3)
        sched = FrameSchedule(duration_s=1.0, frame_rate=4)
        for i in range(sched.frame_count):
            assert frame_at(pts, [], sched, i).heading_deg == pytest.approx(0.0, abs=1e-9)
        assert frame_at(pts[:1], [], sched, 0).heading_deg is None
        east = [pts[0], make_sample(10, lon=BASE_LON + 0.001)]
        assert frame_at(east, [], sched, 0).to_record()["heading"] == pytest.approx(90.0, abs=0.01)


def _event(entry_index: int) -> StationPassEvent:
    return StationPassEvent(
        event_id=f"e{entry_index}",
        session_id="s",
        station_id="st",
        geo_time_ms=T0_MS,
        distance_m=1.0,
        entry_index=entry_index,
        exit_index=None,
    )


class TestExportFrames:
    def test_completed_export(self, tmp_path):
        pts = line_samples(3)
        out = tmp_path / "frames" / "trip.jsonl"
        result = export_frames(pts, [_event(1)], out, FrameSchedule(duration_s=1.0, frame_rate=5))

        assert result.status == "completed"
        assert result.path == out
        assert result.frames_written == 5
        lines = [json.loads(line) for line in out.read_text(encoding="utf-8").splitlines()]
        assert len(lines) == 5
        assert lines[0]["active_events"] == []
        assert lines[-1]["active_events"] == ["e1"]
        assert lines[-1]["lat"] == pytest.approx(pts[-1].latitude)
        assert not (tmp_path / "frames" / "trip.jsonl.part").exists()

    def test_cancel_before_start(self, tmp_path):
        cancel = threading.Event()
        cancel.set()
        out = tmp_path / "trip.jsonl"
        result = export_frames(line_samples(3), [], out, FrameSchedule(1.0, 5), cancel=cancel)

        assert result.status == "canceled"
        assert result.path is None
        assert result.frames_written == 0
        assert list(tmp_path.iterdir()) == []

    def test_cancel_mid_export_removes_partial_file(self, tmp_path):
        cancel = threading.Event()

        def on_frame(frame):
            if frame.index == 2:
                cancel.set()

        out = tmp_path / "trip.jsonl"
        result = export_frames(line_samples(3), [], out, FrameSchedule(1.0, 10), cancel=cancel, on_frame=on_frame)

        assert result.status == "canceled"
        assert result.frames_written == 3
        assert not out.exists()
        assert not (tmp_path / "trip.jsonl.part").exists()

    def test_progress_reaches_one(self, tmp_path):
        seen = []
        export_frames(line_samples(2), [], tmp_path / "t.jsonl", FrameSchedule(1.0, 4), progress=seen.append)
        assert seen[-1] == pytest.approx(1.0)

    def test_empty_track_is_an_error(self, tmp_path):
        with pytest.raises(ValueError):
            export_frames([], [], tmp_path / "t.jsonl")

    def test_error_in_callback_cleans_up(self, tmp_path):
        def boom(frame):
            raise RuntimeError("renderer failed")

        with pytest.raises(RuntimeError):
            export_frames(line_samples(2), [], tmp_path / "t.jsonl", FrameSchedule(1.0, 4), on_frame=boom)
        assert list(tmp_path.iterdir()) == []
