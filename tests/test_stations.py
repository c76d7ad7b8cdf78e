"""Tests for station pass detection and event editing."""

import pytest

from conftest import BASE_LON, T0_MS, make_sample, north
from railtrack.models import Session, Station
from railtrack.stations import (
    active_events,
    analyze_session,
    detect_station_passes,
    event_id_for,
    move_event,
    remove_event,
    reset_station_analysis,
)


def _station(station_id: str, meters_north: float) -> Station:
    return Station(station_id=station_id, name=station_id.title(), latitude=north(meters_north), longitude=BASE_LON)


def _three_sample_track():
    # t=0 and t=20 are far from the station; t=10 is 50 m away
    return [
        make_sample(0, lat=north(-500.0)),
        make_sample(10, lat=north(0.0)),
        make_sample(20, lat=north(500.0)),
    ]


class TestSinglePass:
    def test_one_event_for_a_short_visit(self):
        station = _station("a", 50.0)
        events = detect_station_passes(_three_sample_track(), [station], radius_m=100.0, session_id="s1")

        assert len(events) == 1
        ev = events[0]
        assert ev.station_id == "a"
        assert ev.entry_index == 1
        assert ev.exit_index == 2
        assert ev.distance_m == pytest.approx(50.0, abs=1e-3)
        assert ev.geo_time_ms == T0_MS + 10_000
        assert ev.display_order == 0
        assert ev.session_id == "s1"

    def test_session_ending_inside_has_no_exit(self):
        station = _station("a", 50.0)
        events = detect_station_passes(_three_sample_track()[:2], [station], radius_m=100.0)

        assert len(events) == 1
        assert events[0].entry_index == 1
        assert events[0].exit_index is None

    def test_closest_sample_wins(self):
        station = _station("a", 100.0)
        pts = [make_sample(i * 10, lat=north(m)) for i, m in enumerate([-300.0, 20.0, 90.0, 140.0, 400.0])]
        events = detect_station_passes(pts, [station], radius_m=100.0)

        assert len(events) == 1
        ev = events[0]
        assert ev.entry_index == 1
        assert ev.exit_index == 4
        assert ev.distance_m == pytest.approx(10.0, abs=1e-3)
        assert ev.geo_time_ms == pts[2].geo_time_ms

    def test_boundary_distance_counts_as_inside(self):
        station = _station("a", 0.0)
        pts = [make_sample(0, lat=north(-300.0)), make_sample(10, lat=north(-80.0)), make_sample(20, lat=north(300.0))]
        events = detect_station_passes(pts, [station], radius_m=80.0 + 1e-6)
        assert len(events) == 1


class TestEpisodes:
    def test_inside_from_first_sample(self):
        station = _station("a", 0.0)
        pts = [make_sample(i * 10, lat=north(m)) for i, m in enumerate([0.0, 30.0, 300.0])]
        events = detect_station_passes(pts, [station], radius_m=100.0)

        assert [(e.entry_index, e.exit_index) for e in events] == [(0, 2)]

    def test_out_and_back_yields_two_events(self):
        station = _station("a", 0.0)
        meters = [-500.0, 0.0, 500.0, 900.0, 500.0, 10.0, -500.0]
        pts = [make_sample(i * 10, lat=north(m)) for i, m in enumerate(meters)]
        events = detect_station_passes(pts, [station], radius_m=100.0, session_id="s")

        assert [(e.entry_index, e.exit_index) for e in events] == [(1, 2), (5, 6)]
        assert [e.display_order for e in events] == [0, 1]
        assert events[0].event_id != events[1].event_id

    def test_unsorted_samples_are_sorted_first(self):
        station = _station("a", 50.0)
        pts = list(reversed(_three_sample_track()))
        events = detect_station_passes(pts, [station], radius_m=100.0)
        assert events[0].entry_index == 1


class TestOrdering:
    def test_events_sorted_by_entry_across_stations(self):
        far = _station("far", 1000.0)
        near = _station("near", 0.0)
        pts = [make_sample(i * 10, lat=north(i * 250.0 - 250.0)) for i in range(8)]
        events = detect_station_passes(pts, [far, near], radius_m=100.0)

        assert [e.station_id for e in events] == ["near", "far"]
        assert [e.display_order for e in events] == [0, 1]

    def test_equal_entry_keeps_station_input_order(self):
        b = Station(station_id="b", name="B", latitude=north(10.0), longitude=BASE_LON)
        a = Station(station_id="a", name="A", latitude=north(-10.0), longitude=BASE_LON)
        pts = [make_sample(0, lat=north(-500.0)), make_sample(10), make_sample(20, lat=north(500.0))]

        events = detect_station_passes(pts, [b, a], radius_m=100.0)
        assert [e.station_id for e in events] == ["b", "a"]


class TestEdgeCases:
    def test_no_stations(self):
        assert detect_station_passes(_three_sample_track(), []) == []

    def test_no_samples(self):
        assert detect_station_passes([], [_station("a", 0.0)]) == []

    def test_detection_is_idempotent(self):
        stations = [_station("a", 50.0), _station("b", 480.0)]
        first = detect_station_passes(_three_sample_track(), stations, session_id="s1")
        second = detect_station_passes(_three_sample_track(), stations, session_id="s1")
        assert first == second

    def test_event_id_is_stable(self):
        assert event_id_for("s", "a", 3) == event_id_for("s", "a", 3)
        assert event_id_for("s", "a", 3) != event_id_for("s", "a", 4)


def _analyzed_session() -> Session:
    session = Session(session_id="s1", name="trip", start_ms=T0_MS, end_ms=T0_MS + 20_000, is_active=False)
    session.samples = _three_sample_track()
    analyze_session(session, [_station("a", 50.0), _station("b", -480.0)], now_ms=T0_MS + 30_000)
    return session


class TestAnalyzeSession:
    def test_sets_flags(self):
        session = _analyzed_session()
        assert session.station_analysis_completed
        assert session.station_analysis_ms == T0_MS + 30_000
        assert [e.station_id for e in session.events] == ["b", "a"]

    def test_skips_when_already_completed(self):
        session = _analyzed_session()
        analyze_session(session, [], now_ms=T0_MS + 99_000)
        assert len(session.events) == 2
        assert session.station_analysis_ms == T0_MS + 30_000

    def test_force_reruns(self):
        session = _analyzed_session()
        analyze_session(session, [], now_ms=T0_MS + 99_000, force=True)
        assert session.events == []
        assert session.station_analysis_ms == T0_MS + 99_000

    def test_reset(self):
        session = _analyzed_session()
        reset_station_analysis(session)
        assert session.events == []
        assert not session.station_analysis_completed
        assert session.station_analysis_ms is None


class TestEditing:
    def test_move_event_renumbers(self):
        session = _analyzed_session()
        move_event(session, 0, 1)
        assert [e.station_id for e in session.sorted_events()] == ["a", "b"]
        assert [e.display_order for e in session.sorted_events()] == [0, 1]

    def test_move_out_of_range(self):
        session = _analyzed_session()
        with pytest.raises(IndexError):
            move_event(session, 5, 0)

    def test_remove_event(self):
        session = _analyzed_session()
        target = session.sorted_events()[0].event_id
        assert remove_event(session, target)
        assert len(session.events) == 1
        assert session.events[0].display_order == 0
        assert not remove_event(session, "missing")


class TestActiveEvents:
    def test_events_become_active_at_entry_time(self):
        session = _analyzed_session()
        pts = session.sorted_samples()

        assert [e.station_id for e in active_events(session.events, pts, T0_MS)] == ["b"]
        assert [e.station_id for e in active_events(session.events, pts, T0_MS + 9_999)] == ["b"]
        assert [e.station_id for e in active_events(session.events, pts, T0_MS + 10_000)] == ["b", "a"]
