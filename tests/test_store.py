"""Tests for the on-disk session store."""

import json

import pytest

from conftest import T0_MS, line_samples, make_sample
from railtrack.models import RailwayRoute, Session, Station, StationPassEvent
from railtrack.store import SessionNotFoundError, SessionStore


def _session(session_id: str = "s1", start_ms: int = T0_MS, **kw) -> Session:
    return Session(session_id=session_id, name=f"trip {session_id}", start_ms=start_ms, **kw)


def _event(session_id: str, station_id: str, order: int) -> StationPassEvent:
    return StationPassEvent(
        event_id=f"{session_id}-{station_id}",
        session_id=session_id,
        station_id=station_id,
        geo_time_ms=T0_MS,
        distance_m=12.5,
        entry_index=order,
        exit_index=None,
        display_order=order,
    )


class TestSessions:
    def test_create_and_get(self, store):
        s = _session()
        s.samples = line_samples(3)
        store.create_session(s)

        loaded = store.get_session("s1")
        assert loaded.name == "trip s1"
        assert loaded.samples == s.samples
        assert loaded.is_active
        assert loaded.end_ms is None

    def test_create_twice_is_an_error(self, store):
        store.create_session(_session())
        with pytest.raises(ValueError):
            store.create_session(_session())

    def test_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.get_session("nope")
        with pytest.raises(KeyError):
            store.delete_session("nope")

    def test_list_newest_first(self, store):
        store.create_session(_session("old", T0_MS))
        store.create_session(_session("new", T0_MS + 60_000))
        assert [s.session_id for s in store.list_sessions()] == ["new", "old"]

    def test_find_active_sessions(self, store):
        store.create_session(_session("live"))
        store.create_session(_session("done", T0_MS + 1, end_ms=T0_MS + 5_000, is_active=False))
        assert [s.session_id for s in store.find_active_sessions()] == ["live"]

    def test_events_survive_round_trip(self, store):
        s = _session(is_active=False, end_ms=T0_MS + 1_000)
        s.events = [_event("s1", "a", 0), _event("s1", "b", 1)]
        s.station_analysis_completed = True
        store.create_session(s)

        loaded = store.get_session("s1")
        assert loaded.events == s.events
        assert loaded.station_analysis_completed


class TestJournal:
    def test_journaled_samples_are_replayed(self, tmp_path):
        store = SessionStore(tmp_path)
        store.create_session(_session())
        for i, pt in enumerate(line_samples(4)):
            store.append_sample("s1", i, pt)

        # a fresh store instance sees the journal, as after a crash
        loaded = SessionStore(tmp_path).get_session("s1")
        assert loaded.samples == line_samples(4)

    def test_save_clears_journal(self, store):
        s = _session()
        store.create_session(s)
        s.samples.append(make_sample(0))
        store.append_sample("s1", 0, s.samples[0])
        store.save_session(s)

        assert not (store.root / "sessions" / "s1.journal.jsonl").exists()
        assert len(store.get_session("s1").samples) == 1

    def test_stale_and_broken_lines_are_skipped(self, store):
        s = _session()
        s.samples = line_samples(2)
        store.create_session(s)
        journal = store.root / "sessions" / "s1.journal.jsonl"
        extra = make_sample(100)
        with journal.open("a", encoding="utf-8") as f:
            # seq 1 is already in the snapshot
            f.write(json.dumps({"seq": 1, "v": {"geo_time_ms": 1, "latitude": 0, "longitude": 0}}) + "\n")
        store.append_sample("s1", 2, extra)
        with journal.open("a", encoding="utf-8") as f:
            f.write('{"seq": 3, "v": {"geo_ti')

        loaded = store.get_session("s1")
        assert loaded.samples == line_samples(2) + [extra]

    def test_append_to_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.append_sample("nope", 0, make_sample(0))


class TestCorruption:
    def test_corrupt_snapshot_is_backed_up(self, store):
        store.create_session(_session())
        path = store.root / "sessions" / "s1.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(SessionNotFoundError):
            store.get_session("s1")
        assert (store.root / "sessions" / "s1.json.broken").read_text(encoding="utf-8") == "{not json"
        assert store.list_sessions() == []

    def test_corrupt_stations_file_starts_fresh(self, store):
        store.root.mkdir(parents=True, exist_ok=True)
        (store.root / "stations.json").write_text("[[[", encoding="utf-8")
        assert store.list_stations() == []
        assert (store.root / "stations.json.broken").exists()


class TestCascade:
    def test_delete_session_removes_snapshot_and_journal(self, store):
        store.create_session(_session())
        store.append_sample("s1", 0, make_sample(0))
        store.delete_session("s1")

        assert not (store.root / "sessions" / "s1.json").exists()
        assert not (store.root / "sessions" / "s1.journal.jsonl").exists()
        with pytest.raises(SessionNotFoundError):
            store.get_session("s1")

    def test_delete_station_unlinks_events(self, store):
        store.upsert_stations(
            [
                Station(station_id="a", name="A", latitude=31.0, longitude=121.0),
                Station(station_id="b", name="B", latitude=31.1, longitude=121.1),
            ]
        )
        s = _session(is_active=False, end_ms=T0_MS + 1_000)
        s.events = [_event("s1", "a", 0), _event("s1", "b", 1)]
        store.create_session(s)

        assert store.delete_station("a") == 1
        assert store.get_station("a") is None
        events = store.get_session("s1").sorted_events()
        assert len(events) == 2
        assert events[0].station_id is None
        assert events[1].station_id == "b"

    def test_delete_unknown_station(self, store):
        assert store.delete_station("ghost") == 0


class TestStationsAndRoutes:
    def test_upsert_replaces_by_id(self, store):
        assert store.upsert_stations([Station(station_id="a", name="Old", latitude=1.0, longitude=2.0)]) == 1
        store.upsert_stations([Station(station_id="a", name="New", latitude=1.0, longitude=2.0, operator="CR")])

        stations = store.list_stations()
        assert len(stations) == 1
        assert stations[0].name == "New"
        assert stations[0].operator == "CR"

    def test_route_coordinates_round_trip(self, store):
        route = RailwayRoute(
            route_id="r1",
            way_id=42,
            start_station_id="a",
            end_station_id="b",
            coordinates=((31.0, 121.0), (31.1, 121.2)),
            fetched_ms=T0_MS,
        )
        store.save_route(route)
        assert store.list_routes() == [route]
