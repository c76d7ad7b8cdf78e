from __future__ import annotations

import time
from pathlib import Path

import streamlit as st

from railtrack.models import DEFAULT_TZ, Session, Station
from railtrack.notes import notes_until
from railtrack.playback import FrameSchedule, position_at
from railtrack.simplify import sample_evenly, simplify_for_camera
from railtrack.stations import active_events
from railtrack.stats import summarize
from railtrack.store import SessionNotFoundError, SessionStore
from railtrack.timeutils import dt_from_epoch_ms, format_hhmmss


@st.cache_data(show_spinner=False)
def _load_session(store_dir: str, session_id: str, mtime: float) -> Session:
    _ = mtime  # part of cache key so updated sessions reload automatically
    return SessionStore(store_dir).get_session(session_id)


def _points_frame(coords: list[tuple[float, float]]) -> dict[str, list[float]]:
    return {"lat": [c[0] for c in coords], "lon": [c[1] for c in coords]}


def _render_position(
    placeholder,
    session: Session,
    stations: dict[str, Station],
    t: float,
    duration: float,
    camera_distance_m: float,
    tz_name: str,
) -> None:
    pts = session.sorted_samples()
    pos = position_at(pts, t, duration)
    if pos is None:
        placeholder.info("该会话没有位置数据。")
        return
    traveled = sample_evenly(simplify_for_camera(list(pos.traveled), camera_distance_m), max_points=500)
    active = active_events(session.events, pts, pos.mapped_ms)

    with placeholder.container():
        c1, c2, c3 = st.columns(3)
        c1.metric("回放时间", f"{t:5.1f}s / {duration:.0f}s")
        c2.metric("对应真实时间", dt_from_epoch_ms(int(pos.mapped_ms), tz_name).strftime("%H:%M:%S"))
        c3.metric("已经过车站", str(len(active)))
        st.map(_points_frame(traveled or [pos.coord]), size=4)
        st.caption(f"当前位置：{pos.coord[0]:.6f}, {pos.coord[1]:.6f}")
        if active:
            st.dataframe(
                [
                    {
                        "order": e.display_order,
                        "station": stations[e.station_id].name if e.station_id in stations else "Unknown Station",
                        "distance_m": round(e.distance_m, 1),
                    }
                    for e in active
                ],
                use_container_width=True,
            )
        notes = notes_until(session.notes, pos.mapped_ms)
        if notes:
            st.markdown("**笔记**")
            for n in notes:
                st.caption(f"{dt_from_epoch_ms(n.geo_time_ms, tz_name).strftime('%H:%M:%S')}  {n.preview()}")


def main() -> None:
    st.set_page_config(page_title="火车行程回放", layout="wide")
    st.title("火车行程回放")

    with st.sidebar:
        st.subheader("数据")
        store_dir = st.text_input("数据目录", value="railtrack_data")
        tz_name = st.text_input("时区（IANA）", value=DEFAULT_TZ)

    store = SessionStore(store_dir)
    sessions = store.list_sessions()
    if not sessions:
        st.error(f"数据目录 {store_dir!r} 中没有会话。可以先运行：python -m railtrack record --csv Path.csv")
        return

    labels = {
        s.session_id: f"{dt_from_epoch_ms(s.start_ms, tz_name).strftime('%Y-%m-%d %H:%M')}  {s.name}"
        for s in sessions
    }
    with st.sidebar:
        session_id = st.selectbox("会话", options=list(labels), format_func=lambda k: labels[k])
        duration = st.number_input("回放时长（秒）", value=30.0, min_value=1.0, step=5.0)
        camera_distance = st.select_slider(
            "地图视距（米，决定路线简化程度）", options=[500, 2000, 5000, 10000, 50000], value=5000
        )
        fps = st.number_input("播放帧率", value=10, min_value=1, max_value=30)

    snapshot = store.root / "sessions" / f"{session_id}.json"
    try:
        session = _load_session(store_dir, session_id, Path(snapshot).stat().st_mtime)
    except (SessionNotFoundError, OSError) as exc:
        st.exception(exc)
        return

    summary = summarize(session)
    st.subheader("汇总")
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("距离", f"{summary.total_distance_km:.2f} km")
    m2.metric("平均速度", f"{summary.average_speed_kmh:.1f} km/h")
    m3.metric("时长", format_hhmmss(summary.duration_s))
    m4.metric("经过车站", str(len(session.events)))

    stations = {st_.station_id: st_ for st_ in store.list_stations()}
    routes = store.list_routes()
    if routes:
        with st.expander(f"参考线路（{len(routes)}）"):
            coords = [c for r in routes for c in simplify_for_camera(list(r.coordinates), camera_distance)]
            st.map(_points_frame(coords), size=2)

    placeholder = st.empty()
    t = st.slider("回放进度（秒）", min_value=0.0, max_value=float(duration), value=float(duration), step=0.1)

    if st.button("播放", type="primary"):
        schedule = FrameSchedule(duration_s=float(duration), frame_rate=int(fps))
        for i in range(schedule.frame_count):
            _render_position(
                placeholder, session, stations, schedule.time_at(i), float(duration), camera_distance, tz_name
            )
            time.sleep(1.0 / schedule.frame_rate)
    else:
        _render_position(placeholder, session, stations, t, float(duration), camera_distance, tz_name)

    st.caption("说明：回放时钟线性映射到会话的真实时间范围；位置在相邻两个采样点之间线性插值。")


if __name__ == "__main__":
    main()
