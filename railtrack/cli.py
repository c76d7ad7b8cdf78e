"""Command-line interface for railtrack.

Run:
    python -m railtrack record --csv Path.csv --stations stations.csv
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
import time
from dataclasses import asdict
from pathlib import Path

from railtrack.config import TrackerConfig, load_config
from railtrack.controller import SessionAlreadyActiveError, SessionController
from railtrack.csv_io import (
    load_raw_fixes,
    load_route_csv,
    load_stations_csv,
    sanitize_filename,
    write_events_csv,
    write_samples_csv,
)
from railtrack.inspect import inspect_session
from railtrack.json_io import (
    SessionImportError,
    export_session_json,
    import_session_json,
    stations_export_payload,
    write_json,
)
from railtrack.models import RailwayRoute, Session
from railtrack.playback import ExportResult, FrameSchedule, export_frames, map_playback_time, position_at
from railtrack.source import ReplayLocationSource
from railtrack.stations import analyze_session, move_event, remove_event, reset_station_analysis
from railtrack.stats import summarize
from railtrack.store import SessionNotFoundError, SessionStore
from railtrack.timeutils import dt_from_epoch_ms, format_hhmmss

logger = logging.getLogger(__name__)


def _config(args: argparse.Namespace) -> TrackerConfig:
    cfg = load_config(args.config)
    return cfg.override(
        store_dir=args.store,
        tz_name=args.tz,
        accuracy_threshold_m=getattr(args, "threshold", None),
        min_distance_m=getattr(args, "min_distance", None),
        recording_interval_s=getattr(args, "interval", None),
        proximity_radius_m=getattr(args, "radius", None),
        playback_duration_s=getattr(args, "duration", None),
        frame_rate=getattr(args, "fps", None),
    )


def _controller(
    args: argparse.Namespace, source: ReplayLocationSource | None = None
) -> tuple[SessionController, SessionStore, TrackerConfig]:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    if source is None:
        return SessionController(store, cfg), store, cfg
    # session start/end follow the replayed fixes, not the wall clock
    return SessionController(store, cfg, clock=source.now_ms), store, cfg


def _fmt_time(ms: int | None, tz_name: str) -> str:
    if ms is None:
        return "--"
    return dt_from_epoch_ms(ms, tz_name).isoformat(sep=" ", timespec="seconds")


def _print_summary(session: Session, tz_name: str) -> None:
    s = summarize(session)
    print(f"会话：{session.name}（{session.session_id}）")
    print(f"开始={_fmt_time(session.start_ms, tz_name)}，结束={_fmt_time(session.end_ms, tz_name)}")
    print(
        f"点数={s.samples}，距离={s.total_distance_km:.3f} km，"
        f"平均速度={s.average_speed_kmh:.1f} km/h，时长={format_hhmmss(s.duration_s)}"
    )
    print(f"经过车站={len(session.events)}")


def _playback_duration(args: argparse.Namespace, session: Session, cfg: TrackerConfig) -> float:
    """Explicit --duration, else the session's own setting, else the config default."""

    if args.duration is not None:
        return args.duration
    if session.playback_duration_s > 0:
        return session.playback_duration_s
    return cfg.playback_duration_s


def _load_source(csv_path: str) -> ReplayLocationSource:
    fixes, summary = load_raw_fixes(csv_path)
    logger.info("loaded %s rows (%s skipped)", summary.rows_parsed, summary.rows_skipped)
    return ReplayLocationSource(fixes)


def _replay_into(controller: SessionController, source: ReplayLocationSource) -> tuple[int, int]:
    source.update_interval(controller.recording_interval_s)
    accepted = {"n": 0}

    def _on_fix(fix) -> None:
        if controller.handle_fix(fix):
            accepted["n"] += 1

    try:
        delivered = source.run(_on_fix)
    except KeyboardInterrupt:
        source.stop()
        print("\n收到中断信号：停止回放，开始结束会话……", file=sys.stderr, flush=True)
        delivered = -1
    return delivered, accepted["n"]


def _cmd_record(args: argparse.Namespace) -> int:
    source = _load_source(args.csv)
    controller, store, cfg = _controller(args, source)
    if args.stations:
        store.upsert_stations(load_stations_csv(args.stations))
    try:
        session = controller.start(name=args.name)
    except SessionAlreadyActiveError as exc:
        print(f"无法开始新会话：{exc}", file=sys.stderr)
        print("请先运行 recover --resume-csv/--discard 处理未结束的会话。", file=sys.stderr)
        return 2

    delivered, accepted = _replay_into(controller, source)
    print(f"回放：投递={delivered}，接受={accepted}，阈值={cfg.accuracy_threshold_m}m，最小距离={cfg.min_distance_m}m")
    session = controller.stop()
    _print_summary(session, cfg.tz_name)
    controller.close()
    return 0


def _cmd_recover(args: argparse.Namespace) -> int:
    source = _load_source(args.resume_csv) if args.resume_csv else None
    controller, _, cfg = _controller(args, source)
    found = controller.check_for_recoverable_session()
    if found is None:
        print("没有需要恢复的会话。")
        return 0

    print(
        f"发现未正常结束的会话：{found.name}（{found.session_id}），点数={found.sample_count}，"
        f"最后一个点={_fmt_time(found.last_sample_ms, cfg.tz_name)}"
    )
    if args.discard:
        session = controller.discard_recovered()
        print("已结束该会话并完成统计。")
        _print_summary(session, cfg.tz_name)
    elif source is not None:
        controller.resume_recovered()
        delivered, accepted = _replay_into(controller, source)
        print(f"继续记录：投递={delivered}，接受={accepted}")
        _print_summary(controller.stop(), cfg.tz_name)
    else:
        controller.dismiss_recovery()
        print("未处理（下次启动会再次提示）。使用 --discard 或 --resume-csv。")
    controller.close()
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    cfg = _config(args)
    sessions = SessionStore(cfg.store_dir).list_sessions()
    if not sessions:
        print("没有会话。")
        return 0
    for s in sessions:
        flag = "active" if s.is_active else ("done" if s.is_finalized else "open")
        dist = "--" if s.total_distance_m is None else f"{s.total_distance_m / 1000.0:.2f} km"
        print(
            f"{s.session_id}  {_fmt_time(s.start_ms, cfg.tz_name)}  {flag:6s}  "
            f"points={len(s.samples)}  {dist}  {s.name}"
        )
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    session = store.get_session(args.session_id)
    _print_summary(session, cfg.tz_name)
    stations = {st.station_id: st for st in store.list_stations()}
    pts = session.sorted_samples()
    for e in session.sorted_events():
        st = stations.get(e.station_id) if e.station_id else None
        name = st.name if st else "Unknown Station"
        exit_txt = "-" if e.exit_index is None else str(e.exit_index)
        print(
            f"  #{e.display_order:<3d} {_fmt_time(e.geo_time_ms, cfg.tz_name)}  {name}  "
            f"{e.distance_m:.0f} m  idx={e.entry_index}..{exit_txt}/{len(pts) - 1}"
        )
    if session.notes:
        print(f"笔记={len(session.notes)}")
    for n in session.sorted_notes():
        st = stations.get(n.station_id) if n.station_id else None
        where = f"  @{st.name}" if st else ""
        print(f"  [{n.display_order}] {_fmt_time(n.geo_time_ms, cfg.tz_name)}  {n.preview()}{where}  ({n.note_id})")
    return 0


def _cmd_import_stations(args: argparse.Namespace) -> int:
    cfg = _config(args)
    n = SessionStore(cfg.store_dir).upsert_stations(load_stations_csv(args.csv))
    print(f"已导入车站：{n}")
    return 0


def _cmd_delete_station(args: argparse.Namespace) -> int:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    station = store.get_station(args.station_id)
    if station is None:
        print(f"找不到车站：{args.station_id}", file=sys.stderr)
        return 1
    cleared = store.delete_station(args.station_id)
    print(f"已删除车站 {station.name}（{station.station_id}），解除关联的经过记录={cleared}")
    return 0


def _cmd_import_route(args: argparse.Namespace) -> int:
    cfg = _config(args)
    coords = load_route_csv(args.csv)
    if len(coords) < 2:
        print("路线至少需要两个点。", file=sys.stderr)
        return 1
    route = RailwayRoute(
        route_id=args.route_id or f"{args.start}-{args.end}",
        way_id=args.way_id,
        start_station_id=args.start,
        end_station_id=args.end,
        coordinates=tuple(coords),
        fetched_ms=int(time.time() * 1000),
    )
    SessionStore(cfg.store_dir).save_route(route)
    print(f"已保存路线：{route.route_id}（点数={len(coords)}）")
    return 0


def _cmd_analyze(args: argparse.Namespace) -> int:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    if args.stations:
        store.upsert_stations(load_stations_csv(args.stations))
    session = store.get_session(args.session_id)
    if session.is_active:
        print("会话仍在记录中，请先结束。", file=sys.stderr)
        return 2
    if args.reset:
        reset_station_analysis(session)
        store.save_session(session)
        print("已清除经过车站记录。")
        return 0
    events = analyze_session(
        session,
        store.list_stations(),
        radius_m=cfg.proximity_radius_m,
        now_ms=int(time.time() * 1000),
        force=args.force,
    )
    store.save_session(session)
    print(f"半径={cfg.proximity_radius_m} m，经过车站={len(events)}")
    return 0


def _cmd_move_event(args: argparse.Namespace) -> int:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    session = store.get_session(args.session_id)
    try:
        move_event(session, args.from_index, args.to_index)
    except IndexError as exc:
        print(f"错误：{exc}", file=sys.stderr)
        return 1
    store.save_session(session)
    print("已调整顺序。")
    return 0


def _cmd_remove_event(args: argparse.Namespace) -> int:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    session = store.get_session(args.session_id)
    if not remove_event(session, args.event_id):
        print(f"找不到经过记录：{args.event_id}", file=sys.stderr)
        return 1
    store.save_session(session)
    print(f"已删除经过记录：{args.event_id}")
    return 0


def _cmd_stats(args: argparse.Namespace) -> int:
    cfg = _config(args)
    session = SessionStore(cfg.store_dir).get_session(args.session_id)
    s = summarize(session)
    if args.json:
        print(json.dumps(asdict(s), ensure_ascii=False, indent=2))
    else:
        _print_summary(session, cfg.tz_name)
    return 0


def _cmd_position(args: argparse.Namespace) -> int:
    cfg = _config(args)
    session = SessionStore(cfg.store_dir).get_session(args.session_id)
    duration = _playback_duration(args, session, cfg)
    pos = position_at(session.sorted_samples(), args.t, duration)
    if pos is None:
        print("会话没有位置数据。")
        return 1
    print(
        json.dumps(
            {
                "t": args.t,
                "duration": duration,
                "lat": pos.coord[0],
                "lon": pos.coord[1],
                "index": pos.index,
                "mapped_time": _fmt_time(int(pos.mapped_ms), cfg.tz_name),
                "traveled_points": len(pos.traveled),
            },
            ensure_ascii=False,
        )
    )
    return 0


def _cmd_export_csv(args: argparse.Namespace) -> int:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    session = store.get_session(args.session_id)
    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    base = sanitize_filename(session.name)
    n_pts = write_samples_csv(session.samples, out_dir / f"{base}_locations.csv")
    n_ev = write_events_csv(session.events, store.list_stations(), out_dir / f"{base}_stations.csv")
    print(f"已导出：{out_dir}（locations={n_pts}，stations={n_ev}）")
    return 0


def _cmd_export_json(args: argparse.Namespace) -> int:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    session = store.get_session(args.session_id)
    out = args.out or f"{sanitize_filename(session.name)}.json"
    print(f"已导出：{export_session_json(session, out)}")
    if args.stations_out:
        payload = stations_export_payload(session, store.list_stations())
        print(f"已导出车站：{write_json(payload, args.stations_out)}（{len(payload['stations'])}）")
    return 0


def _cmd_import_json(args: argparse.Namespace) -> int:
    cfg = _config(args)
    store = SessionStore(cfg.store_dir)
    try:
        session = import_session_json(args.file)
    except SessionImportError as exc:
        print(f"导入失败：{exc}", file=sys.stderr)
        return 1
    store.create_session(session)
    print(f"已导入会话：{session.session_id}")
    _print_summary(session, cfg.tz_name)
    return 0


def _cmd_export_frames(args: argparse.Namespace) -> int:
    cfg = _config(args)
    session = SessionStore(cfg.store_dir).get_session(args.session_id)
    schedule = FrameSchedule(duration_s=_playback_duration(args, session, cfg), frame_rate=cfg.frame_rate)
    cancel = threading.Event()
    outcome: dict[str, ExportResult | BaseException] = {}

    def _progress(p: float) -> None:
        print(f"\r导出进度：{100.0 * p:5.1f}%", end="", file=sys.stderr, flush=True)

    def _run() -> None:
        try:
            outcome["result"] = export_frames(
                session.sorted_samples(), session.events, args.out, schedule, cancel=cancel, progress=_progress
            )
        except BaseException as exc:  # re-raised in the main thread
            outcome["error"] = exc

    worker = threading.Thread(target=_run, name="railtrack-export", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.2)
    except KeyboardInterrupt:
        cancel.set()
        worker.join()
    print(file=sys.stderr)

    if "error" in outcome:
        raise outcome["error"]
    result = outcome["result"]
    if result.status == "canceled":
        print(f"已取消：写出 {result.frames_written}/{result.frame_count} 帧，未保留部分文件。")
        return 130
    print(f"已导出：{result.path}（frames={result.frames_written}，fps={schedule.frame_rate}）")
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    cfg = _config(args)
    session = SessionStore(cfg.store_dir).get_session(args.session_id)
    res = inspect_session(session, accuracy_threshold_m=cfg.accuracy_threshold_m)

    print("### 点数")
    print(f"samples={res.samples}, events={res.events}, unlinked={res.unlinked_events}, broken={res.broken_events}")
    print()
    if res.first_sample_ms is not None:
        print("### 时间范围（本地时区）")
        print(
            f"first={_fmt_time(res.first_sample_ms, cfg.tz_name)}, last={_fmt_time(res.last_sample_ms, cfg.tz_name)}, "
            f"start_lag={res.start_lag_s:.1f}s"
        )
        print()
    if res.delta is not None:
        print("### 采样间隔（秒）")
        print(
            f"count={res.delta.count}, min={res.delta.min_s:.3f}, median={res.delta.median_s:.3f}, "
            f"p95={res.delta.p95_s:.3f}, max={res.delta.max_s:.3f}"
        )
        print()
    print(f"### 断档（超过 {res.gap_threshold_s:.0f}s 无采样）")
    for g in res.gaps:
        print(f"  after #{g.after_index}  {_fmt_time(g.start_ms, cfg.tz_name)}  {format_hhmmss(g.seconds)}")
    print(f"count={len(res.gaps)}, longest={format_hhmmss(res.longest_gap_s)}")
    print()
    print("### 精度")
    print(f"worst={res.worst_accuracy_m}, over_{cfg.accuracy_threshold_m:g}m={res.over_threshold}")
    print()
    print("### 重复时间戳 / 距离偏差")
    drift = "--" if res.distance_drift_m is None else f"{res.distance_drift_m:.3f} m"
    print(f"duplicates={res.duplicates_geo_time}, distance_drift={drift}")

    if args.json:
        print(json.dumps(asdict(res), ensure_ascii=False, indent=2))
    return 0


def _cmd_note_add(args: argparse.Namespace) -> int:
    controller, store, cfg = _controller(args)
    at_ms = None
    if args.t is not None:
        session = store.get_session(args.session_id)
        pts = session.sorted_samples()
        if not pts:
            print("会话没有位置数据。", file=sys.stderr)
            return 1
        at_ms = int(map_playback_time(pts, args.t, _playback_duration(args, session, cfg)))
    note = controller.add_session_note(
        args.session_id, args.text, at_ms=at_ms, event_id=args.event, station_id=args.station
    )
    print(f"已添加笔记：{note.note_id}（{_fmt_time(note.geo_time_ms, cfg.tz_name)}，{note.latitude:.6f}, {note.longitude:.6f}）")
    return 0


def _cmd_note_edit(args: argparse.Namespace) -> int:
    controller, _, _ = _controller(args)
    note = controller.edit_session_note(
        args.session_id, args.note_id, text=args.text, station_id=args.station, unlink_station=args.unlink
    )
    print(f"已更新笔记：{note.preview()}")
    return 0


def _cmd_note_move(args: argparse.Namespace) -> int:
    controller, _, _ = _controller(args)
    try:
        controller.move_session_note(args.session_id, args.from_index, args.to_index)
    except IndexError as exc:
        print(f"错误：{exc}", file=sys.stderr)
        return 1
    print("已调整顺序。")
    return 0


def _cmd_note_delete(args: argparse.Namespace) -> int:
    controller, _, _ = _controller(args)
    if not controller.delete_session_note(args.session_id, args.note_id):
        print(f"找不到笔记：{args.note_id}", file=sys.stderr)
        return 1
    print(f"已删除笔记：{args.note_id}")
    return 0


def _cmd_rename(args: argparse.Namespace) -> int:
    controller, _, _ = _controller(args)
    if args.name is not None:
        controller.rename_session(args.session_id, args.name)
    if args.set_interval is not None:
        controller.set_session_interval(args.session_id, args.set_interval)
    print("已更新。")
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    controller, _, _ = _controller(args)
    controller.delete_session(args.session_id)
    print(f"已删除会话：{args.session_id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="railtrack")
    p.add_argument("--config", type=str, default=None, help="配置文件（JSON）")
    p.add_argument("--store", type=str, default=None, help="数据目录（默认 railtrack_data）")
    p.add_argument("--tz", type=str, default=None, help="时区（IANA），默认 Asia/Shanghai")
    p.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_rec = sub.add_parser("record", help="把定位导出CSV当作定位源回放，记录成一个会话")
    p_rec.add_argument("--csv", type=str, default="Path.csv", help="输入CSV路径")
    p_rec.add_argument("--name", type=str, default="", help="会话名称")
    p_rec.add_argument("--stations", type=str, default=None, help="车站CSV（id,name,latitude,longitude）")
    p_rec.add_argument("--interval", type=float, default=None, help="记录间隔（秒，0.1~60）")
    p_rec.add_argument("--threshold", type=float, default=None, help="精度阈值（米，1~200）")
    p_rec.add_argument("--min-distance", type=float, default=None, help="最小移动距离（米，0~100）")
    p_rec.add_argument("--radius", type=float, default=None, help="车站接近半径（米）")
    p_rec.set_defaults(func=_cmd_record)

    p_rc = sub.add_parser("recover", help="检查并处理异常退出时未结束的会话")
    g = p_rc.add_mutually_exclusive_group()
    g.add_argument("--discard", action="store_true", help="结束该会话并计算统计")
    g.add_argument("--resume-csv", type=str, default=None, help="用该CSV继续记录后结束")
    p_rc.set_defaults(func=_cmd_recover)

    p_ls = sub.add_parser("list", help="列出会话")
    p_ls.set_defaults(func=_cmd_list)

    p_sh = sub.add_parser("show", help="显示会话与经过的车站")
    p_sh.add_argument("session_id")
    p_sh.set_defaults(func=_cmd_show)

    p_is = sub.add_parser("import-stations", help="导入车站CSV到数据目录")
    p_is.add_argument("--csv", type=str, required=True)
    p_is.set_defaults(func=_cmd_import_stations)

    p_ds = sub.add_parser("delete-station", help="删除车站（经过记录保留，但解除关联）")
    p_ds.add_argument("station_id")
    p_ds.set_defaults(func=_cmd_delete_station)

    p_an = sub.add_parser("analyze", help="重新识别经过的车站")
    p_an.add_argument("session_id")
    p_an.add_argument("--stations", type=str, default=None, help="额外导入的车站CSV")
    p_an.add_argument("--radius", type=float, default=None, help="接近半径（米）")
    p_an.add_argument("--force", action="store_true", help="已分析过也重新计算")
    p_an.add_argument("--reset", action="store_true", help="清除经过记录与分析标记")
    p_an.set_defaults(func=_cmd_analyze)

    p_mv = sub.add_parser("move-event", help="调整经过车站的显示顺序")
    p_mv.add_argument("session_id")
    p_mv.add_argument("from_index", type=int)
    p_mv.add_argument("to_index", type=int)
    p_mv.set_defaults(func=_cmd_move_event)

    p_rm = sub.add_parser("remove-event", help="删除一条经过记录")
    p_rm.add_argument("session_id")
    p_rm.add_argument("event_id")
    p_rm.set_defaults(func=_cmd_remove_event)

    p_ir = sub.add_parser("import-route", help="导入两站之间的线路折线（latitude,longitude）")
    p_ir.add_argument("--csv", type=str, required=True)
    p_ir.add_argument("--start", type=str, required=True, help="起点车站ID")
    p_ir.add_argument("--end", type=str, required=True, help="终点车站ID")
    p_ir.add_argument("--way-id", type=int, default=0)
    p_ir.add_argument("--route-id", type=str, default=None)
    p_ir.set_defaults(func=_cmd_import_route)

    p_st = sub.add_parser("stats", help="距离/平均速度")
    p_st.add_argument("session_id")
    p_st.add_argument("--json", action="store_true", help="输出JSON")
    p_st.set_defaults(func=_cmd_stats)

    p_pos = sub.add_parser("position", help="回放时钟 t 秒时的插值位置")
    p_pos.add_argument("session_id")
    p_pos.add_argument("--t", type=float, required=True, help="回放时间（秒）")
    p_pos.add_argument("--duration", type=float, default=None, help="回放总时长（秒），默认取会话设置")
    p_pos.set_defaults(func=_cmd_position)

    p_ec = sub.add_parser("export-csv", help="导出位置点与车站CSV")
    p_ec.add_argument("session_id")
    p_ec.add_argument("--out-dir", type=str, default=".", help="输出目录")
    p_ec.set_defaults(func=_cmd_export_csv)

    p_ej = sub.add_parser("export-json", help="导出会话JSON")
    p_ej.add_argument("session_id")
    p_ej.add_argument("--out", type=str, default=None, help="输出路径")
    p_ej.add_argument("--stations-out", type=str, default=None, help="另外导出经过车站JSON")
    p_ej.set_defaults(func=_cmd_export_json)

    p_ij = sub.add_parser("import-json", help="导入会话JSON")
    p_ij.add_argument("--file", type=str, required=True)
    p_ij.set_defaults(func=_cmd_import_json)

    p_ef = sub.add_parser("export-frames", help="导出视频帧轨迹（每帧一行JSON，Ctrl-C 取消）")
    p_ef.add_argument("session_id")
    p_ef.add_argument("--out", type=str, required=True, help="输出 .jsonl 路径")
    p_ef.add_argument("--duration", type=float, default=None, help="视频时长（秒），默认取会话设置")
    p_ef.add_argument("--fps", type=int, default=None, help="帧率")
    p_ef.set_defaults(func=_cmd_export_frames)

    p_in = sub.add_parser("inspect", help="分析会话的时间范围/采样间隔等")
    p_in.add_argument("session_id")
    p_in.add_argument("--json", action="store_true", help="额外输出JSON（便于后处理）")
    p_in.add_argument("--threshold", type=float, default=None, help="统计超过该精度（米）的点，默认取配置")
    p_in.set_defaults(func=_cmd_inspect)

    p_na = sub.add_parser("note-add", help="添加笔记（默认放在最后一个点）")
    p_na.add_argument("session_id")
    p_na.add_argument("--text", type=str, required=True)
    g_na = p_na.add_mutually_exclusive_group()
    g_na.add_argument("--event", type=str, default=None, help="关联的经过记录ID（位置取最近点）")
    g_na.add_argument("--t", type=float, default=None, help="回放时间（秒），换算成轨迹上的位置")
    p_na.add_argument("--duration", type=float, default=None, help="回放总时长（秒），默认取会话设置")
    p_na.add_argument("--station", type=str, default=None, help="关联车站ID")
    p_na.set_defaults(func=_cmd_note_add)

    p_ne = sub.add_parser("note-edit", help="修改笔记内容/关联车站")
    p_ne.add_argument("session_id")
    p_ne.add_argument("note_id")
    p_ne.add_argument("--text", type=str, default=None)
    g_ne = p_ne.add_mutually_exclusive_group()
    g_ne.add_argument("--station", type=str, default=None, help="关联车站ID")
    g_ne.add_argument("--unlink", action="store_true", help="解除车站关联")
    p_ne.set_defaults(func=_cmd_note_edit)

    p_nm = sub.add_parser("note-move", help="调整笔记显示顺序")
    p_nm.add_argument("session_id")
    p_nm.add_argument("from_index", type=int)
    p_nm.add_argument("to_index", type=int)
    p_nm.set_defaults(func=_cmd_note_move)

    p_nd = sub.add_parser("note-delete", help="删除笔记")
    p_nd.add_argument("session_id")
    p_nd.add_argument("note_id")
    p_nd.set_defaults(func=_cmd_note_delete)

    p_rn = sub.add_parser("rename", help="修改会话名称/记录间隔")
    p_rn.add_argument("session_id")
    p_rn.add_argument("--name", type=str, default=None)
    p_rn.add_argument("--set-interval", type=float, default=None, help="记录间隔（秒）")
    p_rn.set_defaults(func=_cmd_rename)

    p_del = sub.add_parser("delete", help="删除会话（含位置点与经过记录）")
    p_del.add_argument("session_id")
    p_del.set_defaults(func=_cmd_delete)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return int(args.func(args))
    except SessionNotFoundError as exc:
        print(f"找不到会话：{exc.args[0] if exc.args else ''}", file=sys.stderr)
        return 1
    except (KeyError, ValueError) as exc:
        print(f"错误：{exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
