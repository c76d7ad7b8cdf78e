"""Session life cycle: idle -> recording <-> paused -> stopped.

One controller owns the single active session. Fixes from the location source
go through ``handle_fix``; filter decision and append happen under one lock,
so concurrent callbacks cannot interleave appends out of order.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Sequence

from railtrack.config import TrackerConfig
from railtrack.location_filter import clamp_interval, sample_from_fix
from railtrack.models import GeoSample, RawFix, Session, SessionNote, Station
from railtrack.notes import (
    add_note,
    add_note_at,
    add_note_for_event,
    edit_note,
    move_note,
    remove_note,
)
from railtrack.stations import analyze_session
from railtrack.stats import RunningDistance, finalize_statistics
from railtrack.store import SessionStore
from railtrack.timeutils import dt_from_epoch_ms

logger = logging.getLogger(__name__)

# snapshot the journal into the session file every N accepted samples
SAVE_EVERY_N_SAMPLES = 10


class SessionState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


class SessionAlreadyActiveError(RuntimeError):
    """A session is already active; stop or resume it first."""


class InvalidTransitionError(RuntimeError):
    """The requested life-cycle transition is not allowed from the current state."""


@dataclass(frozen=True, slots=True)
class RecoverableSession:
    """A session left active by an abnormal shutdown."""

    session_id: str
    name: str
    start_ms: int
    sample_count: int
    last_sample_ms: int | None


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionController:
    """Owns the active session and drives filter, append and finalize."""

    def __init__(
        self,
        store: SessionStore,
        config: TrackerConfig | None = None,
        *,
        stations: Callable[[], Sequence[Station]] | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._config = config or TrackerConfig()
        self._stations = stations or store.list_stations
        self._clock = clock
        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._session: Session | None = None
        self._last_accepted: GeoSample | None = None
        self._running = RunningDistance()
        self._unsaved = 0
        self._recoverable: Session | None = None
        self._executor: ThreadPoolExecutor | None = None

    # -- read-only views ------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def current_session(self) -> Session | None:
        return self._session

    @property
    def has_active_session(self) -> bool:
        return self._state in (SessionState.RECORDING, SessionState.PAUSED)

    @property
    def point_count(self) -> int:
        return len(self._session.samples) if self._session is not None else 0

    @property
    def live_distance_m(self) -> float:
        return self._running.total_m

    @property
    def recording_interval_s(self) -> float:
        """Interval hint for the location source."""

        return self._config.recording_interval_s

    # -- life cycle -----------------------------------------------------

    def start(self, name: str = "", interval_s: float | None = None) -> Session:
        """Create a new session and start recording.

        Raises:
            SessionAlreadyActiveError: If a session is active here or left active in the store.
        """

        with self._lock:
            if self.has_active_session:
                raise SessionAlreadyActiveError(f"session {self._session.session_id} is already active")
            orphans = self._store.find_active_sessions()
            if orphans:
                raise SessionAlreadyActiveError(
                    f"session {orphans[0].session_id} was left active; recover or discard it first"
                )

            if interval_s is not None:
                self._config = self._config.override(recording_interval_s=interval_s)
            start_ms = self._clock()
            if not name.strip():
                name = dt_from_epoch_ms(start_ms, self._config.tz_name).strftime("Session %Y-%m-%d %H:%M")
            session = Session(
                session_id=str(uuid.uuid4()),
                name=name.strip(),
                start_ms=start_ms,
                recording_interval_s=self._config.recording_interval_s,
                playback_duration_s=self._config.playback_duration_s,
            )
            self._store.create_session(session)
            self._attach(session)
            self._recoverable = None
            logger.info("started session %s (%s)", session.session_id, session.name)
            return session

    def _attach(self, session: Session) -> None:
        pts = session.sorted_samples()
        self._session = session
        self._last_accepted = pts[-1] if pts else None
        self._running = RunningDistance.from_samples(pts)
        self._unsaved = 0
        self._state = SessionState.RECORDING

    def pause(self) -> None:
        with self._lock:
            if self._state is not SessionState.RECORDING:
                raise InvalidTransitionError(f"cannot pause from {self._state.value}")
            self._state = SessionState.PAUSED

    def resume(self) -> None:
        with self._lock:
            if self._state is not SessionState.PAUSED:
                raise InvalidTransitionError(f"cannot resume from {self._state.value}")
            self._state = SessionState.RECORDING

    def handle_fix(self, fix: RawFix) -> bool:
        """Location-source callback. Returns True if the fix was appended."""

        with self._lock:
            if self._state is not SessionState.RECORDING or self._session is None:
                return False
            last = self._last_accepted
            if last is not None and fix.geo_time_ms < last.geo_time_ms:
                logger.debug("dropping out-of-order fix at %s", fix.geo_time_ms)
                return False
            if not self._config.filter.accept(fix, last):
                return False

            session = self._session
            sample = sample_from_fix(fix)
            session.samples.append(sample)
            self._store.append_sample(session.session_id, len(session.samples) - 1, sample)
            self._last_accepted = sample
            self._running.add(sample)
            self._unsaved += 1
            if self._unsaved >= SAVE_EVERY_N_SAMPLES:
                self._store.save_session(session)
                self._unsaved = 0
            return True

    def _detach_for_stop(self) -> Session:
        with self._lock:
            if not self.has_active_session or self._session is None:
                raise InvalidTransitionError(f"cannot stop from {self._state.value}")
            session = self._session
            session.end_ms = max(self._clock(), session.start_ms)
            session.is_active = False
            self._state = SessionState.STOPPED
            self._session = None
            self._last_accepted = None
            self._store.save_session(session)
            # the writer no longer sees this session: it is a stable snapshot now
            return session

    def _finalize(self, session: Session) -> Session:
        finalize_statistics(session)
        analyze_session(
            session,
            list(self._stations()),
            radius_m=self._config.proximity_radius_m,
            now_ms=self._clock(),
            force=True,
        )
        self._store.save_session(session)
        logger.info(
            "finalized session %s: %s samples, %.1f m, %s station passes",
            session.session_id,
            len(session.samples),
            session.total_distance_m or 0.0,
            len(session.events),
        )
        return session

    def stop(self) -> Session:
        """Stop recording and finalize synchronously."""

        return self._finalize(self._detach_for_stop())

    def stop_async(self) -> Future[Session]:
        """Stop recording and finalize on a background worker."""

        session = self._detach_for_stop()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="railtrack-finalize")
        return self._executor.submit(self._finalize, session)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # -- recovery -------------------------------------------------------

    def check_for_recoverable_session(self) -> RecoverableSession | None:
        """Look for a session left active by a crash and offer it for recovery."""

        if self.has_active_session:
            return None
        orphans = self._store.find_active_sessions()
        if not orphans:
            self._recoverable = None
            return None
        if len(orphans) > 1:
            logger.warning("%s sessions left active; offering the newest", len(orphans))
        session = orphans[0]
        self._recoverable = session
        pts = session.sorted_samples()
        return RecoverableSession(
            session_id=session.session_id,
            name=session.name,
            start_ms=session.start_ms,
            sample_count=len(pts),
            last_sample_ms=pts[-1].geo_time_ms if pts else None,
        )

    def _take_recoverable(self) -> Session:
        if self._recoverable is None:
            raise InvalidTransitionError("no recoverable session")
        session = self._recoverable
        self._recoverable = None
        return session

    def resume_recovered(self) -> Session:
        """Continue recording into the recovered session."""

        with self._lock:
            if self.has_active_session:
                raise SessionAlreadyActiveError("a session is already active")
            session = self._take_recoverable()
            self._config = self._config.override(recording_interval_s=session.recording_interval_s)
            self._store.save_session(session)
            self._attach(session)
            logger.info("resumed recovered session %s", session.session_id)
            return session

    def discard_recovered(self) -> Session:
        """End the recovered session at its last sample and finalize it."""

        with self._lock:
            session = self._take_recoverable()
            pts = session.sorted_samples()
            session.end_ms = max(pts[-1].geo_time_ms if pts else self._clock(), session.start_ms)
            session.is_active = False
        return self._finalize(session)

    def dismiss_recovery(self) -> None:
        """Forget the offer for now; the session stays active for the next check."""

        self._recoverable = None

    # -- settings and edits ---------------------------------------------

    def update_filter(self, threshold_m: float | None = None, min_distance_m: float | None = None) -> None:
        with self._lock:
            self._config = self._config.override(
                accuracy_threshold_m=threshold_m, min_distance_m=min_distance_m
            )

    def update_recording_interval(self, seconds: float) -> float:
        with self._lock:
            self._config = self._config.override(recording_interval_s=seconds)
            return self._config.recording_interval_s

    def _edit(self, session_id: str, apply: Callable[[Session], None]) -> Session:
        with self._lock:
            if self._session is not None and self._session.session_id == session_id:
                session = self._session
            else:
                session = self._store.get_session(session_id)
            apply(session)
            self._store.save_session(session)
            return session

    def rename_session(self, session_id: str, name: str) -> Session:
        def _apply(s: Session) -> None:
            s.name = name.strip() or s.name

        return self._edit(session_id, _apply)

    def set_session_interval(self, session_id: str, seconds: float) -> Session:
        def _apply(s: Session) -> None:
            s.recording_interval_s = clamp_interval(seconds)

        return self._edit(session_id, _apply)

    # -- notes ----------------------------------------------------------

    def take_note(self, text: str, station_id: str | None = None) -> SessionNote:
        """Note on the active session at the last accepted position, stamped now.

        Raises:
            InvalidTransitionError: If no session is active.
            ValueError: If nothing was recorded yet or ``text`` is empty.
        """

        with self._lock:
            if not self.has_active_session or self._session is None:
                raise InvalidTransitionError(f"cannot take a note while {self._state.value}")
            last = self._last_accepted
            if last is None:
                raise ValueError("no location recorded yet")
            note = add_note(
                self._session,
                text,
                geo_time_ms=max(self._clock(), last.geo_time_ms),
                coord=last.coord,
                station_id=station_id,
            )
            self._store.save_session(self._session)
            self._unsaved = 0
            return note

    def add_session_note(
        self,
        session_id: str,
        text: str,
        *,
        at_ms: int | None = None,
        event_id: str | None = None,
        station_id: str | None = None,
    ) -> SessionNote:
        """Add a note to any session, at a pass event or a time on its track.

        Without ``event_id`` or ``at_ms`` the note goes on the last sample.
        """

        added: list[SessionNote] = []

        def _apply(s: Session) -> None:
            if event_id is not None:
                added.append(add_note_for_event(s, event_id, text))
                return
            pts = s.sorted_samples()
            when = at_ms if at_ms is not None else (pts[-1].geo_time_ms if pts else s.start_ms)
            added.append(add_note_at(s, text, when, station_id=station_id))

        self._edit(session_id, _apply)
        return added[0]

    def edit_session_note(
        self,
        session_id: str,
        note_id: str,
        *,
        text: str | None = None,
        station_id: str | None = None,
        unlink_station: bool = False,
    ) -> SessionNote:
        edited: list[SessionNote] = []

        def _apply(s: Session) -> None:
            edited.append(edit_note(s, note_id, text=text, station_id=station_id, unlink_station=unlink_station))

        self._edit(session_id, _apply)
        return edited[0]

    def move_session_note(self, session_id: str, from_index: int, to_index: int) -> Session:
        return self._edit(session_id, lambda s: move_note(s, from_index, to_index))

    def delete_session_note(self, session_id: str, note_id: str) -> bool:
        removed: list[bool] = []
        self._edit(session_id, lambda s: removed.append(remove_note(s, note_id)))
        return removed[0]

    def delete_session(self, session_id: str) -> None:
        """Delete a session; deleting the active one returns the controller to idle."""

        with self._lock:
            if self._session is not None and self._session.session_id == session_id:
                self._session = None
                self._last_accepted = None
                self._running = RunningDistance()
                self._state = SessionState.IDLE
            if self._recoverable is not None and self._recoverable.session_id == session_id:
                self._recoverable = None
            self._store.delete_session(session_id)
