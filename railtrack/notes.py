"""Geotagged notes on a session: create, edit, reorder, delete."""

from __future__ import annotations

import uuid
from bisect import bisect_right
from dataclasses import replace
from typing import Sequence

from railtrack.geo import interpolate_at
from railtrack.models import Coord, GeoSample, Session, SessionNote


class NoteNotFoundError(KeyError):
    """No note with the given id exists on the session."""


def _clean_text(text: str) -> str:
    cleaned = text.strip()
    if not cleaned:
        raise ValueError("note text is empty")
    return cleaned


def coord_at(samples: Sequence[GeoSample], at_ms: float) -> Coord | None:
    """Position on the track at ``at_ms``, clamped to the first/last sample.

    Args:
        samples: Timestamp-sorted samples.
        at_ms: Epoch milliseconds.
    """

    if not samples:
        return None
    if at_ms <= samples[0].geo_time_ms:
        return samples[0].coord
    if at_ms >= samples[-1].geo_time_ms:
        return samples[-1].coord
    times = [s.geo_time_ms for s in samples]
    i = bisect_right(times, at_ms) - 1
    a, b = samples[i], samples[i + 1]
    return interpolate_at(a.geo_time_ms, a.coord, b.geo_time_ms, b.coord, at_ms)


def add_note(
    session: Session,
    text: str,
    *,
    geo_time_ms: int,
    coord: Coord,
    station_id: str | None = None,
    event_id: str | None = None,
    note_id: str | None = None,
) -> SessionNote:
    """Append a note at the end of the display order.

    Raises:
        ValueError: If ``text`` is empty or only whitespace.
    """

    note = SessionNote(
        note_id=note_id or str(uuid.uuid4()),
        session_id=session.session_id,
        geo_time_ms=geo_time_ms,
        latitude=coord[0],
        longitude=coord[1],
        text=_clean_text(text),
        station_id=station_id,
        event_id=event_id,
        display_order=len(session.notes),
    )
    session.notes.append(note)
    return note


def add_note_at(session: Session, text: str, at_ms: int, station_id: str | None = None) -> SessionNote:
    """Note placed on the recorded track at ``at_ms``.

    Raises:
        ValueError: If the session has no samples or ``text`` is empty.
    """

    coord = coord_at(session.sorted_samples(), at_ms)
    if coord is None:
        raise ValueError("session has no location data")
    return add_note(session, text, geo_time_ms=at_ms, coord=coord, station_id=station_id)


def add_note_for_event(session: Session, event_id: str, text: str) -> SessionNote:
    """Note linked to a station pass, placed at its closest-approach sample.

    Raises:
        KeyError: If the session has no event ``event_id``.
    """

    event = next((e for e in session.events if e.event_id == event_id), None)
    if event is None:
        raise KeyError(f"no pass event {event_id}")
    coord = coord_at(session.sorted_samples(), event.geo_time_ms)
    if coord is None:
        raise ValueError("session has no location data")
    return add_note(
        session,
        text,
        geo_time_ms=event.geo_time_ms,
        coord=coord,
        station_id=event.station_id,
        event_id=event.event_id,
    )


def _index_of(session: Session, note_id: str) -> int:
    for i, n in enumerate(session.notes):
        if n.note_id == note_id:
            return i
    raise NoteNotFoundError(note_id)


def edit_note(
    session: Session,
    note_id: str,
    *,
    text: str | None = None,
    station_id: str | None = None,
    unlink_station: bool = False,
) -> SessionNote:
    """Change the text and/or the linked station of one note.

    Raises:
        NoteNotFoundError: If the note does not exist.
        ValueError: If the new text is empty.
    """

    i = _index_of(session, note_id)
    note = session.notes[i]
    if text is not None:
        note = replace(note, text=_clean_text(text))
    if unlink_station:
        note = replace(note, station_id=None, event_id=None)
    elif station_id is not None:
        note = replace(note, station_id=station_id)
    session.notes[i] = note
    return note


def _renumber(notes: Sequence[SessionNote]) -> list[SessionNote]:
    return [replace(n, display_order=i) for i, n in enumerate(notes)]


def move_note(session: Session, from_index: int, to_index: int) -> None:
    """Move one note in display order.

    Raises:
        IndexError: If ``from_index`` is out of range.
    """

    ordered = session.sorted_notes()
    if not 0 <= from_index < len(ordered):
        raise IndexError(f"note index out of range: {from_index}")
    note = ordered.pop(from_index)
    ordered.insert(max(0, min(len(ordered), to_index)), note)
    session.notes = _renumber(ordered)


def remove_note(session: Session, note_id: str) -> bool:
    kept = [n for n in session.sorted_notes() if n.note_id != note_id]
    if len(kept) == len(session.notes):
        return False
    session.notes = _renumber(kept)
    return True


def notes_timeline(notes: Sequence[SessionNote]) -> list[SessionNote]:
    """Notes in the order they were taken (display order breaks ties)."""

    return sorted(notes, key=lambda n: (n.geo_time_ms, n.display_order))


def notes_until(notes: Sequence[SessionNote], at_ms: float) -> list[SessionNote]:
    """Notes taken at or before ``at_ms``, for playback markers."""

    return [n for n in notes_timeline(notes) if n.geo_time_ms <= at_ms]
