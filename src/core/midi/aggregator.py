"""Latest-state projections over the history.

"Latest" is the event nearest to the head of the newest-first history, never
the one with the largest timestamp: several events can share a millisecond.
Keys are ordered by first encounter when scanning newest-first, so the most
recently touched key comes first.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .events import CONTROL_CHANGE, MidiMessageEvent

DISPLAY_CC_LIMIT = 12
DISPLAY_NOTE_LIMIT = 24

CcKey = tuple[int, int]
NoteKey = tuple[int, int]


@dataclass(frozen=True, eq=False)
class MidiState:
    cc: dict[CcKey, int] = field(default_factory=dict)
    notes: dict[NoteKey, bool] = field(default_factory=dict)

    def __eq__(self, other) -> bool:
        if not isinstance(other, MidiState):
            return NotImplemented
        return list(self.cc.items()) == list(other.cc.items()) and list(
            self.notes.items()
        ) == list(other.notes.items())

    def display(
        self, cc_limit: int = DISPLAY_CC_LIMIT, note_limit: int = DISPLAY_NOTE_LIMIT
    ) -> "MidiState":
        return MidiState(
            cc=dict(list(self.cc.items())[:cc_limit]),
            notes=dict(list(self.notes.items())[:note_limit]),
        )

    @property
    def active_notes(self) -> list[NoteKey]:
        return [key for key, active in self.notes.items() if active]

    def to_record(self) -> dict:
        return {
            "cc": [
                {"channel": ch, "controller": ctrl, "value": value}
                for (ch, ctrl), value in self.cc.items()
            ],
            "notes": [
                {"channel": ch, "note": note, "active": active}
                for (ch, note), active in self.notes.items()
            ],
        }


def _cc_key(event: MidiMessageEvent) -> Optional[CcKey]:
    if event.type == CONTROL_CHANGE:
        return (event.channel, event.controller)
    return None


def _note_key(event: MidiMessageEvent) -> Optional[NoteKey]:
    if event.is_note:
        return (event.channel, event.note)
    return None


def aggregate(snapshot: Iterable[MidiMessageEvent]) -> MidiState:
    """Recompute both projections from a newest-first snapshot."""

    cc: dict[CcKey, int] = {}
    notes: dict[NoteKey, bool] = {}
    for event in snapshot:
        key = _cc_key(event)
        if key is not None and key not in cc:
            cc[key] = event.value
            continue
        key = _note_key(event)
        if key is not None and key not in notes:
            notes[key] = event.is_active_note
    return MidiState(cc=cc, notes=notes)


class IncrementalAggregator:
    """Keeps the projections up to date one append at a time.

    The evicted event is always the oldest one in the history, so it can only
    be the latest for its key when it is the last event left for that key.
    Reference counts per key tell when a key disappears.
    """

    def __init__(self):
        self._cc: OrderedDict[CcKey, int] = OrderedDict()
        self._notes: OrderedDict[NoteKey, bool] = OrderedDict()
        self._cc_counts: dict[CcKey, int] = {}
        self._note_counts: dict[NoteKey, int] = {}

    def reset(self):
        self._cc.clear()
        self._notes.clear()
        self._cc_counts.clear()
        self._note_counts.clear()

    def rebuild(self, snapshot: Iterable[MidiMessageEvent]):
        self.reset()
        for event in reversed(tuple(snapshot)):
            self.push(event)

    def push(self, event: MidiMessageEvent, evicted: Optional[MidiMessageEvent] = None):
        if evicted is not None:
            self._forget(evicted)

        key = _cc_key(event)
        if key is not None:
            self._cc[key] = event.value
            self._cc.move_to_end(key, last=False)
            self._cc_counts[key] = self._cc_counts.get(key, 0) + 1
            return

        key = _note_key(event)
        if key is not None:
            self._notes[key] = event.is_active_note
            self._notes.move_to_end(key, last=False)
            self._note_counts[key] = self._note_counts.get(key, 0) + 1

    def _forget(self, event: MidiMessageEvent):
        key = _cc_key(event)
        if key is not None:
            _release(key, self._cc_counts, self._cc)
            return
        key = _note_key(event)
        if key is not None:
            _release(key, self._note_counts, self._notes)

    def state(self) -> MidiState:
        return MidiState(cc=dict(self._cc), notes=dict(self._notes))


def _release(key, counts: dict, projection: OrderedDict):
    remaining = counts.get(key, 0) - 1
    if remaining > 0:
        counts[key] = remaining
        return
    counts.pop(key, None)
    projection.pop(key, None)
