from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .events import CONTROL_CHANGE, NOTE_TYPES, MidiMessageEvent

RECENT_OTHER_LIMIT = 5


@dataclass(frozen=True)
class EventFilter:
    """Channel / type-label predicate; `None` matches everything."""

    channel: Optional[int] = None
    type: Optional[str] = None

    def __post_init__(self):
        if self.channel is not None and not 1 <= self.channel <= 16:
            raise ValueError(f"channel must be in 1..16: {self.channel!r}")

    def __call__(self, event: MidiMessageEvent) -> bool:
        if self.channel is not None and event.channel != self.channel:
            return False
        if self.type and event.type != self.type:
            return False
        return True

    def apply(self, snapshot: Iterable[MidiMessageEvent]) -> list[MidiMessageEvent]:
        return [event for event in snapshot if self(event)]


def message_types(snapshot: Iterable[MidiMessageEvent]) -> list[str]:
    return list(dict.fromkeys(event.type for event in snapshot))


def recent_other_events(
    snapshot: Iterable[MidiMessageEvent], limit: int = RECENT_OTHER_LIMIT
) -> list[MidiMessageEvent]:
    out: list[MidiMessageEvent] = []
    for event in snapshot:
        if len(out) >= limit:
            break
        if event.type == CONTROL_CHANGE or event.type in NOTE_TYPES:
            continue
        out.append(event)
    return out
