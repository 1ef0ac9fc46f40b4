from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

NOTE_ON = "Note On"
NOTE_OFF = "Note Off"
CONTROL_CHANGE = "Control Change"
PROGRAM_CHANGE = "Program Change"
PITCH_BEND = "Pitch Bend"

NOTE_TYPES = {NOTE_ON, NOTE_OFF}

RECORD_FIELDS = (
    "timestamp",
    "channel",
    "type",
    "data",
    "note",
    "velocity",
    "controller",
    "value",
    "port",
)

_OPTIONAL_FIELDS = ("note", "velocity", "controller", "value")


def unknown_type(opcode: int) -> str:
    return f"Unknown (0x{opcode:x})"


@dataclass(frozen=True)
class MidiMessageEvent:
    timestamp: int
    channel: int
    type: str
    data: tuple[int, ...]
    port: str
    note: Optional[int] = None
    velocity: Optional[int] = None
    controller: Optional[int] = None
    value: Optional[int] = None

    @property
    def is_note(self) -> bool:
        return self.type in NOTE_TYPES

    @property
    def is_active_note(self) -> bool:
        return self.type == NOTE_ON and (self.velocity or 0) > 0

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "timestamp": self.timestamp,
            "channel": self.channel,
            "type": self.type,
            "data": list(self.data),
            "note": self.note,
            "velocity": self.velocity,
            "controller": self.controller,
            "value": self.value,
            "port": self.port,
        }
        return {k: v for k, v in record.items() if not (k in _OPTIONAL_FIELDS and v is None)}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "MidiMessageEvent":
        try:
            return cls(
                timestamp=int(record["timestamp"]),
                channel=int(record["channel"]),
                type=str(record["type"]),
                data=tuple(int(b) for b in record["data"]),
                port=str(record.get("port", "")),
                **{k: int(record[k]) for k in _OPTIONAL_FIELDS if record.get(k) is not None},
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"invalid MIDI event record: {record!r}") from exc
