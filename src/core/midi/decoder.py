"""Raw MIDI byte messages to `MidiMessageEvent`.

Decoding is total: any byte sequence yields an event. Status bytes whose
opcode is not handled become `Unknown (0x..)` events carrying the raw bytes.
Missing data bytes read as 0, but `data` always holds exactly what arrived.
"""

from __future__ import annotations

import time
from typing import Iterable

from .events import (
    CONTROL_CHANGE,
    NOTE_OFF,
    NOTE_ON,
    PITCH_BEND,
    PROGRAM_CHANGE,
    MidiMessageEvent,
    unknown_type,
)


def now_ms() -> int:
    return int(time.time() * 1000)


def decode_message(
    message: Iterable[int], port: str, timestamp: int | None = None
) -> MidiMessageEvent:
    data = tuple(int(b) for b in message)
    if timestamp is None:
        timestamp = now_ms()

    status = data[0] if data else 0
    data1 = data[1] if len(data) > 1 else 0
    data2 = data[2] if len(data) > 2 else 0

    channel = (status & 0x0F) + 1
    opcode = status & 0xF0
    fields: dict[str, int] = {}

    if opcode == 0x90:
        event_type = NOTE_ON if data2 > 0 else NOTE_OFF
        fields = {"note": data1, "velocity": data2}
    elif opcode == 0x80:
        event_type = NOTE_OFF
        fields = {"note": data1, "velocity": data2}
    elif opcode == 0xB0:
        event_type = CONTROL_CHANGE
        fields = {"controller": data1, "value": data2}
    elif opcode == 0xC0:
        event_type = PROGRAM_CHANGE
        fields = {"value": data1}
    elif opcode == 0xE0:
        event_type = PITCH_BEND
        fields = {"value": (data2 << 7) | data1}
    else:
        event_type = unknown_type(opcode)

    return MidiMessageEvent(
        timestamp=int(timestamp),
        channel=channel,
        type=event_type,
        data=data,
        port=str(port),
        **fields,
    )


def decode_mido_message(msg, port: str, timestamp: int | None = None) -> MidiMessageEvent:
    """Decode a `mido.Message` through its raw bytes."""

    return decode_message(msg.bytes(), port, timestamp)
