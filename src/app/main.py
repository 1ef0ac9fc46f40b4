from datetime import datetime
import logging
from pathlib import Path
import sys
import time

_src_dir = Path(__file__).resolve().parents[1]
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

from core.midi import (
    DEFAULT_PORT_KEYWORDS,
    EventFilter,
    InputUnavailableError,
    MidiListener,
    MidiMessageEvent,
    MidiMonitor,
)


def _parse_str(argv: list[str], name: str) -> str | None:
    for i, arg in enumerate(argv):
        if arg.startswith(f"{name}="):
            return arg.split("=", 1)[1].strip() or None
        if arg == name and i + 1 < len(argv):
            return argv[i + 1].strip() or None
    return None


def _parse_channel(argv: list[str]) -> int | None:
    value = _parse_str(argv, "--channel")
    if value is None:
        return None
    try:
        channel = int(value)
    except ValueError:
        raise ValueError(f"channel must be in 1..16: {value!r}") from None
    if not 1 <= channel <= 16:
        raise ValueError(f"channel must be in 1..16: {channel!r}")
    return channel


def _has_flag(argv: list[str], name: str) -> bool:
    return name in argv


def format_event(event: MidiMessageEvent) -> str:
    t = datetime.fromtimestamp(event.timestamp / 1000).isoformat(timespec="milliseconds")
    line = f"{t} Ch{event.channel} {event.type}"
    if event.note is not None:
        line += f" Note:{event.note}"
    if event.velocity is not None:
        line += f" Vel:{event.velocity}"
    if event.controller is not None:
        line += f" CC:{event.controller}"
    if event.value is not None:
        line += f" Value:{event.value}"
    raw = ", ".join(str(b) for b in event.data)
    return f"{line} | Raw: [{raw}] | Port: {event.port}"


def format_state(monitor: MidiMonitor) -> list[str]:
    state = monitor.state().display()
    lines = []
    if state.cc:
        lines.append("Control Change: " + "  ".join(
            f"Ch{ch} CC{ctrl}={value}" for (ch, ctrl), value in state.cc.items()
        ))
    if state.notes:
        lines.append("Notes: " + "  ".join(
            f"Ch{ch} Note{note}{'*' if active else ''}" for (ch, note), active in state.notes.items()
        ))
    return lines


def main():
    logging.basicConfig(
        level=logging.DEBUG if _has_flag(sys.argv, "--verbose") else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        event_filter = EventFilter(channel=_parse_channel(sys.argv), type=_parse_str(sys.argv, "--type"))
    except ValueError as e:
        print(e)
        return
    listener = MidiListener()
    monitor = MidiMonitor(listener)
    try:
        devices = list(listener.list_input_devices())
    except InputUnavailableError as e:
        print(e)
        return
    if not devices:
        print("No MIDI input devices found")
        return
    print("Available MIDI inputs:")
    for d in devices:
        print(f"- {d.name}")
    if _has_flag(sys.argv, "--list"):
        return

    device = _parse_str(sys.argv, "--port")
    connected = monitor.select_port(device) if device else monitor.connect_first(DEFAULT_PORT_KEYWORDS)
    if not connected:
        print(monitor.advisory)
        return
    export_dir = _parse_str(sys.argv, "--export-dir")

    def show(event: MidiMessageEvent | None):
        if event is not None and event_filter(event):
            print(format_event(event))

    monitor.add_listener(show)
    print(f"Listening on {monitor.port} (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(0.1)
    except KeyboardInterrupt:
        pass
    finally:
        monitor.close()
        for line in format_state(monitor):
            print(line)
        if export_dir:
            path = monitor.export(export_dir)
            print(f"Exported {len(monitor.snapshot())} events: {path}")


if __name__ == "__main__":
    main()
