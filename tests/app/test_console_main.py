"""Tests for the console monitor formatting in app.main."""

from __future__ import annotations

import sys

import pytest

import app.main as app_main
from app.main import _parse_channel, format_event, format_state
from core.midi import InputUnavailableError, MidiMonitor, decode_message


class DummyListener:
    pass


class _UnavailableListener:
    def list_input_devices(self):
        raise InputUnavailableError("MIDI input unavailable: no backend")


def _forbidden_listener():
    raise AssertionError("input must not be opened")


def test_format_event_note() -> None:
    line = format_event(decode_message([0x90, 60, 100], "Keys", timestamp=0))

    assert "Ch1 Note On Note:60 Vel:100" in line
    assert line.endswith("| Raw: [144, 60, 100] | Port: Keys")
    assert "CC:" not in line


def test_format_event_unknown_has_no_fields() -> None:
    line = format_event(decode_message([0xA5, 10, 20], "Keys", timestamp=0))

    assert "Ch6 Unknown (0xa0) |" in line
    assert "Value:" not in line


def test_format_state() -> None:
    monitor = MidiMonitor(DummyListener())
    monitor.handle_raw([0xB0, 7, 64], "Keys", timestamp=1)
    monitor.handle_raw([0x90, 60, 100], "Keys", timestamp=2)

    assert format_state(monitor) == ["Control Change: Ch1 CC7=64", "Notes: Ch1 Note60*"]


def test_parse_channel() -> None:
    assert _parse_channel(["prog", "--channel", "2"]) == 2
    assert _parse_channel(["prog"]) is None


@pytest.mark.parametrize("value", ["17", "0", "two"])
def test_parse_channel_rejects_out_of_range(value: str) -> None:
    with pytest.raises(ValueError, match="1..16"):
        _parse_channel(["prog", f"--channel={value}"])


def test_main_reports_bad_channel_without_opening_input(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["prog", "--channel", "17"])
    monkeypatch.setattr(app_main, "MidiListener", _forbidden_listener)

    app_main.main()

    assert "channel must be in 1..16" in capsys.readouterr().out


def test_main_prints_unavailable_input_once(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["prog"])
    monkeypatch.setattr(app_main, "MidiListener", _UnavailableListener)

    app_main.main()

    out = capsys.readouterr().out
    assert out.count("MIDI input unavailable") == 1
