"""Tests for app.midi_sse_server against a live server on an ephemeral port."""

from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request

import pytest

from app.midi_sse_server import MidiEventHub, MidiSseServer, _parse_int, _parse_str, connect_with_retry
from core.midi import InputUnavailableError, MidiMonitor


class DummyListener:
    def __init__(self, names: list[str]) -> None:
        self.names = names

    def find_first_matching(self, keywords):
        if not self.names:
            raise InputUnavailableError("MIDI input unavailable: no backend")
        return None

    def subscribe(self, name, callback):
        raise InputUnavailableError(f"cannot open MIDI input {name!r}")


@pytest.fixture()
def served():
    monitor = MidiMonitor(DummyListener([]))
    hub = MidiEventHub(monitor)
    server = MidiSseServer(("127.0.0.1", 0), hub)
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    base = f"http://127.0.0.1:{server.server_address[1]}"
    try:
        yield hub, base
    finally:
        server.shutdown()
        server.server_close()


def _get(url: str):
    with urllib.request.urlopen(url, timeout=5) as resp:
        return resp.status, dict(resp.headers), json.loads(resp.read().decode("utf-8"))


def test_health(served) -> None:
    _, base = served

    status, headers, body = _get(base + "/health")

    assert status == 200
    assert body == {"ok": True, "advisory": None}
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_history_filters(served) -> None:
    hub, base = served
    hub.monitor.handle_raw([0x90, 60, 100], "Keys", timestamp=1)
    hub.monitor.handle_raw([0xB1, 7, 64], "Keys", timestamp=2)

    _, _, everything = _get(base + "/history")
    _, _, channel2 = _get(base + "/history?channel=2")
    _, _, notes = _get(base + "/history?type=Note%20On")

    assert [r["type"] for r in everything] == ["Control Change", "Note On"]
    assert [r["channel"] for r in channel2] == [2]
    assert notes == [
        {"timestamp": 1, "channel": 1, "type": "Note On", "data": [0x90, 60, 100], "note": 60, "velocity": 100, "port": "Keys"}
    ]


def test_history_rejects_bad_channel(served) -> None:
    _, base = served

    with pytest.raises(urllib.error.HTTPError) as info:
        _get(base + "/history?channel=99")

    assert info.value.code == 400


def test_state(served) -> None:
    hub, base = served
    hub.monitor.handle_raw([0xB0, 7, 64], "Keys", timestamp=1)
    hub.monitor.handle_raw([0x90, 60, 100], "Keys", timestamp=2)
    hub.monitor.handle_raw([0xC0, 5], "Keys", timestamp=3)

    _, _, state = _get(base + "/state")

    assert state["cc"] == [{"channel": 1, "controller": 7, "value": 64}]
    assert state["notes"] == [{"channel": 1, "note": 60, "active": True}]
    assert state["types"] == ["Program Change", "Note On", "Control Change"]
    assert [r["type"] for r in state["others"]] == ["Program Change"]
    assert state["count"] == 3
    assert state["port"] is None


def test_export_sets_filename(served) -> None:
    hub, base = served
    hub.monitor.handle_raw([0x90, 60, 100], "Keys", timestamp=1)

    _, headers, body = _get(base + "/export")

    assert 'filename="midi-log-' in headers["Content-Disposition"]
    assert body[0]["note"] == 60


def test_reset(served) -> None:
    hub, base = served
    hub.monitor.handle_raw([0x90, 60, 100], "Keys", timestamp=1)

    req = urllib.request.Request(base + "/reset", method="POST", data=b"")
    with urllib.request.urlopen(req, timeout=5) as resp:
        assert resp.status == 200

    assert hub.monitor.snapshot() == ()


def test_unknown_path(served) -> None:
    _, base = served

    with pytest.raises(urllib.error.HTTPError) as info:
        _get(base + "/nope")

    assert info.value.code == 404


def test_event_stream(served) -> None:
    hub, base = served

    with urllib.request.urlopen(base + "/events", timeout=5) as resp:
        assert resp.headers["Content-Type"].startswith("text/event-stream")
        assert resp.readline() == b": connected\n"
        assert resp.readline() == b"\n"
        hub.monitor.handle_raw([0xB0, 7, 64], "Keys", timestamp=1)
        line = resp.readline()

    assert line.startswith(b"data: ")
    assert json.loads(line[len(b"data: "):]) == {
        "timestamp": 1,
        "channel": 1,
        "type": "Control Change",
        "data": [0xB0, 7, 64],
        "controller": 7,
        "value": 64,
        "port": "Keys",
    }


def test_hub_publishes_reset_status() -> None:
    hub = MidiEventHub(MidiMonitor(DummyListener([])))
    q = hub.add_client()

    hub.monitor.reset()

    assert q.get_nowait() == {"type": "status", "level": "info", "message": "reset"}
    hub.remove_client(q)


def test_connect_with_retry_stops_and_reports_advisory() -> None:
    hub = MidiEventHub(MidiMonitor(DummyListener([])))
    q = hub.add_client()
    stop = threading.Event()
    stop.set()

    assert connect_with_retry(hub, None, ["MIDI"], stop=stop) is False

    stop.clear()
    t = threading.Thread(target=connect_with_retry, args=(hub, "A", ["MIDI"]), kwargs={"interval_s": 0.01, "stop": stop})
    t.start()
    msg = q.get(timeout=5)
    stop.set()
    t.join(timeout=5)

    assert msg["level"] == "error"
    assert "A" in msg["message"]
    assert hub.monitor.advisory == msg["message"]


def test_argv_helpers() -> None:
    argv = ["prog", "--port=9000", "--device", "Keys"]

    assert _parse_int(argv, "--port", 8766) == 9000
    assert _parse_int(["prog", "--port", "x"], "--port", 8766) == 8766
    assert _parse_str(argv, "--device") == "Keys"
    assert _parse_str(argv, "--missing") is None


def test_state_record_reads_one_snapshot(monkeypatch: pytest.MonkeyPatch) -> None:
    monitor = MidiMonitor(DummyListener([]))
    monitor.handle_raw([0xB0, 7, 64], "Keys", timestamp=1)
    hub = MidiEventHub(monitor)
    calls = []
    real_snapshot = monitor.snapshot

    def counting_snapshot():
        calls.append(1)
        return real_snapshot()

    def forbidden_state():
        raise AssertionError("state must come from the snapshot")

    monkeypatch.setattr(monitor, "snapshot", counting_snapshot)
    monkeypatch.setattr(monitor, "state", forbidden_state)

    record = hub.state_record()

    assert len(calls) == 1
    assert record["count"] == 1
    assert record["cc"] == [{"channel": 1, "controller": 7, "value": 64}]
