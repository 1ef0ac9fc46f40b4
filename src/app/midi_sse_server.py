from __future__ import annotations

import json
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import logging
from pathlib import Path
import queue
import sys
import threading
import time
from typing import Any
from urllib.parse import parse_qs, urlsplit

_src_dir = Path(__file__).resolve().parents[1]
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

from core.midi import (
    DEFAULT_PORT_KEYWORDS,
    MidiMessageEvent,
    MidiMonitor,
    aggregate,
    export_filename,
    message_types,
    recent_other_events,
)

logger = logging.getLogger(__name__)


def _parse_int(argv: list[str], name: str, default: int) -> int:
    for i, arg in enumerate(argv):
        if arg.startswith(f"{name}="):
            value = arg.split("=", 1)[1].strip()
            try:
                return int(value)
            except ValueError:
                return default
        if arg == name and i + 1 < len(argv):
            try:
                return int(argv[i + 1])
            except ValueError:
                return default
    return default


def _parse_str(argv: list[str], name: str) -> str | None:
    for i, arg in enumerate(argv):
        if arg.startswith(f"{name}="):
            return arg.split("=", 1)[1].strip() or None
        if arg == name and i + 1 < len(argv):
            return argv[i + 1].strip() or None
    return None


def _has_flag(argv: list[str], name: str) -> bool:
    return name in argv


def _json_line(obj: Any) -> bytes:
    return (json.dumps(obj, ensure_ascii=False) + "\n").encode("utf-8")


class MidiEventHub:
    def __init__(self, monitor: MidiMonitor):
        self.monitor = monitor
        self._lock = threading.Lock()
        self._clients: set[queue.Queue[dict[str, Any]]] = set()
        monitor.add_listener(self.on_midi_event)

    def add_client(self) -> queue.Queue[dict[str, Any]]:
        q: queue.Queue[dict[str, Any]] = queue.Queue(maxsize=2048)
        with self._lock:
            self._clients.add(q)
        return q

    def remove_client(self, q: queue.Queue[dict[str, Any]]):
        with self._lock:
            self._clients.discard(q)

    def publish(self, msg: dict[str, Any]):
        with self._lock:
            clients = list(self._clients)
        for q in clients:
            try:
                q.put_nowait(msg)
            except queue.Full:
                continue

    def on_midi_event(self, event: MidiMessageEvent | None):
        if event is None:
            self.publish({"type": "status", "level": "info", "message": "reset"})
            return
        self.publish(event.to_record())

    def state_record(self) -> dict[str, Any]:
        snapshot = self.monitor.snapshot()
        record = aggregate(snapshot).display().to_record()
        record["types"] = message_types(snapshot)
        record["others"] = [e.to_record() for e in recent_other_events(snapshot)]
        record["count"] = len(snapshot)
        record["port"] = self.monitor.port
        record["advisory"] = self.monitor.advisory
        return record


class Handler(BaseHTTPRequestHandler):
    server: "MidiSseServer"

    def log_message(self, format: str, *args):
        return

    def _send_json(self, status: int, payload: Any, extra_headers: dict[str, str] | None = None):
        body = _json_line(payload)
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        for k, v in (extra_headers or {}).items():
            self.send_header(k, v)
        self.end_headers()
        self.wfile.write(body)

    def _send_not_found(self):
        self.send_response(404)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(b"Not Found")

    def do_OPTIONS(self):
        self.send_response(204)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()

    def do_POST(self):
        hub = self.server.hub
        if urlsplit(self.path).path == "/reset":
            hub.monitor.reset()
            self._send_json(200, {"ok": True})
            return
        self._send_not_found()

    def do_GET(self):
        hub = self.server.hub
        url = urlsplit(self.path)
        if url.path == "/health":
            self._send_json(200, {"ok": True, "advisory": hub.monitor.advisory})
            return
        if url.path == "/state":
            self._send_json(200, hub.state_record())
            return
        if url.path == "/history":
            self._send_history(hub, parse_qs(url.query))
            return
        if url.path == "/export":
            filename = export_filename()
            records = [e.to_record() for e in hub.monitor.snapshot()]
            self._send_json(
                200, records, {"Content-Disposition": f'attachment; filename="{filename}"'}
            )
            return
        if url.path == "/events":
            self._stream_events(hub)
            return
        self._send_not_found()

    def _send_history(self, hub: MidiEventHub, query: dict[str, list[str]]):
        channel = None
        raw_channel = (query.get("channel") or [""])[0]
        if raw_channel:
            try:
                channel = int(raw_channel)
            except ValueError:
                self._send_json(400, {"error": f"invalid channel: {raw_channel}"})
                return
        type_label = (query.get("type") or [""])[0] or None
        try:
            events = hub.monitor.filtered(channel=channel, type=type_label)
        except ValueError as e:
            self._send_json(400, {"error": str(e)})
            return
        self._send_json(200, [e.to_record() for e in events])

    def _stream_events(self, hub: MidiEventHub):
        q = hub.add_client()
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream; charset=utf-8")
            self.send_header("Cache-Control", "no-cache")
            self.send_header("Connection", "keep-alive")
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            self.wfile.write(b": connected\n\n")
            self.wfile.flush()

            while True:
                try:
                    msg = q.get(timeout=15.0)
                    payload = json.dumps(msg, ensure_ascii=False).encode("utf-8")
                    self.wfile.write(b"data: " + payload + b"\n\n")
                    self.wfile.flush()
                except queue.Empty:
                    try:
                        self.wfile.write(b": ping\n\n")
                        self.wfile.flush()
                    except (BrokenPipeError, ConnectionResetError, ConnectionAbortedError):
                        break
        except (BrokenPipeError, ConnectionResetError, ConnectionAbortedError):
            pass
        finally:
            hub.remove_client(q)


class MidiSseServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], hub: MidiEventHub):
        super().__init__(address, Handler)
        self.hub = hub


def connect_with_retry(
    hub: MidiEventHub, device: str | None, keywords, interval_s: float = 1.0, stop: threading.Event | None = None
) -> bool:
    last_advisory = None
    while stop is None or not stop.is_set():
        ok = hub.monitor.select_port(device) if device else hub.monitor.connect_first(keywords)
        if ok:
            hub.publish({"type": "status", "level": "info", "message": f"listening on {hub.monitor.port}"})
            return True
        advisory = hub.monitor.advisory
        if advisory != last_advisory:
            hub.publish({"type": "status", "level": "error", "message": advisory})
            print(f"MIDI input unavailable, retrying every {interval_s:g}s: {advisory}")
            last_advisory = advisory
        time.sleep(interval_s)
    return False


def main():
    logging.basicConfig(
        level=logging.DEBUG if _has_flag(sys.argv, "--verbose") else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    port = _parse_int(sys.argv, "--port", 8766)
    device = _parse_str(sys.argv, "--device")
    capacity = _parse_int(sys.argv, "--capacity", 1000)

    monitor = MidiMonitor(capacity=capacity)
    hub = MidiEventHub(monitor)
    server = MidiSseServer(("0.0.0.0", port), hub)
    print(f"SSE server listening: http://localhost:{port}/events")
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()

    try:
        connect_with_retry(hub, device, DEFAULT_PORT_KEYWORDS)
        print(f"Device: {monitor.port}")
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        monitor.close()
        server.shutdown()
        server.server_close()


if __name__ == "__main__":
    main()
