"""Live MIDI monitor: decode, bounded history, latest state, filter, export.

`MidiMonitor` owns the history and the single active port subscription.
Incoming messages are processed one at a time under a lock; readers take the
same lock, so they never see a half-applied append.
"""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
import threading
from typing import Callable, Iterable, Optional

from .aggregator import IncrementalAggregator, MidiState
from .decoder import decode_message
from .events import MidiMessageEvent
from .exporter import export_json, write_export
from .filters import EventFilter, message_types, recent_other_events
from .history import HISTORY_CAPACITY, MidiHistory
from .listener import DEFAULT_PORT_KEYWORDS, InputUnavailableError, MidiListener, PortSubscription

logger = logging.getLogger(__name__)

MonitorListener = Callable[[Optional[MidiMessageEvent]], None]


class MidiMonitor:
    def __init__(self, listener: MidiListener | None = None, capacity: int = HISTORY_CAPACITY):
        self._listener = listener if listener is not None else MidiListener()
        self._lock = threading.Lock()
        self._port_lock = threading.Lock()
        self._history = MidiHistory(capacity)
        self._aggregator = IncrementalAggregator()
        self._subscription: PortSubscription | None = None
        self._listeners: list[MonitorListener] = []
        self.advisory: str | None = None

    @property
    def port(self) -> str | None:
        if self._subscription is None:
            return None
        return self._subscription.name

    def handle_raw(
        self, message: Iterable[int], port: str, timestamp: int | None = None
    ) -> MidiMessageEvent:
        event = decode_message(message, port, timestamp)
        with self._lock:
            evicted = self._history.append(event)
            self._aggregator.push(event, evicted)
        self._notify(event)
        return event

    def reset(self):
        with self._lock:
            self._history.clear()
            self._aggregator.rebuild(self._history.snapshot())
        self._notify(None)

    def snapshot(self) -> tuple[MidiMessageEvent, ...]:
        with self._lock:
            return self._history.snapshot()

    def state(self) -> MidiState:
        with self._lock:
            return self._aggregator.state()

    def filtered(self, channel: int | None = None, type: str | None = None) -> list[MidiMessageEvent]:
        return EventFilter(channel=channel, type=type).apply(self.snapshot())

    def message_types(self) -> list[str]:
        return message_types(self.snapshot())

    def recent_other_events(self) -> list[MidiMessageEvent]:
        return recent_other_events(self.snapshot())

    def export_json(self) -> str:
        return export_json(self.snapshot())

    def export(self, directory: Path | str, moment: datetime | None = None) -> Path:
        return write_export(self.snapshot(), directory, moment)

    def select_port(self, name: str | None) -> bool:
        """Detach the active port, then attach `name` (None only detaches)."""

        with self._port_lock:
            self._detach()
            if name is None:
                return False
            try:
                self._subscription = self._listener.subscribe(name, self.handle_raw)
            except InputUnavailableError as e:
                self._advise(str(e))
                return False
            self.advisory = None
            logger.info("listening on %s", name)
            return True

    def connect_first(self, keywords: Iterable[str] = DEFAULT_PORT_KEYWORDS) -> bool:
        try:
            device = self._listener.find_first_matching(keywords)
        except InputUnavailableError as e:
            self._advise(str(e))
            return False
        if device is None:
            self._advise("no MIDI input devices found")
            return False
        return self.select_port(device.name)

    def close(self):
        with self._port_lock:
            self._detach()

    def add_listener(self, listener: MonitorListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: MonitorListener):
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _detach(self):
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            subscription.close()

    def _advise(self, message: str):
        if self.advisory != message:
            logger.warning("%s", message)
        self.advisory = message

    def _notify(self, event: MidiMessageEvent | None):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("monitor listener %r failed", listener)
