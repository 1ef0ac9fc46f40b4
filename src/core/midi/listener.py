from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, Optional

import mido

from .decoder import decode_mido_message
from .device import MidiDeviceInfo
from .events import MidiMessageEvent

DEFAULT_PORT_KEYWORDS = ("MIDI",)

logger = logging.getLogger(__name__)


class InputUnavailableError(Exception):
    """Raised when MIDI input cannot be enumerated or a port cannot be opened."""


class PortSubscription:
    """An open input port delivering messages to a callback.

    `close()` detaches the callback before closing the port, so no message is
    delivered once it returns. Closing twice is a no-op.
    """

    def __init__(self, name: str, inport):
        self.name = name
        self._inport = inport

    @property
    def closed(self) -> bool:
        return self._inport is None

    def close(self):
        inport = self._inport
        self._inport = None
        if inport is None:
            return
        try:
            inport.callback = None
        finally:
            inport.close()
        logger.debug("detached from %s", self.name)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class MidiListener:
    def list_input_devices(self) -> Iterable[MidiDeviceInfo]:
        try:
            names = mido.get_input_names()
        except Exception as e:
            raise InputUnavailableError(f"MIDI input unavailable: {e}") from e
        return [MidiDeviceInfo(name=n) for n in names]

    def open_input(self, device_name: str, callback: Optional[Callable] = None):
        try:
            return mido.open_input(device_name, callback=callback)
        except Exception as e:
            raise InputUnavailableError(f"cannot open MIDI input {device_name!r}: {e}") from e

    def iter_events(self, device_name: str) -> Iterator[MidiMessageEvent]:
        with self.open_input(device_name) as inport:
            for msg in inport:
                yield decode_mido_message(msg, device_name)

    def subscribe(
        self, device_name: str, callback: Callable[[list[int], str], None]
    ) -> PortSubscription:
        def _on_message(msg):
            callback(msg.bytes(), device_name)

        inport = self.open_input(device_name, callback=_on_message)
        logger.debug("attached to %s", device_name)
        return PortSubscription(device_name, inport)

    def find_first_matching(self, keywords: Iterable[str]) -> Optional[MidiDeviceInfo]:
        candidates = [d for d in self.list_input_devices()]
        if not candidates:
            return None
        keywords = list(keywords)
        for device in candidates:
            if device.matches(keywords):
                return device
        return candidates[0]
