from .aggregator import DISPLAY_CC_LIMIT, DISPLAY_NOTE_LIMIT, IncrementalAggregator, MidiState, aggregate
from .decoder import decode_message, decode_mido_message, now_ms
from .device import MidiDeviceInfo
from .events import MidiMessageEvent
from .exporter import export_filename, export_json, load_export, write_export
from .filters import EventFilter, message_types, recent_other_events
from .history import HISTORY_CAPACITY, MidiHistory
from .listener import DEFAULT_PORT_KEYWORDS, InputUnavailableError, MidiListener, PortSubscription
from .monitor import MidiMonitor

__all__ = [
    "DEFAULT_PORT_KEYWORDS",
    "DISPLAY_CC_LIMIT",
    "DISPLAY_NOTE_LIMIT",
    "HISTORY_CAPACITY",
    "EventFilter",
    "IncrementalAggregator",
    "InputUnavailableError",
    "MidiDeviceInfo",
    "MidiHistory",
    "MidiListener",
    "MidiMessageEvent",
    "MidiMonitor",
    "MidiState",
    "PortSubscription",
    "aggregate",
    "decode_message",
    "decode_mido_message",
    "export_filename",
    "export_json",
    "load_export",
    "message_types",
    "now_ms",
    "recent_other_events",
    "write_export",
]
