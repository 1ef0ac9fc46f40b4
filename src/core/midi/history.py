from __future__ import annotations

import logging
from collections import deque
from typing import Iterator, Optional

from .events import MidiMessageEvent

HISTORY_CAPACITY = 1000

logger = logging.getLogger(__name__)


class MidiHistory:
    """Newest-first bounded event log.

    `append` prepends; once `capacity` is reached the oldest (tail) entry is
    dropped and returned.
    """

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive: {capacity!r}")
        self.capacity = int(capacity)
        self._events: deque[MidiMessageEvent] = deque()

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[MidiMessageEvent]:
        return iter(self.snapshot())

    def append(self, event: MidiMessageEvent) -> Optional[MidiMessageEvent]:
        evicted = None
        if len(self._events) >= self.capacity:
            evicted = self._events.pop()
        self._events.appendleft(event)
        return evicted

    def clear(self):
        self._events.clear()
        logger.debug("history cleared")

    def snapshot(self) -> tuple[MidiMessageEvent, ...]:
        return tuple(self._events)
