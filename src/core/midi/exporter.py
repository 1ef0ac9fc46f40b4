from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
from typing import Iterable

from .events import MidiMessageEvent

logger = logging.getLogger(__name__)


def export_json(snapshot: Iterable[MidiMessageEvent]) -> str:
    return json.dumps([event.to_record() for event in snapshot], ensure_ascii=False, indent=2)


def export_filename(moment: datetime | None = None) -> str:
    """`midi-log-YYYY-MM-DDTHH-MM-SS.json` for the export moment in UTC."""

    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    stamp = moment.replace(microsecond=0, tzinfo=None).isoformat(timespec="seconds")
    return f"midi-log-{stamp.replace(':', '-')}.json"


def write_export(
    snapshot: Iterable[MidiMessageEvent], directory: Path | str, moment: datetime | None = None
) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(moment)
    events = tuple(snapshot)
    path.write_text(export_json(events) + "\n", encoding="utf-8")
    logger.info("exported %d events to %s", len(events), path)
    return path


def load_export(text: str) -> list[MidiMessageEvent]:
    payload = json.loads(text)
    if not isinstance(payload, list):
        raise ValueError("MIDI log export must be a JSON array")
    return [MidiMessageEvent.from_record(record) for record in payload]
