from __future__ import annotations

from datetime import datetime
from typing import Iterable

from calmirror.copy_tag import decode_source_id
from calmirror.models import EventRecord, _ensure_tz


def _to_millis(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    value = _ensure_tz(value)
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def same_instant(a: datetime | None, b: datetime | None) -> bool:
    return _to_millis(a) == _to_millis(b)


def is_natural_match(a: EventRecord, b: EventRecord) -> bool:
    """Same title and exactly the same start/end, regardless of copy tags."""
    return a.summary == b.summary and same_instant(a.start, b.start) and same_instant(a.end, b.end)


def find_natural_match(source: EventRecord, candidates: Iterable[EventRecord]) -> EventRecord | None:
    return next((item for item in candidates if is_natural_match(source, item)), None)


def is_copy_of(copy_event: EventRecord, source_event: EventRecord) -> bool:
    return decode_source_id(copy_event.summary) == source_event.uid


def copy_has_drifted(copy_event: EventRecord, source_event: EventRecord) -> bool:
    if not same_instant(copy_event.start, source_event.start):
        return True
    if not same_instant(copy_event.end, source_event.end):
        return True
    if (copy_event.description or "") != (source_event.description or ""):
        return True
    return (copy_event.location or "") != (source_event.location or "")
