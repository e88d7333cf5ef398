"""
In-memory calendar store for tests.

Duck-type compatible with CalDAVService: events live in a dict per calendar,
keyed by UID, and every write is recorded so tests can assert on it.
"""

from __future__ import annotations

from datetime import datetime

from calmirror.models import CalendarInfo, CalendarNotFoundError, EventRecord, EventStoreError


class FakeCalendarStore:
    def __init__(self, *calendar_ids: str) -> None:
        self._events: dict[str, dict[str, EventRecord]] = {cid: {} for cid in calendar_ids}
        self._next_uid = 0
        self.creates: list[tuple[str, EventRecord]] = []
        self.updates: list[tuple[str, EventRecord]] = []
        self.deletes: list[tuple[str, EventRecord]] = []
        self.fail_deletes: set[str] = set()
        self.fail_updates: set[str] = set()
        self.fail_creates = False

    # ------------------------------------------------------------------ #
    # Store interface                                                     #
    # ------------------------------------------------------------------ #

    def resolve_calendar(self, calendar_id: str) -> CalendarInfo:
        if calendar_id not in self._events:
            raise CalendarNotFoundError(f"Calendar not found: {calendar_id}")
        return CalendarInfo(calendar_id=calendar_id, name=calendar_id, url=calendar_id)

    def fetch_events(self, calendar_id: str, start: datetime, end: datetime) -> list[EventRecord]:
        return [
            event.clone()
            for event in self._calendar(calendar_id).values()
            if event.start is not None and event.end is not None and event.start <= end and event.end > start
        ]

    def create_event(self, calendar_id: str, event: EventRecord) -> EventRecord:
        if self.fail_creates:
            raise EventStoreError("create rejected")
        self._next_uid += 1
        stored = event.with_updates(calendar_id=calendar_id, uid=f"{calendar_id}-gen-{self._next_uid}")
        self._calendar(calendar_id)[stored.uid] = stored
        self.creates.append((calendar_id, stored.clone()))
        return stored.clone()

    def update_event(self, calendar_id: str, event: EventRecord) -> EventRecord:
        events = self._calendar(calendar_id)
        if event.uid in self.fail_updates:
            raise EventStoreError(f"update rejected: {event.uid}")
        if event.uid not in events:
            raise EventStoreError(f"Event not found for update: {event.uid}")
        events[event.uid] = event.clone()
        self.updates.append((calendar_id, event.clone()))
        return event.clone()

    def delete_event(self, calendar_id: str, event: EventRecord) -> None:
        events = self._calendar(calendar_id)
        if event.uid in self.fail_deletes or event.uid not in events:
            raise EventStoreError(f"Event not found for delete: {event.uid}")
        del events[event.uid]
        self.deletes.append((calendar_id, event.clone()))

    # ------------------------------------------------------------------ #
    # Test helpers                                                        #
    # ------------------------------------------------------------------ #

    def _calendar(self, calendar_id: str) -> dict[str, EventRecord]:
        if calendar_id not in self._events:
            raise CalendarNotFoundError(f"Calendar not found: {calendar_id}")
        return self._events[calendar_id]

    def add(self, calendar_id: str, event: EventRecord) -> EventRecord:
        stored = event.with_updates(calendar_id=calendar_id)
        self._calendar(calendar_id)[stored.uid] = stored
        return stored

    def remove(self, calendar_id: str, uid: str) -> None:
        del self._calendar(calendar_id)[uid]

    def events(self, calendar_id: str) -> list[EventRecord]:
        return sorted(self._calendar(calendar_id).values(), key=lambda item: item.uid)

    def get(self, calendar_id: str, uid: str) -> EventRecord:
        return self._calendar(calendar_id)[uid]

    @property
    def write_count(self) -> int:
        return len(self.creates) + len(self.updates) + len(self.deletes)

    def reset_counters(self) -> None:
        self.creates.clear()
        self.updates.clear()
        self.deletes.clear()
