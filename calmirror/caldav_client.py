from __future__ import annotations

import hashlib
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

import caldav
from caldav.lib.error import NotFoundError
from icalendar import Calendar as ICalendar
from icalendar import Event as ICEvent

from calmirror.models import (
    CalDAVConfig,
    CalendarInfo,
    CalendarNotFoundError,
    ConfigurationError,
    EventRecord,
    EventStoreError,
    date_to_datetime,
)


def _data_hash(raw_ical: str) -> str:
    return hashlib.sha1(raw_ical.encode("utf-8")).hexdigest()  # nosec B324


def _normalize_calendar_id(value: str) -> str:
    return str(value or "").strip().rstrip("/")


def _coerce_datetime(value: Any, is_end: bool = False) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return date_to_datetime(value, is_end=is_end)
    return None


def _first_vevent(calendar_obj: ICalendar) -> ICEvent | None:
    for component in calendar_obj.walk():
        if component.name == "VEVENT":
            return component
    return None


def _decode_raw_ical(raw_data: Any) -> str:
    if isinstance(raw_data, bytes):
        return raw_data.decode("utf-8", errors="replace")
    return str(raw_data)


def build_ical(event: EventRecord) -> str:
    calendar_obj = ICalendar()
    calendar_obj.add("PRODID", "-//calmirror//Calendar Mirror//EN")
    calendar_obj.add("VERSION", "2.0")
    vevent = ICEvent()
    vevent.add("UID", event.uid)
    vevent.add("DTSTAMP", datetime.now(timezone.utc))
    vevent.add("SUMMARY", event.summary or "")
    if event.description:
        vevent.add("DESCRIPTION", event.description)
    if event.location:
        vevent.add("LOCATION", event.location)
    if event.start is not None:
        vevent.add("DTSTART", event.start)
    if event.end is not None:
        vevent.add("DTEND", event.end)
    if event.color:
        vevent.add("COLOR", event.color)
    calendar_obj.add_component(vevent)
    return calendar_obj.to_ical().decode("utf-8")


def parse_event(calendar_id: str, raw_data: Any, href: str = "") -> EventRecord:
    raw_ical = _decode_raw_ical(raw_data)
    calendar_obj = ICalendar.from_ical(raw_ical)
    vevent = _first_vevent(calendar_obj)
    if vevent is None:
        raise EventStoreError("VEVENT missing in calendar resource.")

    dtstart_raw = vevent.decoded("DTSTART") if vevent.get("DTSTART") is not None else None
    dtend_raw = vevent.decoded("DTEND") if vevent.get("DTEND") is not None else None
    start = _coerce_datetime(dtstart_raw, is_end=False)
    end = _coerce_datetime(dtend_raw, is_end=True)
    all_day = isinstance(dtstart_raw, date) and not isinstance(dtstart_raw, datetime)
    if start and end is None:
        duration = vevent.decoded("DURATION") if vevent.get("DURATION") is not None else None
        end = start + (duration if isinstance(duration, timedelta) else timedelta(hours=1))
    return EventRecord(
        calendar_id=calendar_id,
        uid=str(vevent.get("UID", "")).strip(),
        summary=str(vevent.get("SUMMARY", "")).strip(),
        description=str(vevent.get("DESCRIPTION", "")).strip(),
        location=str(vevent.get("LOCATION", "")).strip(),
        start=start,
        end=end,
        all_day=all_day,
        color=str(vevent.get("COLOR", "")).strip(),
        href=href,
        etag=_data_hash(raw_ical),
    )


class CalDAVService:
    """Calendar store backed by a CalDAV principal."""

    def __init__(self, config: CalDAVConfig) -> None:
        self.config = config
        self._client: Any = None
        self._principal: Any = None
        self._calendar_cache: dict[str, Any] = {}

    def _connect(self) -> None:
        if self._principal is not None:
            return
        if not self.config.is_complete:
            raise ConfigurationError("CalDAV config is incomplete.")
        self._client = caldav.DAVClient(
            url=self.config.base_url,
            username=self.config.username,
            password=self.config.password,
        )
        self._principal = self._client.principal()

    def list_calendars(self) -> list[CalendarInfo]:
        self._connect()
        self._calendar_cache = {}
        calendars: list[CalendarInfo] = []
        for calendar in self._principal.calendars():
            calendar_id = str(calendar.url)
            name = getattr(calendar, "name", "") or calendar_id
            self._calendar_cache[calendar_id] = calendar
            calendars.append(CalendarInfo(calendar_id=calendar_id, name=name, url=calendar_id))
        return calendars

    def _get_calendar(self, calendar_id: str) -> Any:
        self._connect()
        if calendar_id in self._calendar_cache:
            return self._calendar_cache[calendar_id]
        wanted = _normalize_calendar_id(calendar_id)
        for calendar in self._principal.calendars():
            cid = str(calendar.url)
            self._calendar_cache[cid] = calendar
            if _normalize_calendar_id(cid) == wanted:
                self._calendar_cache[calendar_id] = calendar
        if calendar_id not in self._calendar_cache:
            raise CalendarNotFoundError(f"Calendar not found: {calendar_id}")
        return self._calendar_cache[calendar_id]

    def resolve_calendar(self, calendar_id: str) -> CalendarInfo:
        calendar = self._get_calendar(calendar_id)
        url = str(calendar.url)
        return CalendarInfo(calendar_id=calendar_id, name=getattr(calendar, "name", "") or url, url=url)

    def fetch_events(self, calendar_id: str, start: datetime, end: datetime) -> list[EventRecord]:
        calendar = self._get_calendar(calendar_id)
        resources = calendar.search(start=start, end=end, event=True, expand=True)
        events: list[EventRecord] = []
        for item in resources:
            event = parse_event(calendar_id, item.data, href=str(getattr(item, "url", "") or ""))
            if event.uid:
                events.append(event)
        return events

    def create_event(self, calendar_id: str, event: EventRecord) -> EventRecord:
        calendar = self._get_calendar(calendar_id)
        draft = event.with_updates(calendar_id=calendar_id, uid=str(uuid.uuid4()), href="", etag="")
        try:
            resource = calendar.save_event(build_ical(draft))
        except Exception as exc:
            raise EventStoreError(f"Failed to create event {draft.summary!r}: {exc}") from exc
        return parse_event(calendar_id, resource.data, href=str(getattr(resource, "url", "") or ""))

    def update_event(self, calendar_id: str, event: EventRecord) -> EventRecord:
        calendar = self._get_calendar(calendar_id)
        resource = self._find_resource(calendar, event)
        if resource is None:
            raise EventStoreError(f"Event not found for update: {event.uid}")
        try:
            resource.data = build_ical(event)
            resource.save()
        except Exception as exc:
            raise EventStoreError(f"Failed to update event {event.uid}: {exc}") from exc
        return parse_event(calendar_id, resource.data, href=str(getattr(resource, "url", "") or event.href))

    def delete_event(self, calendar_id: str, event: EventRecord) -> None:
        calendar = self._get_calendar(calendar_id)
        resource = self._find_resource(calendar, event)
        if resource is None:
            raise EventStoreError(f"Event not found for delete: {event.uid}")
        try:
            resource.delete()
        except Exception as exc:
            raise EventStoreError(f"Failed to delete event {event.uid}: {exc}") from exc

    def _find_resource(self, calendar: Any, event: EventRecord) -> Any:
        if event.href:
            try:
                return calendar.event_by_url(event.href)
            except NotFoundError:
                pass
        if not event.uid:
            return None
        try:
            return calendar.event_by_uid(event.uid)
        except NotFoundError:
            return None
