from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any


DEFAULT_COPY_COLOR = "gray"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""


class ConfigurationError(CalendarSyncError):
    """Raised when the sync pair cannot be used; aborts the whole run."""


class CalendarNotFoundError(ConfigurationError):
    pass


class EventStoreError(CalendarSyncError):
    """A single create/update/delete against the calendar store failed."""


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_tz(value).isoformat()


def date_to_datetime(value: datetime | date | None, is_end: bool = False) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    if is_end:
        return datetime.combine(value, time.max, tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


@dataclass
class CalDAVConfig:
    base_url: str = ""
    username: str = ""
    password: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CalDAVConfig":
        data = data or {}
        return cls(
            base_url=str(data.get("base_url", "")).strip(),
            username=str(data.get("username", "")).strip(),
            password=str(data.get("password", "")).strip(),
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.base_url and self.username)


@dataclass
class SyncConfig:
    calendar_a_id: str = ""
    calendar_b_id: str = ""
    horizon_days: int = 30
    copy_color: str = DEFAULT_COPY_COLOR
    pause_seconds: float = 0.5
    interval_seconds: int = 300
    timezone: str = "UTC"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncConfig":
        data = data or {}
        return cls(
            calendar_a_id=str(data.get("calendar_a_id", "") or "").strip(),
            calendar_b_id=str(data.get("calendar_b_id", "") or "").strip(),
            horizon_days=max(1, int(data.get("horizon_days", 30))),
            copy_color=str(data.get("copy_color", DEFAULT_COPY_COLOR) or "").strip() or DEFAULT_COPY_COLOR,
            pause_seconds=max(0.0, float(data.get("pause_seconds", 0.5))),
            interval_seconds=max(30, int(data.get("interval_seconds", 300))),
            timezone=str(data.get("timezone", "UTC")).strip() or "UTC",
        )


@dataclass
class AppConfig:
    caldav: CalDAVConfig = field(default_factory=CalDAVConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            caldav=CalDAVConfig.from_dict(data.get("caldav")),
            sync=SyncConfig.from_dict(data.get("sync")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CalendarInfo:
    calendar_id: str
    name: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EventRecord:
    calendar_id: str
    uid: str
    summary: str = ""
    description: str = ""
    location: str = ""
    start: datetime | None = None
    end: datetime | None = None
    all_day: bool = False
    color: str = ""
    href: str = ""
    etag: str = ""

    def clone(self) -> "EventRecord":
        return EventRecord(**asdict(self))

    def with_updates(self, **kwargs: Any) -> "EventRecord":
        copied = self.clone()
        for key, value in kwargs.items():
            setattr(copied, key, value)
        return copied


@dataclass
class SyncAction:
    action: str
    calendar_id: str
    uid: str = ""
    title: str = ""
    source_id: str = ""
    reason: str = ""
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def describe(self) -> str:
        if self.action == "created":
            return f"Created copy: {self.title}"
        if self.action == "updated":
            return f"Updated copy: {self.title}"
        if self.action == "deleted":
            return f"Deleted {self.reason or 'orphaned'} copy: {self.title}"
        if self.action == "error":
            return f"Error on {self.reason} of {self.title!r}: {self.error}"
        return f"{self.action.capitalize()} ({self.reason}): {self.title}"


WRITE_ACTIONS = ("created", "updated", "deleted")


@dataclass
class SyncReport:
    actions: list[SyncAction] = field(default_factory=list)
    windows: int = 0

    def extend(self, actions: list[SyncAction]) -> None:
        self.actions.extend(actions)

    def count(self, action: str) -> int:
        return sum(1 for item in self.actions if item.action == action)

    @property
    def writes(self) -> int:
        return sum(self.count(action) for action in WRITE_ACTIONS)

    def summary(self) -> str:
        return (
            f"{self.windows} windows: {self.count('created')} created, {self.count('updated')} updated, "
            f"{self.count('deleted')} deleted, {self.count('skipped')} skipped, {self.count('error')} errors"
        )


@dataclass
class SyncResult:
    status: str
    message: str
    duration_ms: int
    trigger: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    run_id: int | None = None
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["run_at"] = serialize_datetime(self.run_at)
        return payload


def default_app_config() -> AppConfig:
    return AppConfig()


def day_windows(now: datetime, horizon_days: int, tz: tzinfo) -> list[tuple[datetime, datetime]]:
    """Day-sized windows covering today and the following days in ``tz``."""
    today = _ensure_tz(now).astimezone(tz).date()
    windows: list[tuple[datetime, datetime]] = []
    for offset in range(max(1, horizon_days)):
        day = today + timedelta(days=offset)
        windows.append(
            (
                datetime.combine(day, time.min, tzinfo=tz),
                datetime.combine(day, time.max, tzinfo=tz),
            )
        )
    return windows
