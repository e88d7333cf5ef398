from __future__ import annotations

import logging
import threading
import time
import traceback
from datetime import datetime, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from calmirror.caldav_client import CalDAVService
from calmirror.config_manager import ConfigManager
from calmirror.models import (
    ConfigurationError,
    EventRecord,
    SyncConfig,
    SyncReport,
    SyncResult,
    day_windows,
)
from calmirror.reconciler import reconcile_pass
from calmirror.state_store import StateStore


logger = logging.getLogger(__name__)


def _timed_events(store: Any, calendar_id: str, start: datetime, end: datetime) -> list[EventRecord]:
    return [event for event in store.fetch_events(calendar_id, start, end) if not event.all_day]


def _load_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown timezone: {name}") from exc


def validate_sync_pair(store: Any, sync_config: SyncConfig) -> None:
    if not sync_config.calendar_a_id or not sync_config.calendar_b_id:
        raise ConfigurationError("Both calendar_a_id and calendar_b_id must be configured.")
    if sync_config.calendar_a_id == sync_config.calendar_b_id:
        raise ConfigurationError("calendar_a_id and calendar_b_id must differ.")
    # Raises CalendarNotFoundError for an unresolvable id.
    store.resolve_calendar(sync_config.calendar_a_id)
    store.resolve_calendar(sync_config.calendar_b_id)


def synchronize(
    store: Any,
    sync_config: SyncConfig,
    *,
    now: datetime | None = None,
    sleep: Callable[[float], None] = time.sleep,
    report: SyncReport | None = None,
) -> SyncReport:
    """Mirror calendar A into B and B into A, one day window at a time.

    Every pass re-reads both calendars, so nothing done in one pass is carried
    to the next except through the store itself.
    """
    validate_sync_pair(store, sync_config)
    tz = _load_timezone(sync_config.timezone)
    windows = day_windows(now or datetime.now(timezone.utc), sync_config.horizon_days, tz)
    directions = (
        (sync_config.calendar_a_id, sync_config.calendar_b_id),
        (sync_config.calendar_b_id, sync_config.calendar_a_id),
    )

    report = report if report is not None else SyncReport()
    for index, (window_start, window_end) in enumerate(windows):
        if index and sync_config.pause_seconds:
            sleep(sync_config.pause_seconds)
        logger.debug("Syncing window %s", window_start.date().isoformat())
        for source_id, target_id in directions:
            actions = reconcile_pass(
                store,
                source_events=_timed_events(store, source_id, window_start, window_end),
                target_events=_timed_events(store, target_id, window_start, window_end),
                target_calendar_id=target_id,
                copy_color=sync_config.copy_color,
            )
            report.extend(actions)
        report.windows += 1

    logger.info("Synchronization completed. %s", report.summary())
    return report


class SyncEngine:
    def __init__(
        self,
        config_manager: ConfigManager,
        state_store: StateStore,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config_manager = config_manager
        self.state_store = state_store
        self._sleep = sleep
        self._run_lock = threading.Lock()

    def run_once(self, trigger: str = "manual") -> SyncResult:
        # One run at a time per process; passes must not interleave.
        with self._run_lock:
            return self._run(trigger)

    def _run(self, trigger: str) -> SyncResult:
        started_at = datetime.now(timezone.utc)

        def _elapsed_ms() -> int:
            return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)

        run_id = self.state_store.start_sync_run(trigger=trigger)
        report = SyncReport()
        try:
            config = self.config_manager.load()
            if not config.caldav.is_complete:
                message = "CalDAV config missing base_url/username. Sync skipped."
                logger.warning(message)
                self.state_store.finish_sync_run(
                    run_id=run_id, status="skipped", message=message, duration_ms=_elapsed_ms()
                )
                return SyncResult(
                    status="skipped",
                    message=message,
                    duration_ms=_elapsed_ms(),
                    trigger=trigger,
                    run_id=run_id,
                )
            caldav_service = CalDAVService(config.caldav)
            synchronize(caldav_service, config.sync, sleep=self._sleep, report=report)
            status = "success"
            message = f"Synchronization completed. {report.summary()}"
        except Exception as exc:
            status = "error"
            message = f"{type(exc).__name__}: {exc}"
            if isinstance(exc, ConfigurationError):
                logger.error("Sync aborted before any window: %s", message)
            else:
                logger.exception("Sync run failed")
            self.state_store.record_audit_event(
                calendar_id="system",
                uid="sync",
                action="run_error",
                details={
                    "trigger": trigger,
                    "error": message,
                    "traceback": traceback.format_exc(limit=5),
                },
                run_id=run_id,
            )

        self.state_store.record_actions(report.actions, run_id=run_id, trigger=trigger)
        result = SyncResult(
            status=status,
            message=message,
            duration_ms=_elapsed_ms(),
            trigger=trigger,
            created=report.count("created"),
            updated=report.count("updated"),
            deleted=report.count("deleted"),
            skipped=report.count("skipped"),
            errors=report.count("error"),
            run_id=run_id,
        )
        self.state_store.finish_sync_run(
            run_id=run_id,
            status=result.status,
            message=result.message,
            duration_ms=result.duration_ms,
            counts={
                "created": result.created,
                "updated": result.updated,
                "deleted": result.deleted,
                "skipped": result.skipped,
                "errors": result.errors,
            },
        )
        return result
