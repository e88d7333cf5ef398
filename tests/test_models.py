import unittest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from calmirror.models import AppConfig, EventRecord, SyncAction, SyncConfig, SyncReport, day_windows


class ModelsTests(unittest.TestCase):
    def test_sync_config_defaults(self) -> None:
        cfg = SyncConfig.from_dict({})
        self.assertEqual(cfg.horizon_days, 30)
        self.assertEqual(cfg.copy_color, "gray")
        self.assertEqual(cfg.pause_seconds, 0.5)
        self.assertEqual(cfg.timezone, "UTC")

    def test_sync_config_normalized(self) -> None:
        cfg = SyncConfig.from_dict(
            {
                "calendar_a_id": "  https://dav/a/ ",
                "calendar_b_id": None,
                "horizon_days": 0,
                "copy_color": "  ",
                "pause_seconds": -3,
                "interval_seconds": 5,
            }
        )
        self.assertEqual(cfg.calendar_a_id, "https://dav/a/")
        self.assertEqual(cfg.calendar_b_id, "")
        self.assertEqual(cfg.horizon_days, 1)
        self.assertEqual(cfg.copy_color, "gray")
        self.assertEqual(cfg.pause_seconds, 0.0)
        self.assertEqual(cfg.interval_seconds, 30)

    def test_app_config_round_trip_dict(self) -> None:
        cfg = AppConfig.from_dict({"caldav": {"base_url": "https://dav", "username": "u"}, "sync": {"horizon_days": 7}})
        self.assertTrue(cfg.caldav.is_complete)
        self.assertEqual(AppConfig.from_dict(cfg.to_dict()), cfg)

    def test_event_with_updates_leaves_original(self) -> None:
        start = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        event = EventRecord(calendar_id="cal-a", uid="s1", summary="Lunch", start=start, end=start + timedelta(hours=1))
        moved = event.with_updates(start=start + timedelta(hours=2), location="Cafe")
        self.assertEqual((event.start, event.location), (start, ""))
        self.assertEqual((moved.start, moved.location, moved.uid), (start + timedelta(hours=2), "Cafe", "s1"))

    def test_day_windows_cover_whole_local_days(self) -> None:
        tz = ZoneInfo("Europe/Berlin")
        now = datetime(2026, 3, 2, 23, 30, tzinfo=timezone.utc)  # already March 3rd in Berlin
        windows = day_windows(now, 3, tz)
        self.assertEqual(len(windows), 3)
        first_start, first_end = windows[0]
        self.assertEqual(first_start, datetime(2026, 3, 3, 0, 0, tzinfo=tz))
        self.assertEqual(first_end.date(), first_start.date())
        self.assertEqual(first_end.hour, 23)
        self.assertEqual(windows[1][0] - first_start, timedelta(days=1))

    def test_report_counts(self) -> None:
        report = SyncReport()
        report.extend(
            [
                SyncAction(action="created", calendar_id="b"),
                SyncAction(action="deleted", calendar_id="b"),
                SyncAction(action="skipped", calendar_id="b"),
                SyncAction(action="unchanged", calendar_id="b"),
            ]
        )
        self.assertEqual(report.writes, 2)
        self.assertEqual(report.count("skipped"), 1)

    def test_action_describe(self) -> None:
        created = SyncAction(action="created", calendar_id="b", title="[COPY] Lunch [ID: 1]")
        self.assertEqual(created.describe(), "Created copy: [COPY] Lunch [ID: 1]")
        failed = SyncAction(action="error", calendar_id="b", title="[COPY] X [ID: 2]", reason="delete", error="gone")
        self.assertIn("delete", failed.describe())
        self.assertIn("gone", failed.describe())


if __name__ == "__main__":
    unittest.main()
