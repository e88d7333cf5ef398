import errno
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from calmirror.config_manager import ConfigManager
from calmirror.models import AppConfig


class ConfigManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "nested" / "config.yaml"

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_creates_default_file(self) -> None:
        manager = ConfigManager(str(self.config_path))
        self.assertTrue(self.config_path.exists())
        self.assertEqual(manager.load().sync.horizon_days, 30)

    def test_save_fallback_when_replace_ebusy(self) -> None:
        manager = ConfigManager(str(self.config_path))
        config = AppConfig.from_dict(
            {
                "caldav": {"base_url": "https://dav.example.com", "username": "u", "password": "p"},
                "sync": {"calendar_a_id": "cal-a", "calendar_b_id": "cal-b"},
            }
        )

        original_replace = Path.replace

        def replace_side_effect(self: Path, target: Path) -> Path:
            if str(self).endswith(".tmp"):
                raise OSError(errno.EBUSY, "Device or resource busy")
            return original_replace(self, target)

        with mock.patch("pathlib.Path.replace", new=replace_side_effect):
            manager.save(config)

        data = yaml.safe_load(self.config_path.read_text(encoding="utf-8"))
        self.assertEqual(data["caldav"]["base_url"], "https://dav.example.com")
        self.assertEqual(data["sync"]["calendar_b_id"], "cal-b")
        self.assertFalse(self.config_path.with_suffix(".yaml.tmp").exists())

    def test_update_deep_merges(self) -> None:
        manager = ConfigManager(str(self.config_path))
        manager.update({"caldav": {"base_url": "https://dav", "username": "u", "password": "secret"}})
        updated = manager.update({"sync": {"calendar_a_id": "a"}, "caldav": {"username": "v"}})
        self.assertEqual(updated.caldav.base_url, "https://dav")
        self.assertEqual(updated.caldav.username, "v")
        self.assertEqual(updated.caldav.password, "secret")
        self.assertEqual(updated.sync.calendar_a_id, "a")

    def test_masked_hides_password(self) -> None:
        manager = ConfigManager(str(self.config_path))
        self.assertEqual(manager.masked()["caldav"]["password"], "")
        manager.update({"caldav": {"password": "secret"}})
        self.assertEqual(manager.masked()["caldav"]["password"], "***")


if __name__ == "__main__":
    unittest.main()
