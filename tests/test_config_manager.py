import errno
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from habitsync.config_manager import ConfigManager, apply_overrides, env_overrides
from habitsync.models import AppConfig


class ConfigManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "nested" / "config.yaml"

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_missing_file_is_created_with_defaults(self) -> None:
        manager = ConfigManager(self.config_path)
        self.assertTrue(self.config_path.exists())
        config = manager.load()
        self.assertEqual(config.sync.interval_seconds, 900)
        self.assertEqual(config.sync.history_filename, ".todoist-habitrpg.json")

    def test_save_fallback_when_replace_ebusy(self) -> None:
        manager = ConfigManager(self.config_path)
        config = AppConfig.from_dict(
            {
                "source": {"api_token": "todoist-token"},
                "target": {"user_id": "user-1", "api_token": "habitica-token"},
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
        self.assertEqual(data["target"]["user_id"], "user-1")
        self.assertEqual(data["source"]["api_token"], "todoist-token")
        self.assertFalse(self.config_path.with_suffix(".yaml.tmp").exists())

    def test_update_merges_and_masks_secrets(self) -> None:
        manager = ConfigManager(self.config_path)
        manager.update({"target": {"user_id": "user-1", "api_token": "secret"}})
        manager.update({"sync": {"interval_seconds": 120}})

        masked = manager.masked()
        self.assertEqual(masked["target"]["user_id"], "user-1")
        self.assertEqual(masked["target"]["api_token"], "***")
        self.assertEqual(masked["source"]["api_token"], "")
        self.assertEqual(masked["sync"]["interval_seconds"], 120)
        self.assertEqual(manager.load().target.api_token, "secret")

    def test_interval_has_a_floor(self) -> None:
        manager = ConfigManager(self.config_path)
        self.assertEqual(manager.update({"sync": {"interval_seconds": 5}}).sync.interval_seconds, 60)

    def test_environment_overrides_file(self) -> None:
        manager = ConfigManager(self.config_path)
        manager.update({"target": {"user_id": "from-file"}})
        environ = {"HABITICA_USER_ID": "from-env", "TODOIST_API_TOKEN": "  tok  ", "HABITICA_API_TOKEN": ""}
        with mock.patch.dict("os.environ", environ, clear=True):
            config = manager.load_effective()
        self.assertEqual(config.target.user_id, "from-env")
        self.assertEqual(config.source.api_token, "tok")
        self.assertEqual(config.target.api_token, "")


class OverrideTests(unittest.TestCase):
    def test_env_overrides_skip_blank_values(self) -> None:
        self.assertEqual(
            env_overrides({"TODOIST_API_TOKEN": "abc", "HABITICA_USER_ID": " "}),
            {"source": {"api_token": "abc"}},
        )

    def test_apply_overrides_ignores_unset_values(self) -> None:
        base = AppConfig.from_dict({"target": {"user_id": "u", "api_token": "t"}})
        merged = apply_overrides(base, {"target": {"user_id": None, "api_token": "new"}, "sync": {"history_dir": ""}})
        self.assertEqual(merged.target.user_id, "u")
        self.assertEqual(merged.target.api_token, "new")
        self.assertEqual(merged.sync.history_dir, "")


if __name__ == "__main__":
    unittest.main()
