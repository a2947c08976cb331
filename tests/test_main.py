import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

from wingetkeeper import main as entry
from wingetkeeper.config.settings import AgentConfig
from wingetkeeper.core.models import InstallState


class MainTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.config_path = root / "agent.json"
        self.config_path.write_text(json.dumps({
            "data_dir": str(root / "data"),
            "settings_backend": "json",
            "unknown_key": True,
        }), encoding="utf-8")
        patcher = mock.patch.object(entry, "setup_logging")
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _main(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = entry.main(["--config", str(self.config_path), *argv])
        return code, out.getvalue()

    def test_config_load_ignores_unknown_keys(self) -> None:
        config = AgentConfig.load(str(self.config_path))
        self.assertEqual(config.settings_backend, "json")
        self.assertTrue(config.work_dir.endswith("work"))
        self.assertEqual(config.wait_seconds, 600)

    def test_set_then_get(self) -> None:
        code, _ = self._main("set", "UpdateInterval=Every2Days", "UpdateTime=4pm",
                             "UpdateOnLogin=1")
        self.assertEqual(code, 0)
        code, out = self._main("get", "UpdateTime")
        self.assertEqual((code, out.strip()), (0, "16:00:00"))

        code, out = self._main("triggers")
        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), ["At logon", "Every 2 days at 16:00:00"])

    def test_bad_values_are_usage_errors(self) -> None:
        self.assertEqual(self._main("set", "NotificationLevel=Loud")[0], 2)
        self.assertEqual(self._main("set", "NotificationLevel")[0], 2)
        self.assertEqual(self._main("get", "Colour")[0], 2)

    def test_run_skips_follow_up_when_not_current(self) -> None:
        orchestrator = mock.Mock()
        orchestrator.reconcile.return_value = InstallState.FAILED
        with mock.patch.object(entry, "PrerequisiteChecker") as checker, \
                mock.patch.object(entry, "build_orchestrator", return_value=orchestrator), \
                mock.patch.object(entry, "update_scope_file") as update_scope:
            code, _ = self._main("run", "--wait", "60")
        self.assertEqual(code, 0)
        checker.return_value.check_or_exit.assert_called_once_with()
        orchestrator.reconcile.assert_called_once_with(stop_processes=False, wait_seconds=60)
        update_scope.assert_not_called()

    def test_run_survives_invalid_stored_policy(self) -> None:
        data = Path(self._tmp.name) / "data"
        data.mkdir(parents=True, exist_ok=True)
        (data / "policy.json").write_text(json.dumps({"UpdateInterval": "Never"}),
                                         encoding="utf-8")
        (data / "store_policy.json").write_text(json.dumps({"AutoDownload": "abc"}),
                                               encoding="utf-8")
        orchestrator = mock.Mock()
        orchestrator.reconcile.return_value = InstallState.CURRENT
        with mock.patch.object(entry, "PrerequisiteChecker"), \
                mock.patch.object(entry, "build_orchestrator", return_value=orchestrator), \
                mock.patch.object(entry, "update_scope_file") as update_scope:
            with self.assertLogs("wingetkeeper.main", level="ERROR") as logs:
                code, _ = self._main("run")
        self.assertEqual(code, 0)
        update_scope.assert_called_once()
        self.assertTrue(any("Never" in line for line in logs.output))
        self.assertTrue(any("Store auto-download" in line for line in logs.output))

    def test_run_applies_scope_and_store_policy(self) -> None:
        orchestrator = mock.Mock()
        orchestrator.reconcile.return_value = InstallState.CURRENT
        self._main("set", "MachineScopeOnly=1")
        with mock.patch.object(entry, "PrerequisiteChecker"), \
                mock.patch.object(entry, "build_orchestrator", return_value=orchestrator), \
                mock.patch.object(entry, "update_scope_file") as update_scope:
            code, _ = self._main()
        self.assertEqual(code, 0)
        orchestrator.reconcile.assert_called_once_with(stop_processes=False, wait_seconds=None)
        self.assertTrue(update_scope.call_args[0][1])
        code, out = self._main("get", "StoreUpdatesOriginalValue")
        self.assertEqual(out.strip(), "0")

        self.assertEqual(self._main("restore")[0], 0)
        store = json.loads((Path(self._tmp.name) / "data" / "store_policy.json")
                           .read_text(encoding="utf-8"))
        self.assertNotIn("AutoDownload", store)


if __name__ == "__main__":
    unittest.main()
