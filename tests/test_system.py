import os
import subprocess
import tempfile
import unittest
from unittest import mock

import psutil
from packaging.version import Version

from wingetkeeper.core.errors import InstallError
from wingetkeeper.system.appx import AppxProvisioner, WingetInventory
from wingetkeeper.system.powershell import quote, run_powershell
from wingetkeeper.system.processes import ProcessStopper


class WingetInventoryTests(unittest.TestCase):
    def test_absent_when_not_found(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, \
                mock.patch("wingetkeeper.system.appx.shutil.which", return_value=None):
            state = WingetInventory(program_files=tmp).installed_state()
        self.assertFalse(state.present)
        self.assertIsNone(state.version)

    def test_newest_windowsapps_folder_wins(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            for version in ("1.21.3482.0", "1.22.10861.0"):
                folder = os.path.join(
                    tmp, "WindowsApps",
                    f"Microsoft.DesktopAppInstaller_{version}_x64__8wekyb3d8bbwe")
                os.makedirs(folder)
                open(os.path.join(folder, "winget.exe"), "wb").close()
            with mock.patch("wingetkeeper.system.appx.shutil.which", return_value=None):
                exe = WingetInventory(program_files=tmp).locate()
        self.assertIn("1.22.10861.0", exe)

    def test_folder_versions_compare_numerically(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            for version in ("1.9.25200.0", "1.10.340.0"):
                folder = os.path.join(
                    tmp, "WindowsApps",
                    f"Microsoft.DesktopAppInstaller_{version}_x64__8wekyb3d8bbwe")
                os.makedirs(folder)
                open(os.path.join(folder, "winget.exe"), "wb").close()
            with mock.patch("wingetkeeper.system.appx.shutil.which", return_value=None):
                exe = WingetInventory(program_files=tmp).locate()
        self.assertIn("1.10.340.0", exe)

    def test_version_from_cli(self) -> None:
        completed = subprocess.CompletedProcess([], 0, stdout="v1.7.10861\n", stderr="")
        with mock.patch("wingetkeeper.system.appx.shutil.which", return_value="winget.exe"), \
                mock.patch("wingetkeeper.system.appx.subprocess.run", return_value=completed) as run:
            state = WingetInventory().installed_state()
        self.assertTrue(state.present)
        self.assertEqual(state.version, Version("1.7.10861"))
        self.assertEqual(run.call_args[0][0], ["winget.exe", "--version"])

    def test_cli_failure_counts_as_absent(self) -> None:
        with mock.patch("wingetkeeper.system.appx.shutil.which", return_value="winget.exe"), \
                mock.patch("wingetkeeper.system.appx.subprocess.run",
                           side_effect=FileNotFoundError("winget.exe")):
            self.assertFalse(WingetInventory().installed_state().present)


class PowerShellTests(unittest.TestCase):
    def test_quote(self) -> None:
        self.assertEqual(quote(r"C:\work\it's.msixbundle"), r"'C:\work\it''s.msixbundle'")

    def test_non_zero_exit_raises(self) -> None:
        completed = subprocess.CompletedProcess([], 1, stdout="", stderr="Access denied")
        with mock.patch("wingetkeeper.system.powershell.subprocess.run", return_value=completed):
            with self.assertRaises(InstallError) as ctx:
                run_powershell("Get-Thing")
        self.assertIn("Access denied", str(ctx.exception))

    def test_provision_command(self) -> None:
        with mock.patch("wingetkeeper.system.appx.run_powershell") as run:
            AppxProvisioner().provision(r"C:\work\bundle.msixbundle")
            AppxProvisioner().trigger_update_scan()
        provision_script = run.call_args_list[0][0][0]
        self.assertIn("Add-AppxProvisionedPackage -Online", provision_script)
        self.assertIn(r"'C:\work\bundle.msixbundle'", provision_script)
        self.assertIn("UpdateScanMethod", run.call_args_list[1][0][0])

    def test_update_scan_failure(self) -> None:
        with mock.patch("wingetkeeper.system.appx.run_powershell",
                        side_effect=InstallError("exit 1")):
            with self.assertRaises(InstallError):
                AppxProvisioner().trigger_update_scan()


class ProcessStopperTests(unittest.TestCase):
    def _proc(self, name):
        proc = mock.Mock()
        proc.info = {"name": name}
        return proc

    def test_stops_only_winget_processes(self) -> None:
        winget = self._proc("winget.exe")
        server = self._proc("WindowsPackageManagerServer.exe")
        other = self._proc("explorer.exe")
        stubborn = self._proc("AppInstaller.exe")
        with mock.patch("wingetkeeper.system.processes.psutil.process_iter",
                        return_value=[winget, server, other, stubborn]), \
                mock.patch("wingetkeeper.system.processes.psutil.wait_procs",
                           return_value=([winget, server], [stubborn])):
            stopped = ProcessStopper.stop()

        self.assertEqual(stopped, 3)
        other.terminate.assert_not_called()
        stubborn.kill.assert_called_once_with()
        winget.kill.assert_not_called()

    def test_access_denied_is_skipped(self) -> None:
        proc = self._proc("winget.exe")
        proc.terminate.side_effect = psutil.AccessDenied(pid=42)
        with mock.patch("wingetkeeper.system.processes.psutil.process_iter",
                        return_value=[proc]):
            self.assertEqual(ProcessStopper.stop(), 0)


if __name__ == "__main__":
    unittest.main()
