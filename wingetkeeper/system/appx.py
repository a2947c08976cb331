"""winget inventory and AppX provisioning.

winget lives inside the Microsoft.DesktopAppInstaller package. Under the
SYSTEM account it is not on PATH, so the newest x64 package folder under
WindowsApps is used instead.
"""

import glob
import logging
import os
import re
import shutil
import subprocess

from packaging.version import Version

from wingetkeeper.core.errors import InstallError
from wingetkeeper.core.models import InstalledState, parse_version
from wingetkeeper.system.powershell import run_powershell, quote

logger = logging.getLogger(__name__)

_NO_WINDOW = getattr(subprocess, 'CREATE_NO_WINDOW', 0)

WINDOWSAPPS_PATTERN = os.path.join(
    'WindowsApps', 'Microsoft.DesktopAppInstaller_*_x64__8wekyb3d8bbwe', 'winget.exe'
)

UPDATE_SCAN_SCRIPT = (
    'Get-CimInstance -Namespace "Root\\cimv2\\mdm\\dmmap" '
    '-ClassName "MDM_EnterpriseModernAppManagement_AppManagement01" '
    '| Invoke-CimMethod -MethodName UpdateScanMethod | Out-Null'
)

# Package folder names embed the version: ..._1.22.10861.0_x64__8wekyb3d8bbwe
_FOLDER_VERSION = re.compile(r'DesktopAppInstaller_([^_]+)_')


def _folder_version(path: str):
    match = _FOLDER_VERSION.search(path)
    version = parse_version(match.group(1)) if match else None
    return (version is not None, version if version is not None else Version("0"))


class WingetInventory:
    """Reports the locally installed winget version."""

    def __init__(self, program_files: str | None = None):
        self.program_files = program_files or os.environ.get(
            'ProgramFiles', r'C:\Program Files'
        )

    def locate(self) -> str | None:
        found = shutil.which('winget')
        if found:
            return found
        candidates = glob.glob(os.path.join(self.program_files, WINDOWSAPPS_PATTERN))
        if not candidates:
            return None
        return max(candidates, key=_folder_version)

    def installed_state(self) -> InstalledState:
        exe = self.locate()
        if not exe:
            return InstalledState.absent()
        try:
            result = subprocess.run(
                [exe, '--version'],
                capture_output=True, text=True, timeout=60,
                creationflags=_NO_WINDOW,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("winget --version failed: %s", e)
            return InstalledState.absent()

        if result.returncode != 0:
            logger.warning("winget --version exited with %d", result.returncode)
            return InstalledState.absent()
        version = parse_version(result.stdout)
        return InstalledState(present=True, version=version)


class AppxProvisioner:
    """Machine-wide AppX operations via PowerShell."""

    def __init__(self, timeout: int = 900):
        self.timeout = timeout

    def provision(self, package_path: str):
        """Side-load a bundle for all users."""
        logger.info("Provisioning %s", package_path)
        run_powershell(
            f"Add-AppxProvisionedPackage -Online -PackagePath {quote(package_path)} "
            f"-SkipLicense | Out-Null",
            timeout=self.timeout,
        )

    def trigger_update_scan(self):
        """Ask the MDM app-management bridge to scan the Store for updates."""
        logger.info("Requesting Store update scan")
        try:
            run_powershell(UPDATE_SCAN_SCRIPT, timeout=self.timeout)
        except InstallError as e:
            raise InstallError(f"Store update scan failed: {e}") from e
