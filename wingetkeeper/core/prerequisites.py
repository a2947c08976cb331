"""Startup gate: supported OS build and Visual C++ runtime.

Anything that fails here is fatal: check_or_exit() terminates the process with
a non-zero status and nothing downstream runs.
"""

import fnmatch
import logging
import os
import platform
import subprocess
import sys

from wingetkeeper.core.download import download_file, remove_quietly
from wingetkeeper.core.errors import PrerequisiteError
from wingetkeeper.core.models import PrerequisiteResult

logger = logging.getLogger(__name__)

VC_REDIST_URL = "https://aka.ms/vs/17/release/VC_redist.{arch}.exe"

# Uninstall DisplayName patterns, e.g.
# "Microsoft Visual C++ 2015-2022 Redistributable (x64) - 14.38.33135"
VC_REDIST_PATTERNS = (
    "Microsoft Visual C++ 2015-20* Redistributable ({arch})*",
    "Microsoft Visual C++ 2017 Redistributable ({arch})*",
)

# 1638: a newer version is already installed, 3010: reboot required
INSTALLER_OK_CODES = (0, 1638, 3010)

_MACHINE_ARCH = {
    'amd64': 'x64',
    'x86_64': 'x64',
    'arm64': 'arm64',
    'aarch64': 'arm64',
    'x86': 'x86',
    'i386': 'x86',
    'i686': 'x86',
}


def windows_build() -> int:
    """Build number of the running Windows release (0 elsewhere)."""
    if sys.platform != 'win32':
        return 0
    return sys.getwindowsversion().build


def machine_architecture() -> str:
    machine = platform.machine().lower()
    return _MACHINE_ARCH.get(machine, 'x64')


def _installed_programs() -> list[str]:
    from wingetkeeper.system.registry import installed_program_names
    return installed_program_names()


class PrerequisiteChecker:
    """Verifies and, for the runtime, remediates startup prerequisites."""

    def __init__(self, min_build: int, work_dir: str,
                 build_reader=windows_build,
                 program_lister=_installed_programs,
                 architecture: str | None = None,
                 download_timeout: int = 300):
        self.min_build = min_build
        self.work_dir = os.path.join(work_dir, 'prerequisites')
        self._build_reader = build_reader
        self._program_lister = program_lister
        self.architecture = architecture or machine_architecture()
        self.download_timeout = download_timeout

    def check(self) -> PrerequisiteResult:
        build = self._build_reader()
        if build < self.min_build:
            raise PrerequisiteError(
                f"Windows build {build} is not supported (minimum {self.min_build})"
            )
        logger.info("Windows build %d OK", build)

        present = self.vc_redist_installed()
        result = PrerequisiteResult(os_build=build, architecture=self.architecture,
                                    vc_redist_present=present)
        if present:
            logger.info("Visual C++ redistributable (%s) present", self.architecture)
            return result

        logger.warning("Visual C++ redistributable (%s) missing, installing",
                       self.architecture)
        self.install_vc_redist()
        result.remediated = True
        return result

    def check_or_exit(self) -> PrerequisiteResult:
        try:
            return self.check()
        except PrerequisiteError as e:
            logger.critical("Prerequisite check failed: %s", e)
            sys.exit(1)

    def vc_redist_installed(self) -> bool:
        patterns = [p.format(arch=self.architecture) for p in VC_REDIST_PATTERNS]
        for name in self._program_lister():
            if any(fnmatch.fnmatch(name, p) for p in patterns):
                return True
        return False

    def install_vc_redist(self):
        url = VC_REDIST_URL.format(arch=self.architecture)
        try:
            installer = download_file(url, self.work_dir,
                                      timeout=self.download_timeout)
        except RuntimeError as e:
            raise PrerequisiteError(f"Visual C++ redistributable download failed: {e}") from e

        try:
            result = subprocess.run(
                [installer, '/quiet', '/norestart'],
                capture_output=True, timeout=1800,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise PrerequisiteError(f"Visual C++ redistributable installer failed: {e}") from e
        finally:
            remove_quietly(installer)

        if result.returncode not in INSTALLER_OK_CODES:
            raise PrerequisiteError(
                f"Visual C++ redistributable installer exited with {result.returncode}"
            )
        logger.info("Visual C++ redistributable (%s) installed", self.architecture)
