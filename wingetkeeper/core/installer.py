"""winget install/update reconciliation.

State machine:
  Absent   -> Updating (side-load the release bundle) -> Current | Failed
  Outdated -> Updating (Store update scan, then poll)  -> Current | Failed
  Current  -> nothing to do

Everything here runs after prerequisites passed, so failures are logged and
returned as InstallState.FAILED; the next scheduled run retries.
"""

import logging
import os
import time

from packaging.version import Version

from wingetkeeper.core.download import download_file, remove_quietly
from wingetkeeper.core.errors import InstallError, UpstreamUnavailable
from wingetkeeper.core.models import InstallState, InstalledState, ReleaseInfo
from wingetkeeper.system.processes import ProcessStopper

logger = logging.getLogger(__name__)

POLL_INTERVAL = 30          # seconds between version samples
DEFAULT_WAIT = 10 * 60      # seconds


class InstallOrchestrator:
    """Brings the local winget install up to the latest upstream release."""

    def __init__(self, resolver, inventory, provisioner, work_dir: str,
                 wait_seconds: int = DEFAULT_WAIT,
                 poll_interval: int = POLL_INTERVAL,
                 download_timeout: int = 300,
                 stopper=ProcessStopper.stop,
                 sleep=time.sleep):
        self._resolver = resolver
        self._inventory = inventory
        self._provisioner = provisioner
        self.work_dir = work_dir
        self.wait_seconds = wait_seconds
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.poll_interval = poll_interval
        self.download_timeout = download_timeout
        self._stopper = stopper
        self._sleep = sleep
        self.state: InstallState | None = None     # nothing observed yet

    def installed_state(self) -> InstalledState:
        return self._inventory.installed_state()

    @staticmethod
    def evaluate(installed: InstalledState, latest: Version) -> InstallState:
        if not installed.present:
            return InstallState.ABSENT
        if installed.version is not None and installed.version >= latest:
            return InstallState.CURRENT
        return InstallState.OUTDATED

    def reconcile(self, stop_processes: bool = False,
                  target_version: Version | None = None,
                  wait_seconds: int | None = None) -> InstallState:
        """Run one reconciliation pass and return the resulting state."""
        try:
            release = self._resolver.resolve_latest()
        except UpstreamUnavailable as e:
            logger.error("Cannot determine target winget version: %s", e)
            self.state = InstallState.FAILED
            return self.state

        installed = self.installed_state()
        self.state = self.evaluate(installed, release.version)
        logger.info("winget installed=%s latest=%s -> %s",
                    installed.version if installed.present else "none",
                    release.version, self.state.value)

        if self.state is InstallState.ABSENT:
            self.state = self.side_load(release)
        elif self.state is InstallState.OUTDATED:
            self.state = self.store_update(
                target_version or release.version,
                stop_processes=stop_processes,
                wait_seconds=self.wait_seconds if wait_seconds is None else wait_seconds,
            )
        return self.state

    def side_load(self, release: ReleaseInfo) -> InstallState:
        """Download and provision the release bundle directly."""
        self.state = InstallState.UPDATING
        filename = release.artifact_name or None
        path = os.path.join(self.work_dir, filename) if filename else None
        try:
            path = download_file(release.artifact_uri, self.work_dir,
                                 filename=filename, timeout=self.download_timeout)
            self._provisioner.provision(path)
        except (RuntimeError, InstallError, OSError) as e:
            logger.error("winget side-load failed: %s", e)
            return InstallState.FAILED
        finally:
            if path:
                remove_quietly(path)

        if not self.installed_state().present:
            logger.error("winget still not found after side-load")
            return InstallState.FAILED
        logger.info("winget %s installed", release.version)
        return InstallState.CURRENT

    def store_update(self, target: Version, stop_processes: bool = False,
                     wait_seconds: int = DEFAULT_WAIT) -> InstallState:
        """Trigger the Store update and wait for the target version."""
        self.state = InstallState.UPDATING
        if stop_processes:
            self._stopper()

        try:
            self._provisioner.trigger_update_scan()
        except InstallError as e:
            logger.error("%s", e)
            return InstallState.FAILED

        if self.wait_for_version(target, wait_seconds):
            logger.info("winget updated to %s", target)
            return InstallState.CURRENT
        logger.error("winget did not reach %s within %d seconds", target, wait_seconds)
        return InstallState.FAILED

    def wait_for_version(self, target: Version, wait_seconds: int) -> bool:
        """Poll the inventory every poll_interval until target or the budget runs out.

        Sleeps at most ceil(wait_seconds / poll_interval) times.
        """
        remaining = wait_seconds
        while True:
            installed = self.installed_state()
            if installed.version is not None and installed.version >= target:
                return True
            if remaining <= 0:
                return False
            logger.info("Waiting for winget %s (installed %s, %ds left)",
                        target, installed.version, remaining)
            self._sleep(self.poll_interval)
            remaining -= self.poll_interval
