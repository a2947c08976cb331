"""Stopping processes that hold the DesktopAppInstaller package open."""

import logging

import psutil

logger = logging.getLogger(__name__)


class ProcessStopper:
    """Terminates running processes by executable name."""

    WINGET_PROCESSES = [
        'winget', 'windowspackagemanagerserver', 'appinstaller',
        'appinstallercli', 'desktopappinstaller',
    ]

    @staticmethod
    def _matches(name: str | None, targets: list[str]) -> bool:
        if not name:
            return False
        stem = name.lower()
        if stem.endswith('.exe'):
            stem = stem[:-4]
        return stem in targets

    @staticmethod
    def stop(names: list[str] | None = None, timeout: float = 10) -> int:
        """Terminate matching processes, killing any that outlive timeout.

        Returns the number of processes stopped.
        """
        targets = [n.lower() for n in (names or ProcessStopper.WINGET_PROCESSES)]
        victims = []
        for proc in psutil.process_iter(['name']):
            if ProcessStopper._matches(proc.info.get('name'), targets):
                try:
                    proc.terminate()
                    victims.append(proc)
                except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
                    logger.warning("Could not stop %s: %s", proc.info.get('name'), e)

        if not victims:
            return 0

        _gone, alive = psutil.wait_procs(victims, timeout=timeout)
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
        logger.info("Stopped %d winget-related processes", len(victims))
        return len(victims)
