"""Hidden PowerShell invocation."""

import logging
import subprocess

from wingetkeeper.core.errors import InstallError

logger = logging.getLogger(__name__)

POWERSHELL = 'powershell.exe'

# Only defined on Windows
_NO_WINDOW = getattr(subprocess, 'CREATE_NO_WINDOW', 0)


def run_powershell(script: str, timeout: int = 600) -> str:
    """Run script and return its stdout. Raises InstallError on failure."""
    cmd = [POWERSHELL, '-NoProfile', '-NonInteractive',
           '-ExecutionPolicy', 'Bypass', '-Command', script]
    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, timeout=timeout,
            creationflags=_NO_WINDOW,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise InstallError(f"PowerShell failed to run: {e}") from e

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or '').strip()
        raise InstallError(
            f"PowerShell exited with {result.returncode}: {detail}"
        )
    return result.stdout


def quote(value: str) -> str:
    """Single-quoted PowerShell string literal."""
    return "'" + value.replace("'", "''") + "'"
