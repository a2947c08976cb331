"""Maintenance engine data models."""

import re
from dataclasses import dataclass
from enum import Enum

from packaging.version import Version, InvalidVersion

# Anything before the first digit of a release tag ("v1.7.10861" -> "1.7.10861")
_TAG_PREFIX = re.compile(r'^[^0-9]*')


def parse_version(text: str | None) -> Version | None:
    """Parse a version string after stripping a leading non-numeric prefix.

    Returns None for empty or unparseable input.
    """
    if not text:
        return None
    cleaned = _TAG_PREFIX.sub('', text.strip())
    try:
        return Version(cleaned)
    except InvalidVersion:
        return None


class InstallState(Enum):
    ABSENT = "Absent"
    CURRENT = "Current"
    OUTDATED = "Outdated"
    UPDATING = "Updating"
    FAILED = "Failed"


@dataclass(frozen=True)
class ReleaseInfo:
    """Latest upstream release and the bundle to install it from."""

    version: Version
    artifact_uri: str       # browser_download_url of the bundle asset
    tag: str = ""
    artifact_name: str = ""


@dataclass(frozen=True)
class InstalledState:
    """Local package manager install, sampled at call time."""

    present: bool
    version: Version | None = None

    @staticmethod
    def absent() -> 'InstalledState':
        return InstalledState(present=False)


@dataclass
class PrerequisiteResult:
    """Outcome of a successful prerequisite check."""

    os_build: int
    architecture: str
    vc_redist_present: bool     # already installed before the check ran
    remediated: bool = False    # redistributable installed by this check
