"""Exception types raised by the maintenance engine."""


class WingetKeeperError(Exception):
    """Base class for all engine errors."""


class UpstreamUnavailable(WingetKeeperError):
    """Release feed unreachable or returned something unusable."""


class ArtifactNotFound(UpstreamUnavailable):
    """Latest release lists no asset with the expected bundle extension."""


class PrerequisiteError(WingetKeeperError):
    """OS build or runtime prerequisite cannot be satisfied."""


class InstallError(WingetKeeperError):
    """An installer or provisioning call failed."""


class SettingsError(WingetKeeperError, ValueError):
    """Unknown policy key or a value that violates its constraint."""
