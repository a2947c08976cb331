"""Microsoft Store auto-download policy override and restore.

While the agent manages winget updates itself it switches off Store
auto-downloads. The value that was in place before the first override is
kept in StoreUpdatesOriginalValue so uninstall can put it back.
"""

import logging

logger = logging.getLogger(__name__)

STORE_POLICY_KEY = r"SOFTWARE\Policies\Microsoft\WindowsStore"
AUTO_DOWNLOAD = "AutoDownload"

# AutoDownload: 2 = always off, 4 = always on
AUTO_DOWNLOAD_OFF = 2
# Recorded when no policy existed; restore then removes the value
NOT_CONFIGURED = 0


def disable_store_auto_download(settings, policy_backend) -> bool:
    """Override AutoDownload to off, recording the previous value once.

    Returns True if the policy value changed.
    """
    current = policy_backend.read(AUTO_DOWNLOAD)
    settings.preserve_original(NOT_CONFIGURED if current is None else int(current))

    if current == AUTO_DOWNLOAD_OFF:
        return False
    policy_backend.write(AUTO_DOWNLOAD, AUTO_DOWNLOAD_OFF)
    logger.info("Store auto-download disabled (was %r)", current)
    return True


def restore_store_auto_download(settings, policy_backend) -> bool:
    """Put back the recorded AutoDownload value and forget it.

    Returns False when nothing was recorded.
    """
    original = settings.get('StoreUpdatesOriginalValue')
    if original is None:
        return False

    if int(original) == NOT_CONFIGURED:
        policy_backend.delete(AUTO_DOWNLOAD)
        logger.info("Store auto-download policy removed")
    else:
        policy_backend.write(AUTO_DOWNLOAD, int(original))
        logger.info("Store auto-download restored to %d", int(original))
    settings.unset('StoreUpdatesOriginalValue')
    return True
