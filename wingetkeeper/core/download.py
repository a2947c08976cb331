"""Streaming artifact download into the working directory."""

import logging
import os
from urllib.error import URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from wingetkeeper.branding import AppBranding

logger = logging.getLogger(__name__)

# Buffer size for streaming downloads (80 KB)
DOWNLOAD_BUFFER = 81920


def artifact_filename(url: str, fallback: str = "download.bin") -> str:
    name = os.path.basename(urlparse(url).path)
    return name or fallback


def download_file(url: str, dest_dir: str, filename: str | None = None,
                  timeout: int = 300) -> str:
    """Download url into dest_dir and return the file path.

    A partial file is removed before the error is raised.
    """
    os.makedirs(dest_dir, exist_ok=True)
    path = os.path.join(dest_dir, filename or artifact_filename(url))

    req = Request(url, headers={'User-Agent': AppBranding.user_agent()})
    logger.info("Downloading %s", url)
    try:
        with urlopen(req, timeout=timeout) as resp:
            with open(path, 'wb') as f:
                while True:
                    chunk = resp.read(DOWNLOAD_BUFFER)
                    if not chunk:
                        break
                    f.write(chunk)
    except (URLError, OSError) as e:
        remove_quietly(path)
        raise RuntimeError(f"Download failed: {e}") from e

    logger.info("Saved %s (%d bytes)", path, os.path.getsize(path))
    return path


def remove_quietly(path: str):
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning("Could not delete %s: %s", path, e)
