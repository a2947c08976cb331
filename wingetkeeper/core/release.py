"""Upstream release feed: latest winget release from GitHub Releases.

Nothing is cached: every resolve_latest() call hits the feed, so the result
always reflects upstream at call time.
"""

import json
import logging
from urllib.error import URLError
from urllib.request import Request, urlopen

from wingetkeeper.branding import AppBranding
from wingetkeeper.core.errors import ArtifactNotFound, UpstreamUnavailable
from wingetkeeper.core.models import ReleaseInfo, parse_version

logger = logging.getLogger(__name__)


class ReleaseResolver:
    """Resolves the latest tagged release and its installable bundle."""

    def __init__(self, github_repo: str, artifact_suffix: str = ".msixbundle",
                 timeout: int = 30):
        self.github_repo = github_repo
        self.artifact_suffix = artifact_suffix.lower()
        self.timeout = timeout

    @property
    def feed_url(self) -> str:
        return f"https://api.github.com/repos/{self.github_repo}/releases/latest"

    def fetch(self) -> dict:
        """Raw latest-release payload."""
        req = Request(self.feed_url, headers={
            'User-Agent': AppBranding.user_agent(),
            'Accept': 'application/vnd.github+json',
        })
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                payload = json.loads(resp.read().decode('utf-8'))
        except (URLError, OSError, ValueError) as e:
            raise UpstreamUnavailable(f"Release feed unavailable: {e}") from e

        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Release feed returned an unexpected payload")
        return payload

    def resolve_latest(self) -> ReleaseInfo:
        return self.parse_release(self.fetch())

    def parse_release(self, payload: dict) -> ReleaseInfo:
        """Build a ReleaseInfo from a GitHub release object."""
        tag = payload.get('tag_name') or ''
        if not isinstance(tag, str):
            raise UpstreamUnavailable(f"Release tag is not a string: {tag!r}")
        version = parse_version(tag)
        if version is None:
            raise UpstreamUnavailable(f"Release has no usable version tag: {tag!r}")

        assets = payload.get('assets') or []
        if not isinstance(assets, list):
            raise UpstreamUnavailable("Release assets is not a list")
        for asset in assets:
            if not isinstance(asset, dict):
                raise UpstreamUnavailable(f"Malformed release asset: {asset!r}")
            name = asset.get('name') or ''
            url = asset.get('browser_download_url') or ''
            if not isinstance(name, str) or not isinstance(url, str):
                raise UpstreamUnavailable(f"Malformed release asset: {asset!r}")
            if name.lower().endswith(self.artifact_suffix) and url:
                logger.info("Latest release %s: %s", version, name)
                return ReleaseInfo(version=version, artifact_uri=url,
                                   tag=tag, artifact_name=name)

        raise ArtifactNotFound(
            f"No *{self.artifact_suffix} asset in release {tag}"
        )
