"""Agent runtime configuration: persistence via JSON."""

import json
import logging
import os
from dataclasses import dataclass, asdict

from wingetkeeper.branding import AppBranding

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.join(
    os.environ.get('ProgramData', '.'), AppBranding.APP_NAME
)

# Windows 10 1809, first build with the AppX provisioning winget needs
MIN_OS_BUILD = 17763


@dataclass
class AgentConfig:
    """Runtime knobs for one maintenance pass.

    Operator policy (notification level, schedule, ...) is not here; it lives
    in the machine-wide settings store, see wingetkeeper.config.policy.
    """
    # Paths
    data_dir: str = ""
    work_dir: str = ""                  # downloaded artifacts, wiped after use

    # Upstream
    github_repo: str = "microsoft/winget-cli"
    artifact_suffix: str = ".msixbundle"
    feed_timeout: int = 30              # seconds
    download_timeout: int = 300         # seconds

    # Prerequisites
    min_os_build: int = MIN_OS_BUILD

    # Store-triggered update polling
    wait_seconds: int = 600             # 10 minutes
    poll_interval: int = 30

    # 'registry' on managed endpoints, 'json' for development
    settings_backend: str = "registry"

    # Switch off Store auto-download while this agent manages winget
    disable_store_updates: bool = True

    def __post_init__(self):
        if not self.data_dir:
            self.data_dir = DEFAULT_DATA_DIR
        if not self.work_dir:
            self.work_dir = os.path.join(self.data_dir, 'work')

    @property
    def log_dir(self) -> str:
        return os.path.join(self.data_dir, 'logs')

    @property
    def settings_file(self) -> str:
        return os.path.join(self.data_dir, 'policy.json')

    @staticmethod
    def load(path: str | None = None) -> 'AgentConfig':
        """Load config from JSON. Returns defaults if file doesn't exist."""
        if path is None:
            path = os.path.join(DEFAULT_DATA_DIR, 'agent.json')

        if not os.path.isfile(path):
            logger.info("No agent config at %s, using defaults", path)
            return AgentConfig()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            config = AgentConfig(**{k: v for k, v in data.items()
                                    if k in AgentConfig.__dataclass_fields__})
            logger.info("Loaded agent config from %s", path)
            return config
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Failed to load agent config: %s", e)
            return AgentConfig()

    def save(self, path: str | None = None):
        """Save config to JSON."""
        if path is None:
            path = os.path.join(self.data_dir, 'agent.json')

        os.makedirs(os.path.dirname(path), exist_ok=True)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(asdict(self), f, indent=2)
            logger.info("Saved agent config to %s", path)
        except OSError as e:
            logger.warning("Failed to save agent config: %s", e)

    def ensure_dirs(self):
        """Create data directories if they don't exist."""
        os.makedirs(self.data_dir, exist_ok=True)
        os.makedirs(self.log_dir, exist_ok=True)
        os.makedirs(self.work_dir, exist_ok=True)
