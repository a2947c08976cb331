"""Centralized branding constants: single source of truth for version."""


class AppBranding:
    """Application identity constants."""

    APP_NAME = "Winget-AutoUpdate"
    PUBLISHER = "Romanitho"
    VERSION = "2.0.0"

    # Task Scheduler names, shared with the external registrar
    MAINTENANCE_TASK = "Winget-AutoUpdate"
    NOTIFY_TASK = "Winget-AutoUpdate-Notify"

    @classmethod
    def user_agent(cls) -> str:
        return f"{cls.APP_NAME}/{cls.VERSION}"

    @classmethod
    def registry_path(cls) -> str:
        return rf"SOFTWARE\{cls.PUBLISHER}\{cls.APP_NAME}"
