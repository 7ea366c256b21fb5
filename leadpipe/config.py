"""
config.py
Runtime settings for the daily operations service.

Every value can be overridden through an environment variable of the same
name (case-insensitive) or a ``.env`` file in the working directory, e.g.
``CRON_SECRET=...`` or ``DATABASE_URL=postgresql+psycopg2://...``.
"""

from functools import lru_cache
from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Deployment configuration (secrets, sender identity, connection strings)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Default points at the `db` service in Docker
    database_url: str = "postgresql+psycopg2://postgres:postgres@db:5432/leadpipe"

    # Shared secret the scheduler sends as `Authorization: Bearer <secret>`
    cron_secret: SecretStr = SecretStr("")

    # Resend transactional email
    resend_api_key: SecretStr = SecretStr("")
    resend_base_url: str = "https://api.resend.com"
    email_from: str = "Leadpipe <noreply@leadpipe.app>"
    email_timeout: float = 10.0

    dashboard_url: str = "https://leadpipe.app"

    # Service account JSON (raw string) for the Sheets API
    google_service_account_key: Optional[SecretStr] = None

    # Display timezone for lead timestamps in digest emails
    digest_timezone: str = "Asia/Seoul"

    # How far ahead of period end the "expiring soon" notice goes out
    expiry_warning_days: int = 7

    log_level: str = "INFO"
    structured_logging: bool = False

    @property
    def leads_dashboard_url(self) -> str:
        return self.dashboard_url.rstrip("/") + "/dashboard/leads"


@lru_cache
def get_settings() -> Settings:
    """Construct settings once per process from the environment / ``.env`` file."""
    return Settings()
