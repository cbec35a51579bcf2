"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Jurist Mind configuration. All values come from environment variables."""

    # Inference API (chat + feedback)
    api_base_url: str = Field(default="https://juristmind.onrender.com")
    share_base_url: str = Field(default="https://chat.juristmind.com")
    request_timeout_seconds: float = Field(default=120.0)

    # Database
    database_path: Path = Field(default=Path("data/juristmind.db"))

    # Session state key for the local user agent
    device_key: str = Field(default="default")

    # Hosted auth (user email lookup)
    supabase_url: str = Field(default="")
    supabase_service_role_key: str = Field(default="")

    # Resend (transactional email)
    resend_api_key: str = Field(default="")
    resend_api_url: str = Field(default="https://api.resend.com/emails")
    reminder_from_address: str = Field(default="Jurist Mind <reminders@juristmind.com>")
    diary_url: str = Field(default="https://juristmind.com/diary")

    # Reminder scanner
    reminder_horizon_minutes: int = Field(default=20)
    reminder_interval_minutes: int = Field(default=10)
    reminder_claim_ttl_minutes: int = Field(default=15)
    scheduler_timezone: str = Field(default="UTC")

    # Invocation server
    server_port: int = Field(default=8443)
    cron_secret: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def ask_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/ask"

    @property
    def feedback_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/feedback"

    def share_url(self, chat_id: str) -> str:
        """Build the public URL for a shared conversation."""
        return f"{self.share_base_url.rstrip('/')}/chats/{chat_id}"


settings = Settings()
