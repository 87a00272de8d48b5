"""Runtime settings for the notifications engine, read from the environment.

Protean reads its own configuration (database provider, event store,
brokers) from its standard config files; this module covers the engine's
transports and scheduling knobs. Each field is read from the upper-cased
environment variable of the same name (``SMTP_PORT`` for ``smtp_port``).
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_TIME_OF_DAY = r"^([01]\d|2[0-3]):[0-5]\d$"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Email queue
    redis_url: str | None = None

    # Email transport
    email_adapter: str = "fake"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_from: str = "notifications@localhost"
    smtp_from_name: str = "HR Notifications"
    smtp_use_tls: bool = False

    # Webhook transport
    webhook_adapter: str = "fake"
    webhook_url: str | None = None
    webhook_secret: str | None = None
    webhook_max_retries: int = Field(default=3, ge=0)

    # Digest schedule (UTC)
    daily_digest_time: str = Field(default="09:00", pattern=_TIME_OF_DAY)
    weekly_digest_time: str = Field(default="09:00", pattern=_TIME_OF_DAY)

    # Links in emails
    app_url: str = "http://localhost:3000"
    app_name: str = "HR Platform"

    max_delivery_retries: int = Field(default=3, ge=1)

    @field_validator("email_adapter", "webhook_adapter")
    @classmethod
    def _normalize_adapter(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("redis_url", "smtp_user", "smtp_password", "webhook_url", "webhook_secret", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings (read once from the environment)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings():
    """Forget cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
