"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development; credentials
default to None, which leaves the matching channel unconfigured.

Secrets are typed SecretStr so they never render in logs, reprs or
error reports. The settings object is frozen: it is built once at
process start and handed to the dispatcher, channels and tracker.

Usage:
    from backend.app.core.config import get_settings
    settings = get_settings()
    print(settings.RATE_LIMIT_QUOTA)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Channel identifiers understood by the dispatcher
KNOWN_CHANNELS = ("api", "smtp", "sms", "push")


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # ── Application ──
    APP_NAME: str = "SafeGenie SOS"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Delivery ──
    CHANNEL_ORDER: List[str] = ["api", "smtp", "sms", "push"]
    CHANNEL_TIMEOUT_SECONDS: float = 10.0
    DRY_RUN: bool = False  # channels simulate acceptance
    SENDER_EMAIL: Optional[str] = None

    # ── Transactional email API (SendGrid v3) ──
    SENDGRID_API_KEY: Optional[SecretStr] = None
    SENDGRID_API_URL: str = "https://api.sendgrid.com/v3/mail/send"

    # ── SMTP relay ──
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[SecretStr] = None
    SMTP_STARTTLS: bool = True

    # ── SMS gateway (Twilio) ──
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[SecretStr] = None
    TWILIO_FROM_NUMBER: Optional[str] = None
    TWILIO_API_BASE_URL: str = "https://api.twilio.com/2010-04-01"

    # ── Push notifications (FCM) ──
    FCM_SERVER_KEY: Optional[SecretStr] = None
    FCM_API_URL: str = "https://fcm.googleapis.com/fcm/send"

    # ── Request validation ──
    MIN_RECIPIENTS: int = 1
    MAX_RECIPIENTS: int = 50
    MAX_MESSAGE_LENGTH: int = 5000

    # ── Rate limiting ──
    RATE_LIMIT_QUOTA: int = 20
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0

    # ── Location tracking ──
    GEOLOCATION_PROVIDER: str = "none"  # none | static | ip
    GEOLOCATION_URL: str = "http://ip-api.com/json"
    STATIC_LATITUDE: Optional[float] = None
    STATIC_LONGITUDE: Optional[float] = None
    LOCATION_RETENTION_SECONDS: float = 30 * 60
    LOCATION_SAMPLE_INTERVAL_SECONDS: float = 3 * 60
    LOCATION_ACQUIRE_TIMEOUT_SECONDS: float = 15.0

    # ── Monitoring ──
    SENTRY_DSN: Optional[SecretStr] = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0

    @field_validator("CHANNEL_ORDER")
    @classmethod
    def _known_channels(cls, value: List[str]) -> List[str]:
        unknown = [c for c in value if c not in KNOWN_CHANNELS]
        if unknown:
            raise ValueError(
                f"Unknown channel(s) {unknown}; expected any of {list(KNOWN_CHANNELS)}"
            )
        if len(set(value)) != len(value):
            raise ValueError("CHANNEL_ORDER must not repeat a channel")
        return value

    @field_validator(
        "CHANNEL_TIMEOUT_SECONDS",
        "RATE_LIMIT_WINDOW_SECONDS",
        "LOCATION_RETENTION_SECONDS",
        "LOCATION_SAMPLE_INTERVAL_SECONDS",
        "LOCATION_ACQUIRE_TIMEOUT_SECONDS",
    )
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("RATE_LIMIT_QUOTA", "MIN_RECIPIENTS", "MAX_RECIPIENTS", "MAX_MESSAGE_LENGTH")
    @classmethod
    def _positive_count(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("GEOLOCATION_PROVIDER")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        value = value.lower()
        if value not in ("none", "static", "ip"):
            raise ValueError("GEOLOCATION_PROVIDER must be none, static or ip")
        return value

    @model_validator(mode="after")
    def _recipient_bounds(self) -> "Settings":
        if self.MIN_RECIPIENTS > self.MAX_RECIPIENTS:
            raise ValueError("MIN_RECIPIENTS cannot exceed MAX_RECIPIENTS")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
