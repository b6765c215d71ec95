"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")
    health_check_endpoint: str = Field(
        default="/healthz",
        description="Extra health route polled by the hosting platform.",
    )

    # Recording capability tokens
    recording_token_secret: str | None = Field(
        default=None,
        description="HMAC secret for stream tokens. Falls back to TWILIO_AUTH_TOKEN.",
    )

    # Twilio (Voice + recordings)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_api_key_sid: str | None = Field(default=None)
    twilio_api_key_secret: str | None = Field(default=None)
    twilio_twiml_app_sid: str | None = Field(
        default=None,
        description="TwiML application used by browser dialer voice tokens.",
    )
    twilio_api_base_url: str = Field(default="https://api.twilio.com")
    voice_token_ttl_seconds: int = Field(default=3600, ge=60)

    # Base44 record store
    base44_app_id: str | None = Field(default=None)
    base44_admin_email: str | None = Field(default=None)
    base44_admin_password: str | None = Field(default=None)
    base44_base_url: str = Field(default="https://base44.app")
    record_store_session_ttl_seconds: float = Field(
        default=50 * 60,
        gt=0,
        description="How long a record store login is reused before logging in again.",
    )

    # Upstream streaming
    upstream_connect_timeout_seconds: float = Field(default=10.0, gt=0)
    upstream_read_timeout_seconds: float = Field(default=60.0, gt=0)
    upstream_resolution_timeout_seconds: float | None = Field(
        default=None,
        description="Optional cap on token resolution plus opening the upstream stream.",
    )
    disconnect_poll_interval_seconds: float = Field(default=0.1, gt=0)

    @field_validator(
        "recording_token_secret",
        "twilio_account_sid",
        "twilio_auth_token",
        "twilio_api_key_sid",
        "twilio_api_key_secret",
        "twilio_twiml_app_sid",
        "base44_app_id",
        "base44_admin_email",
        "base44_admin_password",
        mode="before",
    )
    @classmethod
    def blank_as_unset(cls, value: str | None) -> str | None:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @property
    def token_secret(self) -> str | None:
        return self.recording_token_secret or self.twilio_auth_token


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
