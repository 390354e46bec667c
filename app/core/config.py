"""Application configuration loaded from environment variables."""

import json
from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Severity and status names accepted in NOTIFY_SEVERITIES / NOTIFY_STATUSES.
VALID_SEVERITY_NAMES = ("Low", "Medium", "High", "Critical", "Unknown")
VALID_STATUS_NAMES = ("New", "Notified", "Resolved", "Suppressed", "Unknown")


def _split_names(value: Any) -> Any:
    """Accept a JSON list or a comma-separated string for list settings."""
    if isinstance(value, str):
        s = value.strip()
        if s.startswith("["):
            return json.loads(s)
        return [part.strip() for part in s.split(",") if part.strip()]
    return value


def _canonical_names(values: list[str], allowed: tuple[str, ...], setting: str) -> list[str]:
    by_lower = {name.lower(): name for name in allowed}
    out: list[str] = []
    for v in values:
        name = by_lower.get((v or "").strip().lower())
        if name is None:
            raise ValueError(f"{setting} entries must be one of {list(allowed)}, got {v!r}")
        if name not in out:
            out.append(name)
    return out


class Settings(BaseSettings):
    """Validated application settings from env and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    APP_ENV: Literal["dev", "prod"] = "dev"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_V1_PREFIX: str = "/api/v1"

    # Slack Web API
    SLACK_API_URL: str = "https://slack.com/api/chat.postMessage"
    SLACK_REQUEST_TIMEOUT_SEC: float = 10.0
    SLACK_DEFAULT_CHANNEL: str = "#aws-security"
    # Per originating service -> channel, e.g. {"GuardDuty": "#gd-alerts"}
    SLACK_CHANNEL_OVERRIDES: dict[str, str] = {}

    # Credential lookup: "env" reads SLACK_BOT_TOKEN, "aws" reads Secrets Manager
    SECRET_BACKEND: Literal["env", "aws"] = "env"
    SLACK_TOKEN_SECRET_NAME: str = "slack-token"
    SLACK_BOT_TOKEN: SecretStr | None = None
    AWS_REGION: str | None = None

    # Notification policy
    NOTIFY_SEVERITIES: Annotated[list[str], NoDecode] = ["High", "Critical"]
    NOTIFY_STATUSES: Annotated[list[str], NoDecode] = ["New"]
    # Extra producer label spellings merged over the built-in tables (label -> canonical name)
    SEVERITY_LABEL_ALIASES: dict[str, str] = {}
    STATUS_LABEL_ALIASES: dict[str, str] = {}

    # Delivery retry
    DELIVERY_MAX_ATTEMPTS: int = 3
    DELIVERY_BACKOFF_BASE_SEC: float = 1.0
    DELIVERY_BACKOFF_MAX_SEC: float = 30.0
    # Longest Retry-After hint waited out; a longer hint ends retrying for that message
    DELIVERY_RETRY_AFTER_MAX_SEC: float = 120.0

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = (v or "").strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return level

    @field_validator("SLACK_API_URL")
    @classmethod
    def validate_slack_api_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("SLACK_API_URL must be set and non-empty")
        s = v.strip().lower()
        if not (s.startswith("http://") or s.startswith("https://")):
            raise ValueError(
                "SLACK_API_URL must use http or https (e.g. https://slack.com/api/chat.postMessage)"
            )
        return v.strip()

    @field_validator("SLACK_REQUEST_TIMEOUT_SEC")
    @classmethod
    def validate_slack_timeout(cls, v: float) -> float:
        if v <= 0 or v > 60:
            raise ValueError(
                "SLACK_REQUEST_TIMEOUT_SEC must be greater than 0 and at most 60"
            )
        return v

    @field_validator("SLACK_DEFAULT_CHANNEL")
    @classmethod
    def validate_default_channel(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("SLACK_DEFAULT_CHANNEL must be set and non-empty")
        return v.strip()

    @field_validator("SLACK_CHANNEL_OVERRIDES")
    @classmethod
    def validate_channel_overrides(cls, v: dict[str, str]) -> dict[str, str]:
        for service, channel in v.items():
            if not service or not service.strip():
                raise ValueError("SLACK_CHANNEL_OVERRIDES keys must be non-empty service names")
            if not isinstance(channel, str) or not channel.strip():
                raise ValueError(
                    f"SLACK_CHANNEL_OVERRIDES channel for {service!r} must be a non-empty string"
                )
        return {k.strip(): c.strip() for k, c in v.items()}

    @field_validator("SLACK_TOKEN_SECRET_NAME")
    @classmethod
    def validate_secret_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("SLACK_TOKEN_SECRET_NAME must be set and non-empty")
        return v.strip()

    @field_validator("NOTIFY_SEVERITIES", mode="before")
    @classmethod
    def split_severities(cls, v: Any) -> Any:
        return _split_names(v)

    @field_validator("NOTIFY_SEVERITIES")
    @classmethod
    def validate_severities(cls, v: list[str]) -> list[str]:
        return _canonical_names(v, VALID_SEVERITY_NAMES, "NOTIFY_SEVERITIES")

    @field_validator("NOTIFY_STATUSES", mode="before")
    @classmethod
    def split_statuses(cls, v: Any) -> Any:
        return _split_names(v)

    @field_validator("NOTIFY_STATUSES")
    @classmethod
    def validate_statuses(cls, v: list[str]) -> list[str]:
        return _canonical_names(v, VALID_STATUS_NAMES, "NOTIFY_STATUSES")

    @field_validator("SEVERITY_LABEL_ALIASES")
    @classmethod
    def validate_severity_aliases(cls, v: dict[str, str]) -> dict[str, str]:
        canonical = _canonical_names(list(v.values()), VALID_SEVERITY_NAMES, "SEVERITY_LABEL_ALIASES")
        by_lower = {name.lower(): name for name in canonical}
        return {label.strip().lower(): by_lower[target.strip().lower()] for label, target in v.items()}

    @field_validator("STATUS_LABEL_ALIASES")
    @classmethod
    def validate_status_aliases(cls, v: dict[str, str]) -> dict[str, str]:
        canonical = _canonical_names(list(v.values()), VALID_STATUS_NAMES, "STATUS_LABEL_ALIASES")
        by_lower = {name.lower(): name for name in canonical}
        return {label.strip().lower(): by_lower[target.strip().lower()] for label, target in v.items()}

    @field_validator("DELIVERY_MAX_ATTEMPTS")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("DELIVERY_MAX_ATTEMPTS must be between 1 and 10")
        return v

    @field_validator("DELIVERY_BACKOFF_BASE_SEC")
    @classmethod
    def validate_backoff_base(cls, v: float) -> float:
        if v < 0 or v > 60:
            raise ValueError("DELIVERY_BACKOFF_BASE_SEC must be between 0 and 60")
        return v

    @field_validator("DELIVERY_BACKOFF_MAX_SEC")
    @classmethod
    def validate_backoff_max(cls, v: float) -> float:
        if v < 0 or v > 300:
            raise ValueError("DELIVERY_BACKOFF_MAX_SEC must be between 0 and 300")
        return v

    @field_validator("DELIVERY_RETRY_AFTER_MAX_SEC")
    @classmethod
    def validate_retry_after_max(cls, v: float) -> float:
        if v < 0 or v > 900:
            raise ValueError("DELIVERY_RETRY_AFTER_MAX_SEC must be between 0 and 900")
        return v


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance (safe to call from dependencies)."""
    return Settings()


settings = get_settings()
