"""Client settings and logging configuration."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from potencialize_sdk.types import AuthMode

SENSITIVE_KEYS = {
    "access_token",
    "authorization",
    "cookie",
    "password",
    "refresh_token",
    "set_cookie",
    "token",
    "x_csrf_token",
}
REDACTED = "***REDACTED***"

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "potencialize-sdk"}


class Settings(BaseSettings):
    """Client settings loaded from ``POTENCIALIZE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="POTENCIALIZE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_base_url: AnyHttpUrl = Field(description="API root, e.g. http://127.0.0.1:5000/api/v1")
    auth_mode: AuthMode = "bearer"
    storage_path: Path = Path("~/.potencialize/credentials.json")
    timeout_seconds: float = Field(default=10.0, gt=0)
    environment: Literal["development", "staging", "production"] = "development"
    service: str = "potencialize-sdk"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("storage_path")
    @classmethod
    def expand_storage_path(cls, value: Path) -> Path:
        """Expand ``~`` so the storage file lands in the user's home directory."""
        return value.expanduser()

    @property
    def base_url(self) -> str:
        """API root without a trailing slash."""
        return str(self.api_base_url).rstrip("/")


def _is_sensitive_key(key: str) -> bool:
    """Return True when key likely carries credential material."""
    normalized = key.lower().replace("-", "_")
    if normalized in SENSITIVE_KEYS:
        return True
    return "token" in normalized or "password" in normalized or "secret" in normalized


def redact_credentials(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credential-bearing values before rendering."""
    for key in list(event_dict):
        if key == "event":
            continue
        value = event_dict[key]
        if _is_sensitive_key(key):
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = redact_credentials(None, "", dict(value))
    return event_dict


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: Settings) -> None:
    """Configure structlog for JSON output with credential redaction."""
    _LOG_CONTEXT["environment"] = settings.environment
    _LOG_CONTEXT["service"] = settings.service

    log_level = getattr(logging, settings.log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            redact_credentials,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache client settings from environment variables."""
    return Settings()
