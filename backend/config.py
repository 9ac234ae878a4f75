"""Settings for the task wall, read from the environment and an optional .env file."""

from dataclasses import dataclass
from datetime import date, datetime, timezone
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


CLICKUP_API_BASE: str = "https://api.clickup.com/api/v2"
DEV_PROXY_PATH: str = "/clickup-api"
MIN_REFRESH_INTERVAL_SECONDS: float = 1.0


def to_iso8601(dt: datetime | date | None) -> str | None:
    """
    Render a timestamp the way displays expect it in JSON payloads.

    Datetimes are rendered in UTC with millisecond precision and a 'Z'
    suffix; naive datetimes are assumed to already be UTC.
    Plain dates are rendered as YYYY-MM-DD.

    Usage:
        "due_date": to_iso8601(task.due_date)
    """
    if dt is None:
        return None
    if isinstance(dt, datetime):
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
        return f"{dt.strftime('%Y-%m-%dT%H:%M:%S')}.{dt.microsecond // 1000:03d}Z"
    return dt.isoformat()

# Find .env file - check current dir, then parent (for when running from backend/)
_env_file = Path(".env")
if not _env_file.exists():
    _env_file = Path("../.env")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ClickUp access
    CLICKUP_API_TOKEN: Optional[str] = None
    CLICKUP_LIST_ID: Optional[str] = None
    CLICKUP_API_BASE_URL: Optional[str] = None  # Overrides the resolved API base

    # Custom field pins (opaque ids; name matching is used when unset)
    CLICKUP_TAGS_FIELD_ID: Optional[str] = None
    CLICKUP_PROJECT_FIELD_ID: Optional[str] = None
    CLICKUP_DEADLINE_FIELD_ID: Optional[str] = None

    # Polling
    CLICKUP_PAGE_SIZE: int = 100
    REFRESH_INTERVAL_SECONDS: float = 60.0

    # App
    # "development" routes ClickUp calls through the frontend dev server's
    # /clickup-api proxy (not part of this backend); anything else calls
    # the public API directly unless CLICKUP_API_BASE_URL is set.
    ENVIRONMENT: str = "production"
    FRONTEND_URL: str = "http://localhost:5173"

    class Config:
        env_file = str(_env_file)
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars from shared .env files


settings = Settings()

EXPECTED_ENV_VARS: tuple[str, ...] = (
    "CLICKUP_API_TOKEN",
    "CLICKUP_LIST_ID",
    "CLICKUP_API_BASE_URL",
    "CLICKUP_TAGS_FIELD_ID",
    "CLICKUP_PROJECT_FIELD_ID",
    "CLICKUP_DEADLINE_FIELD_ID",
    "ENVIRONMENT",
    "FRONTEND_URL",
)


def log_missing_env_vars(logger: logging.Logger) -> None:
    """Log debug warnings for expected environment variables that are unset."""
    for var_name in EXPECTED_ENV_VARS:
        value = os.environ.get(var_name)
        if value is None or value == "":
            logger.debug(
                "Warning: expected environment variable %s is not set.",
                var_name,
            )


def resolve_api_base(source: Settings) -> str:
    """Pick the ClickUp API base: explicit override, dev proxy, or public host."""
    configured = source.CLICKUP_API_BASE_URL
    if isinstance(configured, str) and configured.strip():
        return configured.strip().rstrip("/")

    if source.ENVIRONMENT.lower() == "development":
        return f"{source.FRONTEND_URL.rstrip('/')}{DEV_PROXY_PATH}"

    return CLICKUP_API_BASE


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class DashboardConfig:
    """Everything the polling pipeline needs, resolved once at startup."""

    api_token: Optional[str]
    list_id: Optional[str]
    api_base: str = CLICKUP_API_BASE
    tags_field_id: Optional[str] = None
    project_field_id: Optional[str] = None
    deadline_field_id: Optional[str] = None
    page_size: int = 100
    refresh_interval_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {self.page_size}")
        if self.refresh_interval_seconds <= 0:
            raise ValueError(
                f"refresh_interval_seconds must be positive, got {self.refresh_interval_seconds}"
            )

    @classmethod
    def from_settings(cls, source: Settings) -> "DashboardConfig":
        return cls(
            api_token=_clean(source.CLICKUP_API_TOKEN),
            list_id=_clean(source.CLICKUP_LIST_ID),
            api_base=resolve_api_base(source),
            tags_field_id=_clean(source.CLICKUP_TAGS_FIELD_ID),
            project_field_id=_clean(source.CLICKUP_PROJECT_FIELD_ID),
            deadline_field_id=_clean(source.CLICKUP_DEADLINE_FIELD_ID),
            page_size=max(1, source.CLICKUP_PAGE_SIZE),
            refresh_interval_seconds=max(
                MIN_REFRESH_INTERVAL_SECONDS, source.REFRESH_INTERVAL_SECONDS
            ),
        )

    def missing_settings(self) -> list[str]:
        """Names of required settings that are not configured."""
        missing: list[str] = []
        if not self.api_token:
            missing.append("CLICKUP_API_TOKEN")
        if not self.list_id:
            missing.append("CLICKUP_LIST_ID")
        return missing
