from datetime import date, datetime, timedelta, timezone

import pytest

from config import (
    CLICKUP_API_BASE,
    MIN_REFRESH_INTERVAL_SECONDS,
    DashboardConfig,
    Settings,
    resolve_api_base,
    to_iso8601,
)


def _settings(**overrides) -> Settings:
    values = {
        "CLICKUP_API_TOKEN": None,
        "CLICKUP_LIST_ID": None,
        "CLICKUP_API_BASE_URL": None,
        "ENVIRONMENT": "production",
        "FRONTEND_URL": "http://localhost:5173",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_explicit_api_base_wins_and_loses_trailing_slash() -> None:
    source = _settings(CLICKUP_API_BASE_URL=" https://proxy.internal/clickup/ ", ENVIRONMENT="development")

    assert resolve_api_base(source) == "https://proxy.internal/clickup"


def test_development_uses_dev_proxy_path() -> None:
    source = _settings(ENVIRONMENT="development", FRONTEND_URL="http://localhost:5173/")

    assert resolve_api_base(source) == "http://localhost:5173/clickup-api"


def test_production_uses_public_host() -> None:
    assert resolve_api_base(_settings()) == CLICKUP_API_BASE
    assert resolve_api_base(_settings(CLICKUP_API_BASE_URL="   ")) == CLICKUP_API_BASE


def test_dashboard_config_from_settings_cleans_values() -> None:
    source = _settings(
        CLICKUP_API_TOKEN=" pk_123 ",
        CLICKUP_LIST_ID="901",
        CLICKUP_TAGS_FIELD_ID="",
        CLICKUP_DEADLINE_FIELD_ID="cf-deadline",
        CLICKUP_PAGE_SIZE=0,
        REFRESH_INTERVAL_SECONDS=30,
    )

    config = DashboardConfig.from_settings(source)

    assert config.api_token == "pk_123"
    assert config.list_id == "901"
    assert config.api_base == CLICKUP_API_BASE
    assert config.tags_field_id is None
    assert config.deadline_field_id == "cf-deadline"
    assert config.page_size == 1
    assert config.refresh_interval_seconds == 30
    assert config.missing_settings() == []


def test_missing_settings_names_each_unset_value() -> None:
    assert DashboardConfig(api_token=None, list_id=None).missing_settings() == [
        "CLICKUP_API_TOKEN",
        "CLICKUP_LIST_ID",
    ]
    assert DashboardConfig(api_token="pk", list_id="").missing_settings() == ["CLICKUP_LIST_ID"]


def test_to_iso8601_renders_utc_milliseconds() -> None:
    offset = timezone(timedelta(hours=2))

    assert to_iso8601(None) is None
    assert to_iso8601(datetime(2024, 3, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)) == "2024-03-01T12:00:00.250Z"
    assert to_iso8601(datetime(2024, 3, 1, 14, 0, tzinfo=offset)) == "2024-03-01T12:00:00.000Z"
    assert to_iso8601(date(2024, 3, 1)) == "2024-03-01"


def test_refresh_interval_is_clamped_from_settings() -> None:
    for interval in (0, -5, 0.001):
        config = DashboardConfig.from_settings(_settings(REFRESH_INTERVAL_SECONDS=interval))
        assert config.refresh_interval_seconds == MIN_REFRESH_INTERVAL_SECONDS


def test_dashboard_config_rejects_non_positive_interval_and_page_size() -> None:
    with pytest.raises(ValueError):
        DashboardConfig(api_token="pk", list_id="L1", refresh_interval_seconds=0)
    with pytest.raises(ValueError):
        DashboardConfig(api_token="pk", list_id="L1", refresh_interval_seconds=-1)
    with pytest.raises(ValueError):
        DashboardConfig(api_token="pk", list_id="L1", page_size=0)


def test_default_environment_calls_public_api(monkeypatch) -> None:
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.delenv("CLICKUP_API_BASE_URL", raising=False)

    source = Settings(_env_file=None)

    assert source.ENVIRONMENT == "production"
    assert resolve_api_base(source) == CLICKUP_API_BASE
