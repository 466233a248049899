"""
Tests for application configuration.
"""

import os
from unittest.mock import patch

from app.config import Settings, get_settings


def test_settings_loads_defaults():
    """Settings should load with sensible defaults."""
    get_settings.cache_clear()

    with patch.dict(os.environ, {"ENVIRONMENT": "development"}, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.environment == "development"
        assert settings.is_development is True
        assert settings.is_production is False
        assert settings.jwt_algorithm == "HS256"
        assert settings.alert_roas_drop_percent == 20.0
        assert settings.alert_burn_rate == 1.3
        get_settings.cache_clear()


def test_settings_cors_origins_split():
    """Comma-separated CORS origins should be split into a list."""
    get_settings.cache_clear()

    with patch.dict(
        os.environ,
        {"CORS_ORIGINS": "http://localhost:3000, http://example.com"},
        clear=False,
    ):
        get_settings.cache_clear()
        origins = get_settings().cors_origins
        assert origins == ["http://localhost:3000", "http://example.com"]
        get_settings.cache_clear()


def test_production_flag():
    settings = Settings(environment="Production")
    assert settings.is_production is True
    assert settings.is_development is False


def test_integrations_not_configured_without_credentials():
    settings = Settings(
        openai_api_key=None,
        google_ads_client_id="id",
        google_ads_client_secret="secret",
        google_ads_developer_token=None,
    )
    assert settings.ai_configured is False
    assert settings.google_ads_configured is False


def test_integrations_configured_with_credentials():
    settings = Settings(
        openai_api_key="sk-test",
        google_ads_client_id="id",
        google_ads_client_secret="secret",
        google_ads_developer_token="dev-token",
    )
    assert settings.ai_configured is True
    assert settings.google_ads_configured is True
