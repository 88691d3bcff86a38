"""Tests for configuration management."""

import pytest

from config import Environment, Settings, get_settings, reset_settings
from cors import cors_headers


def test_defaults(monkeypatch):
    for name in ("ALLOWED_ORIGINS", "TURNSTILE_SECRET", "ERPNEXT_LEAD_DOCTYPE", "ERPNEXT_LEAD_SOURCE",
                 "FALLBACK_FORM_URLS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.environment == Environment.DEVELOPMENT
    assert settings.erpnext_lead_doctype == "Lead"
    assert settings.erpnext_applicant_doctype == "Job Applicant"
    assert settings.fallback_form_urls == {}
    assert settings.erpnext_lead_source is None
    assert settings.allow_any_origin is True
    assert settings.verification_enabled is False
    assert settings.defer_system_of_record is True


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example ,")
    monkeypatch.setenv("TURNSTILE_SECRET", "0xSECRET")
    monkeypatch.setenv("ENVIRONMENT", "Production")
    monkeypatch.setenv("FALLBACK_FORM_URLS", '{"job_application": "https://forms.example.com/j"}')

    settings = Settings(_env_file=None)

    assert settings.allowed_origin_list == ["https://a.example", "https://b.example"]
    assert settings.allow_any_origin is False
    assert settings.verification_enabled is True
    assert settings.is_production is True
    assert settings.fallback_form_urls == {"job_application": "https://forms.example.com/j"}


def test_wildcard_origin_allows_any():
    assert Settings(_env_file=None, allowed_origins="https://a.example,*").allow_any_origin


def test_invalid_log_level():
    with pytest.raises(ValueError, match="Log level must be one of"):
        Settings(_env_file=None, log_level="chatty")


def test_unknown_environment_defaults_to_development():
    assert Settings(_env_file=None, environment="qa").environment == Environment.DEVELOPMENT


def test_get_settings_is_cached(monkeypatch):
    monkeypatch.setenv("ERPNEXT_BASE_URL", "https://erp.example.com")
    reset_settings()
    try:
        assert get_settings() is get_settings()
        assert get_settings().erpnext_base_url == "https://erp.example.com"
    finally:
        reset_settings()


class TestCorsHeaders:
    def test_any_origin(self):
        headers = cors_headers(Settings(_env_file=None, allowed_origins=""), "https://x.example")
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"

    def test_listed_origin_is_echoed(self):
        settings = Settings(_env_file=None, allowed_origins="https://a.example")
        headers = cors_headers(settings, "https://a.example")
        assert headers["Access-Control-Allow-Origin"] == "https://a.example"
        assert headers["Vary"] == "Origin"

    def test_unlisted_origin_gets_no_allow_origin(self):
        settings = Settings(_env_file=None, allowed_origins="https://a.example")
        headers = cors_headers(settings, "https://evil.example")
        assert "Access-Control-Allow-Origin" not in headers
        assert headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"
