"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

from cartwise.config import get_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("CARTWISE_DATABASE_PATH", raising=False)
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.default_category == "Pantry"
    assert settings.default_store == "Unknown Store"
    assert settings.sync_catalog_prices is True
    assert settings.api_token is None


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("CARTWISE_DATABASE_PATH", str(tmp_path / "other.db"))
    monkeypatch.setenv("CARTWISE_SYNC_CATALOG_PRICES", "no")
    monkeypatch.setenv("CARTWISE_DEFAULT_CATEGORY", "Snacks")
    monkeypatch.setenv("CARTWISE_LOG_REQUESTS", "false")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.database_path == tmp_path / "other.db"
    assert settings.sync_catalog_prices is False
    assert settings.default_category == "Snacks"
    assert settings.log_requests is False


def test_env_file_is_used_as_fallback(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("# local overrides\nCARTWISE_DEFAULT_STORE=Corner Shop\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()

    assert get_settings().default_store == "Corner Shop"
    assert isinstance(get_settings().database_path, Path)


def test_env_file_quotes_and_export_prefix(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text(
        "export CARTWISE_DEFAULT_CATEGORY='Household'\nCARTWISE_LOG_FORMAT=\"json\"\nnot a setting\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CARTWISE_LOG_FORMAT", "plain")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.default_category == "Household"
    assert settings.log_format == "plain"
