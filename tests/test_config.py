"""Tests for environment-driven configuration."""

import pydantic
import pytest

from config import ProgressConfig, get_config_summary, get_progress_config, reload_config


@pytest.fixture(autouse=True)
def fresh_config():
    reload_config()
    yield
    reload_config()


def test_defaults():
    config = ProgressConfig()
    assert config.store_backend == "memory"
    assert config.streak_mode == "rolling_window"
    assert config.max_save_attempts == 3


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PROGRESS_STREAK_MODE", "calendar_day")
    monkeypatch.setenv("PROGRESS_STREAK_UTC_OFFSET_MINUTES", "-300")
    config = get_progress_config()
    assert config.streak_mode == "calendar_day"
    assert config.streak_utc_offset_minutes == -300


def test_invalid_values_rejected():
    with pytest.raises(pydantic.ValidationError):
        ProgressConfig(streak_mode="weekly")
    with pytest.raises(pydantic.ValidationError):
        ProgressConfig(max_save_attempts=0)


def test_summary_hides_reset_token(monkeypatch):
    monkeypatch.setenv("PROGRESS_RESET_TOKEN", "s3cret")
    summary = get_config_summary()
    assert summary["progress"]["reset_enabled"] is True
    assert "s3cret" not in str(summary)
