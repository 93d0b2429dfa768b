"""Unit tests for runtime settings."""

from datetime import date

import pytest

from studiora.config import DEFAULT_MODEL, Settings
from studiora.exceptions import ConfigurationError

ENV_VARS = [
    "OPENAI_API_KEY", "STUDIORA_MODEL", "STUDIORA_TIMEOUT", "STUDIORA_MAX_RETRIES",
    "STUDIORA_DEFAULT_YEAR", "STUDIORA_SEMESTER_START", "STUDIORA_SEMESTER_END",
    "STUDIORA_LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        # set then delete so teardown also removes values loaded from a dotenv file
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return tmp_path / "missing.env"


def test_defaults(clean_env):
    """Test settings without any environment."""
    settings = Settings.from_env(str(clean_env))
    assert settings.openai_api_key is None
    assert not settings.has_credential
    assert settings.model == DEFAULT_MODEL
    assert settings.timeout == 120.0
    assert settings.max_retries == 3
    assert settings.log_level == "INFO"


def test_values_from_environment(clean_env, monkeypatch):
    """Test environment variables override defaults."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("STUDIORA_TIMEOUT", "30")
    monkeypatch.setenv("STUDIORA_DEFAULT_YEAR", "2025")
    monkeypatch.setenv("STUDIORA_SEMESTER_START", "2025-01-06")
    monkeypatch.setenv("STUDIORA_LOG_LEVEL", "debug")

    settings = Settings.from_env(str(clean_env))
    assert settings.has_credential
    assert settings.timeout == 30.0
    assert settings.default_year == 2025
    assert settings.semester_start == date(2025, 1, 6)
    assert settings.log_level == "DEBUG"


def test_values_from_dotenv_file(clean_env, tmp_path):
    """Test a dotenv file seeds the environment."""
    env_file = tmp_path / ".env"
    env_file.write_text("STUDIORA_MODEL=gpt-test\nSTUDIORA_MAX_RETRIES=5\n")
    settings = Settings.from_env(str(env_file))
    assert settings.model == "gpt-test"
    assert settings.max_retries == 5


def test_blank_key_is_not_a_credential():
    """Test whitespace keys do not enable the language-model stages."""
    assert not Settings(openai_api_key="   ").has_credential


def test_bad_number(clean_env, monkeypatch):
    """Test malformed numbers raise ConfigurationError."""
    monkeypatch.setenv("STUDIORA_TIMEOUT", "soon")
    with pytest.raises(ConfigurationError):
        Settings.from_env(str(clean_env))


def test_bad_date(clean_env, monkeypatch):
    """Test malformed semester dates raise ConfigurationError."""
    monkeypatch.setenv("STUDIORA_SEMESTER_END", "May 1st")
    with pytest.raises(ConfigurationError):
        Settings.from_env(str(clean_env))
