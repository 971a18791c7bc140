"""Tests for environment-based settings."""

import os
from pathlib import Path

import pytest

from credvault.config.settings import ConfigError, Settings, get_settings, load_env_file, load_settings


@pytest.fixture(autouse=True)
def restore_env(monkeypatch, tmp_path: Path):
    """Run from an empty directory and restore os.environ afterwards."""
    original_env = os.environ.copy()
    monkeypatch.chdir(tmp_path)

    import credvault.config.settings as settings_module

    settings_module._settings = None

    yield

    os.environ.clear()
    os.environ.update(original_env)
    settings_module._settings = None


def test_defaults():
    settings = Settings()

    assert settings.root is None
    assert settings.non_interactive is False
    assert settings.log_level == "WARNING"
    assert settings.log_dir is None
    assert settings.seal_binary == "systemd-creds"


def test_string_paths_converted():
    settings = Settings(root="/srv/vault", log_dir="/var/log/credvault")

    assert settings.root == Path("/srv/vault")
    assert settings.log_dir == Path("/var/log/credvault")


def test_invalid_log_level():
    with pytest.raises(ConfigError, match="CREDVAULT_LOG_LEVEL"):
        Settings(log_level="chatty")


def test_from_env(monkeypatch):
    monkeypatch.setenv("CREDVAULT_ROOT", "/srv/vault")
    monkeypatch.setenv("CREDVAULT_NON_INTERACTIVE", "yes")
    monkeypatch.setenv("CREDVAULT_LOG_LEVEL", "debug")
    monkeypatch.setenv("CREDVAULT_SEAL_BINARY", "/usr/local/bin/systemd-creds")

    settings = Settings.from_env()

    assert settings.root == Path("/srv/vault")
    assert settings.non_interactive is True
    assert settings.log_level == "DEBUG"
    assert settings.seal_binary == "/usr/local/bin/systemd-creds"


def test_invalid_boolean(monkeypatch):
    monkeypatch.setenv("CREDVAULT_NON_INTERACTIVE", "maybe")

    with pytest.raises(ConfigError, match="boolean"):
        Settings.from_env()


def test_env_file_loaded(tmp_path: Path):
    env_file = tmp_path / "custom.env"
    env_file.write_text(
        "# comment\n"
        "CREDVAULT_ROOT='/srv/from-file'\n"
        'CREDVAULT_LOG_DIR="/var/log/cv"\n'
        "not a setting\n",
        encoding="utf-8",
    )

    settings = Settings.from_env(env_file)

    assert settings.root == Path("/srv/from-file")
    assert settings.log_dir == Path("/var/log/cv")


def test_dotenv_in_working_directory_used_by_default(tmp_path: Path):
    (tmp_path / ".env").write_text("CREDVAULT_LOG_LEVEL=ERROR\n", encoding="utf-8")

    assert Settings.from_env().log_level == "ERROR"


def test_load_env_file_strips_quotes(tmp_path: Path):
    env_file = tmp_path / ".env"
    env_file.write_text('CREDVAULT_TEST_VALUE="quoted value"\n', encoding="utf-8")

    load_env_file(env_file)

    assert os.environ["CREDVAULT_TEST_VALUE"] == "quoted value"


def test_env_file_ignores_foreign_keys(tmp_path: Path, monkeypatch):
    """Only CREDVAULT_* keys are read, so the file cannot change the audited actor."""
    monkeypatch.delenv("SUDO_USER", raising=False)
    (tmp_path / ".env").write_text("SUDO_USER=mallory\nUSER=mallory\n", encoding="utf-8")

    Settings.from_env()

    assert "SUDO_USER" not in os.environ
    assert os.environ["USER"] == "tester"


def test_exported_variables_win_over_env_file(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("CREDVAULT_SEAL_BINARY", "systemd-creds")
    (tmp_path / ".env").write_text(
        "CREDVAULT_SEAL_BINARY=/tmp/evil\nCREDVAULT_LOG_LEVEL=ERROR\n",
        encoding="utf-8",
    )

    settings = Settings.from_env()

    assert settings.seal_binary == "systemd-creds"
    assert settings.log_level == "ERROR"


def test_get_settings_before_load():
    with pytest.raises(ConfigError, match="not loaded"):
        get_settings()


def test_load_settings_sets_global():
    settings = load_settings()

    assert get_settings() is settings
