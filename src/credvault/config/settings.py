"""Operator settings loaded from the environment.

A ``.env`` file in the working directory (or the one passed explicitly) is
read first. Only ``CREDVAULT_*`` keys are taken from it, and variables already
set in the environment win over the file.

Recognised variables:

- ``CREDVAULT_ROOT``: vault root directory
- ``CREDVAULT_NON_INTERACTIVE``: never prompt (true/false)
- ``CREDVAULT_LOG_LEVEL``: loguru level (default WARNING)
- ``CREDVAULT_LOG_DIR``: directory for JSON log files
- ``CREDVAULT_SEAL_BINARY``: sealing tool (default ``systemd-creds``)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "ConfigError",
    "Settings",
    "get_settings",
    "load_env_file",
    "load_settings",
]

ENV_PREFIX = "CREDVAULT_"

VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), got {value!r}")


@dataclass
class Settings:
    """Settings for the credvault CLI.

    Attributes
    ----------
    root : Path | None
        Vault root; resolved from the working directory when None
    non_interactive : bool
        Never prompt for input
    log_level : str
        Loguru level for console/file sinks
    log_dir : Path | None
        Directory for JSON log files (no file logging when None)
    seal_binary : str
        Executable used by the sealing engine
    """

    root: Path | None = None
    non_interactive: bool = False
    log_level: str = "WARNING"
    log_dir: Path | None = None
    seal_binary: str = "systemd-creds"

    def __post_init__(self) -> None:
        if isinstance(self.root, str):
            self.root = Path(self.root)
        if isinstance(self.log_dir, str):
            self.log_dir = Path(self.log_dir)

        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigError(
                f"CREDVAULT_LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)}, got {self.log_level!r}"
            )
        if not self.seal_binary:
            raise ConfigError("CREDVAULT_SEAL_BINARY cannot be empty")

    @classmethod
    def from_env(cls, env_file: Path | str | None = None) -> Settings:
        """Load settings from the environment.

        Parameters
        ----------
        env_file
            Path to .env file (default: .env in current directory)

        Returns
        -------
        Settings
            Loaded settings

        Raises
        ------
        ConfigError
            If a value is invalid
        """
        if env_file is None:
            env_file = Path(".env")
        env_file = Path(env_file)

        if env_file.is_file():
            load_env_file(env_file)

        root = os.environ.get("CREDVAULT_ROOT")
        log_dir = os.environ.get("CREDVAULT_LOG_DIR")
        return cls(
            root=Path(root) if root else None,
            non_interactive=_parse_bool(
                "CREDVAULT_NON_INTERACTIVE", os.environ.get("CREDVAULT_NON_INTERACTIVE", "false")
            ),
            log_level=os.environ.get("CREDVAULT_LOG_LEVEL", "WARNING"),
            log_dir=Path(log_dir) if log_dir else None,
            seal_binary=os.environ.get("CREDVAULT_SEAL_BINARY", "systemd-creds"),
        )


def load_env_file(env_file: Path) -> None:
    """Load ``CREDVAULT_*=VALUE`` lines from a .env file into ``os.environ``.

    Other keys are ignored and variables that are already set are kept.

    Parameters
    ----------
    env_file
        Path to .env file

    Raises
    ------
    ConfigError
        If the file cannot be read
    """
    try:
        lines = env_file.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise ConfigError(f"Cannot read {env_file}: {exc}") from exc

    for line in lines:
        line = line.strip()

        # Skip comments and empty lines
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()

        if not key.startswith(ENV_PREFIX):
            continue

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]

        os.environ.setdefault(key, value)


# Global settings instance
_settings: Settings | None = None


def load_settings(env_file: Path | str | None = None) -> Settings:
    """Load settings from the environment and keep them as the current settings."""
    global _settings
    _settings = Settings.from_env(env_file)
    return _settings


def get_settings() -> Settings:
    """Get current settings.

    Raises
    ------
    ConfigError
        If settings were not loaded
    """
    if _settings is None:
        raise ConfigError("Settings not loaded. Call load_settings() first.")
    return _settings
