"""Common CLI utilities: stable exit codes, JSON/human output, error mapping."""

from __future__ import annotations

import json
import traceback
from enum import IntEnum
from pathlib import Path
from typing import Any

import click

from ..config.settings import ConfigError
from ..core.credentials import CredentialManager
from ..core.errors import (
    MetadataError,
    NotFoundError,
    SealingError,
    ValidationError,
    VaultIOError,
)
from ..core.paths import VaultPaths
from ..core.sealing import SealingEngine
from ..observability.loguru_config import get_logger

__all__ = [
    "CLIContext",
    "ExitCode",
    "exit_code_for",
    "handle_cli_error",
    "handle_cli_success",
    "pass_cli_context",
    "read_secret",
]

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

cli_logger = get_logger("cli")


class ExitCode(IntEnum):
    """Stable exit codes for CLI commands."""

    SUCCESS = 0  # Successful execution
    VALIDATION_ERROR = 2  # Bad input or policy violation
    NOT_FOUND = 3  # Credential, backup or metadata missing
    INTEGRITY_ERROR = 4  # Audit chain or post-rotation check failed
    IO_LOCK_ERROR = 5  # I/O or lock error
    CONFIG_ERROR = 6  # Configuration or metadata error
    UNKNOWN_ERROR = 7  # Unknown/unexpected error
    SEALING_ERROR = 8  # Sealing engine failure


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map an exception to its stable exit code."""
    if isinstance(exc, ValidationError | click.UsageError):
        return ExitCode.VALIDATION_ERROR
    if isinstance(exc, NotFoundError):
        return ExitCode.NOT_FOUND
    if isinstance(exc, SealingError):
        return ExitCode.SEALING_ERROR
    if isinstance(exc, VaultIOError | OSError):
        return ExitCode.IO_LOCK_ERROR
    if isinstance(exc, ConfigError | MetadataError):
        return ExitCode.CONFIG_ERROR
    return ExitCode.UNKNOWN_ERROR


class CLIContext:
    """Context shared by all commands of one invocation."""

    def __init__(
        self,
        engine: SealingEngine,
        *,
        root: Path | None = None,
        json_output: bool = False,
        non_interactive: bool = False,
        verbose: bool = False,
    ) -> None:
        """Initialize CLI context.

        Args:
            engine: Sealing engine used by the credential manager
            root: Explicit vault root (resolved lazily otherwise)
            json_output: Enable JSON output mode
            non_interactive: Never prompt
            verbose: Verbose output
        """
        self.engine = engine
        self.root = root
        self.json_output = json_output
        self.non_interactive = non_interactive
        self.verbose = verbose
        self._paths: VaultPaths | None = None
        self._manager: CredentialManager | None = None

    @property
    def paths(self) -> VaultPaths:
        if self._paths is None:
            self._paths = VaultPaths.resolve(self.root)
            cli_logger.debug("Using {}", self._paths)
        return self._paths

    @property
    def manager(self) -> CredentialManager:
        if self._manager is None:
            self._manager = CredentialManager(self.paths, self.engine)
        return self._manager

    def output(
        self, data: Any, status: str = "success", error: str | None = None, meta: dict[str, Any] | None = None
    ) -> None:
        """Output result in appropriate format.

        Args:
            data: Result data
            status: Status ("success", "error", "warning")
            error: Error message if status is error
            meta: Additional metadata
        """
        if self.json_output:
            # JSON mode: print only JSON on stdout
            result: dict[str, Any] = {"status": status}

            if error:
                result["error"] = error
            else:
                result["data"] = data

            if meta:
                result["meta"] = meta

            click.echo(json.dumps(result, ensure_ascii=False, indent=2))
            return

        if status == "error":
            click.echo(f"❌ {error}", err=True)
        elif status == "warning":
            click.echo(f"⚠️  {data}", err=True)
        elif isinstance(data, dict):
            for key, value in data.items():
                if value is None or value == []:
                    continue
                if isinstance(value, list):
                    value = ", ".join(str(item) for item in value)
                click.echo(f"{key}: {value}")
        elif isinstance(data, list):
            for item in data:
                click.echo(f"  - {item}")
        elif data is not None:
            click.echo(data)


pass_cli_context = click.make_pass_decorator(CLIContext)


def handle_cli_error(ctx: CLIContext, exc: Exception, cmd: str) -> int:
    """Report an error and return the matching exit code.

    Args:
        ctx: CLI context
        exc: Exception to handle
        cmd: Command name

    Returns:
        Exit code for the exception type
    """
    exit_code = exit_code_for(exc)
    error_msg = str(exc) or type(exc).__name__

    cli_logger.debug("{} failed: {} ({})", cmd, error_msg, type(exc).__name__)
    ctx.output(None, status="error", error=error_msg, meta={"exit_code": int(exit_code)})

    if ctx.verbose and not ctx.json_output:
        click.echo("\nTraceback:", err=True)
        click.echo(traceback.format_exc(), err=True)

    return int(exit_code)


def handle_cli_success(ctx: CLIContext, data: Any, meta: dict[str, Any] | None = None) -> int:
    """Output the result and return the success code."""
    ctx.output(data, status="success", meta=meta)
    return int(ExitCode.SUCCESS)


def read_secret(ctx: CLIContext, from_stdin: bool, name: str) -> str:
    """Read a secret from stdin or a hidden prompt.

    Trailing CR/LF characters are stripped from stdin input.

    Raises:
        ValidationError: In non-interactive mode without ``--from-stdin``
    """
    if from_stdin:
        return click.get_text_stream("stdin").read().rstrip("\r\n")

    if ctx.non_interactive:
        raise ValidationError("--non-interactive requires --from-stdin")

    return click.prompt(f"Secret for {name}", hide_input=True, confirmation_prompt=True)
