"""Entry point for the ``credvault`` command."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from ..config.settings import ConfigError, load_settings
from ..core.sealing import SealingEngine, SystemdCredsEngine
from ..observability.loguru_config import configure_loguru
from .audit import cli as audit_cli
from .cli_common import CONTEXT_SETTINGS, CLIContext, ExitCode
from .credential import (
    create_command,
    delete_command,
    describe_command,
    get_command,
    list_command,
    plan_cli,
    rollback_cli,
    rotate_command,
    search_command,
)
from .vault import init_command, verify_cli

EPILOG = """
Examples:
  credvault init                                   # Create credstore and vault.yaml
  echo -n s3cret | credvault create db --from-stdin --tag db --service postgres
  credvault rotate db --auto --length 48           # Rotate with a generated secret
  credvault plan rotate db --auto                  # Dry-run a rotation
  credvault rollback rotate db                     # Undo the last rotation
  credvault get db --output /run/secrets/db        # Unseal to a file
  credvault audit verify                           # Check the audit hash chain
""".strip()


@click.group(
    context_settings=CONTEXT_SETTINGS,
    help="credvault - sealed credential vault with a hash-chained audit log",
    epilog=EPILOG,
)
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), help="Vault root directory")
@click.option("--non-interactive", is_flag=True, help="Never prompt for input")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON (machine-readable)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx: click.Context, root: Path | None, non_interactive: bool, json_output: bool, verbose: bool) -> None:
    """Root command."""
    settings = load_settings()
    configure_loguru(
        log_dir=settings.log_dir,
        level="DEBUG" if verbose else settings.log_level,
    )

    # An engine passed in by the caller (tests) takes precedence
    engine: SealingEngine = ctx.obj if ctx.obj is not None else SystemdCredsEngine(settings.seal_binary)
    ctx.obj = CLIContext(
        engine,
        root=root or settings.root,
        json_output=json_output,
        non_interactive=non_interactive or settings.non_interactive,
        verbose=verbose,
    )


cli.add_command(init_command)
cli.add_command(create_command)
cli.add_command(get_command)
cli.add_command(list_command)
cli.add_command(delete_command)
cli.add_command(describe_command)
cli.add_command(search_command)
cli.add_command(rotate_command)
cli.add_command(rollback_cli)
cli.add_command(plan_cli)
cli.add_command(audit_cli, "audit")
cli.add_command(verify_cli)


def main(args: list[str] | None = None, *, engine: SealingEngine | None = None) -> int:
    """Main entry point.

    Args:
        args: Command-line arguments (default: ``sys.argv[1:]``)
        engine: Sealing engine to use instead of ``systemd-creds``

    Returns:
        Process exit code
    """
    if args is None:
        args = sys.argv[1:]

    try:
        return cli.main(args=list(args), standalone_mode=False, obj=engine) or 0
    except ConfigError as exc:
        click.echo(f"❌ {exc}", err=True)
        return int(ExitCode.CONFIG_ERROR)
    except click.ClickException as exc:
        exc.show()
        return int(ExitCode.VALIDATION_ERROR)
    except click.Abort:
        click.echo("Aborted!", err=True)
        return int(ExitCode.UNKNOWN_ERROR)
    except SystemExit as exc:
        return int(exc.code) if exc.code is not None else 0


if __name__ == "__main__":
    sys.exit(main())
