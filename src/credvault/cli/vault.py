"""Vault commands: ``init`` and ``verify rotate``."""

from __future__ import annotations

import click

from .cli_common import (
    CONTEXT_SETTINGS,
    CLIContext,
    ExitCode,
    handle_cli_error,
    handle_cli_success,
    pass_cli_context,
)

__all__ = ["init_command", "verify_cli"]


@click.command("init", context_settings=CONTEXT_SETTINGS)
@click.option("--setup", "run_setup", is_flag=True, help="Also prepare the sealing engine's host key")
@pass_cli_context
def init_command(ctx: CLIContext, run_setup: bool) -> int:
    """Create the credstore and a default metadata file."""
    try:
        if run_setup:
            ctx.engine.setup()
        tpm2_available = ctx.manager.initialize()
        return handle_cli_success(
            ctx,
            {
                "root": str(ctx.paths.root),
                "credstore": str(ctx.paths.credstore),
                "metadata": str(ctx.paths.metadata_file),
                "tpm2_available": tpm2_available,
            },
        )
    except Exception as exc:
        return handle_cli_error(ctx, exc, "init")


@click.group("verify", context_settings=CONTEXT_SETTINGS)
def verify_cli() -> None:
    """Post-operation checks."""


@verify_cli.command("rotate")
@click.argument("name")
@pass_cli_context
def verify_rotate_command(ctx: CLIContext, name: str) -> int:
    """Check that a rotated credential is present, unsealable and described."""
    try:
        checks = ctx.manager.verify_rotation(name)
    except Exception as exc:
        return handle_cli_error(ctx, exc, "verify rotate")

    failed = [check for check in checks if not check.passed]

    if ctx.json_output:
        ctx.output(
            {"name": name, "checks": [{"passed": c.passed, "message": c.message} for c in checks]},
            status="error" if failed else "success",
        )
    else:
        for check in checks:
            click.echo(f"{'✅' if check.passed else '❌'} {check.message}")

    return int(ExitCode.INTEGRITY_ERROR) if failed else int(ExitCode.SUCCESS)
