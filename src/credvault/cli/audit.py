"""Audit ledger commands: ``audit log`` and ``audit verify``."""

from __future__ import annotations

import click

from ..core import audit_log
from ..core.time import format_local_for_display
from .cli_common import (
    CONTEXT_SETTINGS,
    CLIContext,
    ExitCode,
    handle_cli_error,
    handle_cli_success,
    pass_cli_context,
)

__all__ = ["cli"]

DEFAULT_LOG_LIMIT = 50


@click.group(context_settings=CONTEXT_SETTINGS, help="Inspect and verify the audit ledger")
def cli() -> None:
    """Audit ledger commands."""


def _format_record(record: audit_log.AuditRecord) -> str:
    line = f"{format_local_for_display(record.timestamp)}  {record.action:<16} {record.credential:<24} {record.actor}"
    if record.result is not None:
        line += "  ok" if record.result.success else f"  FAILED: {record.result.error or '-'}"
    if record.reason:
        line += f"  reason={record.reason}"
    return line


@cli.command("log")
@click.option(
    "--limit",
    type=click.IntRange(min=0),
    default=DEFAULT_LOG_LIMIT,
    show_default=True,
    help="Show only the last N entries",
)
@pass_cli_context
def log_command(ctx: CLIContext, limit: int) -> int:
    """Show recent audit entries."""
    try:
        records = audit_log.read_log(ctx.paths, limit=limit)

        if ctx.json_output:
            return handle_cli_success(ctx, [record.to_dict() for record in records], meta={"count": len(records)})

        if not records:
            click.echo("No audit entries.")
            return 0
        for record in records:
            click.echo(_format_record(record))
        return 0
    except Exception as exc:
        return handle_cli_error(ctx, exc, "audit log")


@cli.command("verify")
@pass_cli_context
def verify_command(ctx: CLIContext) -> int:
    """Verify the hash chain of the whole ledger."""
    try:
        total, errors = audit_log.verify_chain(ctx.paths)
    except Exception as exc:
        return handle_cli_error(ctx, exc, "audit verify")

    if ctx.json_output:
        status = "error" if errors else "success"
        ctx.output({"entries": total, "violations": errors}, status=status)
    elif errors:
        for error in errors:
            click.echo(f"  - {error}")
        click.echo(f"❌ audit chain verification failed: {len(errors)} violation(s) in {total} entries", err=True)
    else:
        click.echo(f"✅ audit chain intact ({total} entries)")

    return int(ExitCode.INTEGRITY_ERROR) if errors else int(ExitCode.SUCCESS)
