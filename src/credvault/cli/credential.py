"""Credential commands: create, get, list, delete, describe, search, rotate, rollback, plan."""

from __future__ import annotations

from pathlib import Path

import click

from ..core import constants
from ..core.errors import ValidationError
from ..core.time import format_local_for_display
from .cli_common import (
    CONTEXT_SETTINGS,
    CLIContext,
    handle_cli_error,
    handle_cli_success,
    pass_cli_context,
    read_secret,
)

__all__ = [
    "create_command",
    "delete_command",
    "describe_command",
    "get_command",
    "list_command",
    "plan_cli",
    "rollback_cli",
    "rotate_command",
    "search_command",
]

KEY_TYPE_CHOICE = click.Choice(list(constants.VALID_KEY_TYPES))


def _format_table(rows: list[list[str]], headers: list[str]) -> str:
    widths = [max(len(headers[i]), *(len(row[i]) for row in rows)) for i in range(len(headers))]
    lines = ["  ".join(header.ljust(widths[i]) for i, header in enumerate(headers))]
    lines.append("  ".join("-" * width for width in widths))
    for row in rows:
        lines.append("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())
    return "\n".join(lines)


@click.command("create", context_settings=CONTEXT_SETTINGS)
@click.argument("name")
@click.option("--with-key", "key_type", type=KEY_TYPE_CHOICE, help="Key type (default: host+tpm2 if TPM2 available)")
@click.option("--tpm2-pcrs", help='TPM2 PCR values to bind to (e.g. "7" or "7+11")')
@click.option("--from-stdin", is_flag=True, help="Read secret from stdin instead of prompting")
@click.option("--description", help="Description stored in metadata")
@click.option("--tag", multiple=True, help="Tag (can specify multiple)")
@click.option("--service", multiple=True, help="Linked service (can specify multiple)")
@pass_cli_context
def create_command(
    ctx: CLIContext,
    name: str,
    key_type: str | None,
    tpm2_pcrs: str | None,
    from_stdin: bool,
    description: str | None,
    tag: tuple[str, ...],
    service: tuple[str, ...],
) -> int:
    """Create and seal a new credential."""
    try:
        secret = read_secret(ctx, from_stdin, name)
        path = ctx.manager.create(
            name,
            secret,
            key_type=key_type,
            binding_spec=tpm2_pcrs,
            description=description,
            tags=list(tag),
            services=list(service),
        )
        return handle_cli_success(ctx, {"name": name, "path": str(path), "action": "created"})
    except Exception as exc:
        return handle_cli_error(ctx, exc, "create")


@click.command("get", context_settings=CONTEXT_SETTINGS)
@click.argument("name")
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), help="Write plaintext to this file")
@click.option("--confirm", is_flag=True, help="Allow printing the secret to stdout")
@click.option("--reason", help="Reason for printing to stdout (audited)")
@click.option("--newline", type=click.Choice(["auto", "yes", "no"]), default="no", show_default=True)
@pass_cli_context
def get_command(
    ctx: CLIContext,
    name: str,
    output: Path | None,
    confirm: bool,
    reason: str | None,
    newline: str,
) -> int:
    """Unseal a credential to a file, or to stdout with --confirm and --reason."""
    try:
        result = ctx.manager.get(name, output=output, confirm=confirm, reason=reason, newline=newline)
        if isinstance(result, Path):
            return handle_cli_success(ctx, {"name": name, "output": str(result)})

        # Raw plaintext goes to stdout unchanged, also in JSON mode
        click.echo(result, nl=False)
        return 0
    except Exception as exc:
        return handle_cli_error(ctx, exc, "get")


@click.command("list", context_settings=CONTEXT_SETTINGS)
@click.option("--service", help="Filter by linked service")
@click.option("--tag", help="Filter by tag")
@pass_cli_context
def list_command(ctx: CLIContext, service: str | None, tag: str | None) -> int:
    """List credentials."""
    try:
        items = ctx.manager.list_credentials(service=service, tag=tag)

        if ctx.json_output:
            return handle_cli_success(ctx, [item.to_dict() for item in items], meta={"count": len(items)})

        if not items:
            click.echo("No credentials found.")
            return 0

        rows = [
            [
                item.name,
                item.description or "-",
                ",".join(item.tags) or "-",
                ",".join(item.services) or "-",
                f"{item.size_bytes} B" if item.size_bytes is not None else "-",
                format_local_for_display(item.modified),
            ]
            for item in items
        ]
        click.echo(_format_table(rows, ["Name", "Description", "Tags", "Services", "Size", "Modified"]))
        return 0
    except Exception as exc:
        return handle_cli_error(ctx, exc, "list")


@click.command("delete", context_settings=CONTEXT_SETTINGS)
@click.argument("name")
@pass_cli_context
def delete_command(ctx: CLIContext, name: str) -> int:
    """Delete a credential and its metadata entry."""
    try:
        path = ctx.manager.delete(name)
        return handle_cli_success(ctx, {"name": name, "path": str(path), "action": "deleted"})
    except Exception as exc:
        return handle_cli_error(ctx, exc, "delete")


@click.command("describe", context_settings=CONTEXT_SETTINGS)
@click.argument("name")
@pass_cli_context
def describe_command(ctx: CLIContext, name: str) -> int:
    """Show the metadata of a credential."""
    try:
        meta = ctx.manager.describe(name)
        return handle_cli_success(ctx, meta.to_dict())
    except Exception as exc:
        return handle_cli_error(ctx, exc, "describe")


@click.command("search", context_settings=CONTEXT_SETTINGS)
@click.argument("query")
@pass_cli_context
def search_command(ctx: CLIContext, query: str) -> int:
    """Search credentials by name, description, tags and services."""
    try:
        matches = ctx.manager.search(query)

        if ctx.json_output:
            return handle_cli_success(ctx, [meta.to_dict() for meta in matches], meta={"count": len(matches)})

        if not matches:
            click.echo("No matches.")
            return 0
        return handle_cli_success(ctx, [str(meta) for meta in matches])
    except Exception as exc:
        return handle_cli_error(ctx, exc, "search")


@click.command("rotate", context_settings=CONTEXT_SETTINGS)
@click.argument("name")
@click.option("--with-key", "key_type", type=KEY_TYPE_CHOICE, help="Key type (default: host+tpm2 if TPM2 available)")
@click.option("--tpm2-pcrs", help='TPM2 PCR values to bind to (e.g. "7" or "7+11")')
@click.option("--from-stdin", is_flag=True, help="Read the new secret from stdin")
@click.option("--auto", is_flag=True, help="Generate a random secret")
@click.option(
    "--length",
    type=click.IntRange(min=1),
    default=constants.DEFAULT_AUTO_SECRET_LENGTH,
    show_default=True,
    help="Length of the generated secret",
)
@click.option("--description", help="Replace description in metadata")
@click.option("--tag", multiple=True, help="Replace tags (can specify multiple)")
@click.option("--service", multiple=True, help="Replace linked services (can specify multiple)")
@pass_cli_context
def rotate_command(
    ctx: CLIContext,
    name: str,
    key_type: str | None,
    tpm2_pcrs: str | None,
    from_stdin: bool,
    auto: bool,
    length: int,
    description: str | None,
    tag: tuple[str, ...],
    service: tuple[str, ...],
) -> int:
    """Rotate a credential, keeping the previous blob as a backup."""
    try:
        if auto and from_stdin:
            raise ValidationError("--auto and --from-stdin cannot be used together")
        if ctx.non_interactive and not (auto or from_stdin):
            raise ValidationError("--non-interactive requires --from-stdin or --auto for rotate")

        secret = None if auto else read_secret(ctx, from_stdin, name)
        path = ctx.manager.rotate(
            name,
            secret,
            auto=auto,
            length=length,
            key_type=key_type,
            binding_spec=tpm2_pcrs,
            description=description,
            tags=list(tag),
            services=list(service),
        )
        return handle_cli_success(
            ctx,
            {"name": name, "path": str(path), "action": "rotated"},
            meta={"backup": str(ctx.paths.backup_path(name))},
        )
    except Exception as exc:
        return handle_cli_error(ctx, exc, "rotate")


@click.group("rollback", context_settings=CONTEXT_SETTINGS)
def rollback_cli() -> None:
    """Undo a credential mutation."""


@rollback_cli.command("rotate")
@click.argument("name")
@pass_cli_context
def rollback_rotate_command(ctx: CLIContext, name: str) -> int:
    """Restore the blob saved by the last rotation."""
    try:
        path = ctx.manager.rollback(name)
        return handle_cli_success(ctx, {"name": name, "path": str(path), "action": "rolled back"})
    except Exception as exc:
        return handle_cli_error(ctx, exc, "rollback rotate")


@click.group("plan", context_settings=CONTEXT_SETTINGS)
def plan_cli() -> None:
    """Preview a credential mutation without changing anything."""


@plan_cli.command("rotate")
@click.argument("name")
@click.option("--with-key", "key_type", type=KEY_TYPE_CHOICE, help="Key type (default: host+tpm2 if TPM2 available)")
@click.option("--auto", is_flag=True, help="Plan a generated secret")
@click.option(
    "--length",
    type=click.IntRange(min=1),
    default=constants.DEFAULT_AUTO_SECRET_LENGTH,
    show_default=True,
    help="Length of the generated secret",
)
@click.option("--service", multiple=True, help="Linked service (can specify multiple)")
@pass_cli_context
def plan_rotate_command(
    ctx: CLIContext,
    name: str,
    key_type: str | None,
    auto: bool,
    length: int,
    service: tuple[str, ...],
) -> int:
    """Show what a rotation would do and any policy issues (dry-run)."""
    try:
        plan = ctx.manager.plan_rotation(name, auto=auto, length=length, key_type=key_type, services=list(service))
    except Exception as exc:
        return handle_cli_error(ctx, exc, "plan rotate")

    if ctx.json_output:
        return handle_cli_success(ctx, plan.to_dict(), meta={"dry_run": True})

    click.echo(f"Plan: rotate '{plan.name}'")
    click.echo(f"  exists: {str(plan.exists).lower()}")
    click.echo(f"  key_type: {plan.key_type}")
    click.echo(f"  auto: length={plan.length}" if plan.auto else "  source: stdin/prompt")
    if plan.ready:
        click.echo("  status: ready")
    for issue in plan.issues:
        click.echo(f"  issue: {issue}")
    click.echo("\nNo changes made (dry-run).")
    return 0
