"""Credstore directory scanning (used when no metadata file exists)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from . import constants
from .errors import VaultIOError

__all__ = ["CredEntry", "list_credentials"]


@dataclass(frozen=True)
class CredEntry:
    name: str
    path: Path
    size_bytes: int
    modified: datetime | None


def list_credentials(cred_dir: Path) -> list[CredEntry]:
    """List live ``*.cred`` blobs sorted by name (``.prev`` backups excluded)."""
    try:
        candidates = list(cred_dir.iterdir())
    except OSError as exc:
        raise VaultIOError(f"open credstore directory {cred_dir}: {exc}", path=cred_dir) from exc

    entries = []
    for path in candidates:
        if not path.is_file() or not path.name.endswith(constants.CRED_EXTENSION):
            continue
        stat = path.stat()
        entries.append(
            CredEntry(
                name=path.name.removesuffix(constants.CRED_EXTENSION),
                path=path,
                size_bytes=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )

    entries.sort(key=lambda entry: entry.name)
    return entries
