"""Vault root resolution and on-disk layout."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from . import constants

__all__ = ["VaultPaths", "find_vault_root"]

ROOT_ENV_VAR = "CREDVAULT_ROOT"


@dataclass(frozen=True)
class VaultPaths:
    """All well-known paths below one vault root.

    Attributes
    ----------
    root : Path
        Vault root directory
    credstore : Path
        Directory holding sealed ``<name>.cred`` blobs
    metadata_file : Path
        Credential registry (YAML)
    vault_lock : Path
        Lock file serializing credential/metadata mutations
    audit_lock : Path
        Lock file serializing ledger appends
    audit_log : Path
        Hash-chained audit ledger
    """

    root: Path
    credstore: Path
    metadata_file: Path
    vault_lock: Path
    audit_lock: Path
    audit_log: Path

    @classmethod
    def from_root(cls, root: Path | str) -> VaultPaths:
        root = Path(root)
        return cls(
            root=root,
            credstore=root / constants.CREDSTORE_DIRNAME,
            metadata_file=root / constants.METADATA_FILENAME,
            vault_lock=root / constants.VAULT_LOCK_FILENAME,
            audit_lock=root / constants.AUDIT_LOCK_FILENAME,
            audit_log=root / constants.AUDIT_LOG_FILENAME,
        )

    @classmethod
    def resolve(cls, root_arg: Path | str | None = None) -> VaultPaths:
        """Resolve the vault root.

        Priority (highest to lowest):
        1. Explicit argument (``--root``)
        2. ``CREDVAULT_ROOT`` environment variable
        3. Nearest ancestor of the working directory that looks like a vault
        4. :data:`constants.DEFAULT_VAULT_ROOT`
        """
        if root_arg:
            return cls.from_root(root_arg)

        env_root = os.environ.get(ROOT_ENV_VAR)
        if env_root:
            return cls.from_root(env_root)

        found = find_vault_root(Path.cwd())
        if found is not None:
            return cls.from_root(found)

        return cls.from_root(constants.DEFAULT_VAULT_ROOT)

    def cred_path(self, name: str) -> Path:
        """Path of the live sealed blob for ``name``."""
        return self.credstore / f"{name}{constants.CRED_EXTENSION}"

    def backup_path(self, name: str) -> Path:
        """Path of the one-level rollback backup for ``name``."""
        return self.credstore / f"{name}{constants.CRED_EXTENSION}{constants.BACKUP_SUFFIX}"

    def __str__(self) -> str:
        return f"vault@{self.root}"


def _looks_like_root(path: Path) -> bool:
    return (path / constants.CREDSTORE_DIRNAME).is_dir() and (path / constants.METADATA_FILENAME).is_file()


def find_vault_root(start: Path) -> Path | None:
    """Walk up from ``start`` looking for a directory with a credstore and metadata file."""
    for candidate in (start, *start.parents):
        if _looks_like_root(candidate):
            return candidate
    return None
