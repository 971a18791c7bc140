"""Credential registry persistence (``vault.yaml``).

Writes are atomic: temp file in the same directory, fsync, chmod, rename,
fsync(dir). A concurrent reader sees either the old or the new document,
never a partial one, and a crash mid-write leaves the previous file intact.
"""

from __future__ import annotations

import os
import tempfile
from contextlib import suppress
from pathlib import Path

import yaml

from ..observability.loguru_config import get_logger
from . import constants
from .errors import MetadataError, VaultIOError
from .models import CredentialMeta, VaultFile, VaultSection

__all__ = [
    "ensure_defaults",
    "load",
    "remove_credential",
    "save",
    "upsert_credential",
]

vault_logger = get_logger("vault")


def load(path: Path) -> VaultFile:
    """Load the registry.

    Parameters
    ----------
    path
        Metadata file path

    Returns
    -------
    VaultFile
        Parsed registry, or an empty default one if the file is absent

    Raises
    ------
    MetadataError
        If the file exists but cannot be parsed
    VaultIOError
        If the file cannot be read
    """
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return VaultFile()
    except OSError as exc:
        raise VaultIOError(f"read vault metadata {path}: {exc}", path=path) from exc

    try:
        data = yaml.safe_load(content) or {}
        if not isinstance(data, dict):
            raise ValueError("top-level document must be a mapping")
        vault = VaultFile.from_dict(data)
    except (yaml.YAMLError, ValueError, TypeError, AttributeError) as exc:
        raise MetadataError(f"parse vault metadata {path}: {exc}") from exc

    if vault.vault.version == 0:
        vault.vault.version = 1

    vault.credentials.sort(key=lambda cred: cred.name)
    return vault


def save(path: Path, vault: VaultFile) -> None:
    """Atomically write the registry with mode ``0640``.

    Raises
    ------
    MetadataError
        If serialization fails
    VaultIOError
        If the write or rename fails
    """
    try:
        content = yaml.safe_dump(vault.to_dict(), default_flow_style=False, allow_unicode=True, sort_keys=False)
    except yaml.YAMLError as exc:
        raise MetadataError(f"serialize vault metadata: {exc}") from exc

    tmp_path: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.tmp",
            delete=False,
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)
            tmp_file.write(content)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())

        os.chmod(tmp_path, constants.METADATA_FILE_MODE)
        tmp_path.replace(path)
        tmp_path = None

        # Persist the rename itself
        dir_fd = os.open(path.parent, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

    except OSError as exc:
        raise VaultIOError(f"write vault metadata {path}: {exc}", path=path) from exc
    finally:
        if tmp_path is not None:
            with suppress(OSError):
                tmp_path.unlink()

    vault_logger.debug("Saved metadata for {} credentials", len(vault.credentials))


def upsert_credential(vault: VaultFile, cred: CredentialMeta) -> None:
    """Replace the entry with the same name (or append), keeping name order."""
    for index, existing in enumerate(vault.credentials):
        if existing.name == cred.name:
            vault.credentials[index] = cred
            break
    else:
        vault.credentials.append(cred)

    vault.credentials.sort(key=lambda c: c.name)


def remove_credential(vault: VaultFile, name: str) -> None:
    vault.credentials = [cred for cred in vault.credentials if cred.name != name]


def ensure_defaults(vault: VaultFile, credstore_path: str | None) -> None:
    """Fill in the version and default credstore path of a fresh registry."""
    if vault.vault.version == 0:
        vault.vault = VaultSection()
    if vault.vault.credstore_path is None:
        vault.vault.credstore_path = credstore_path
