"""Exception hierarchy for vault operations.

Every failure surfaced by the core derives from :class:`VaultError` so the CLI
can map it to a stable exit code. Ledger integrity problems are *not*
exceptions: chain verification returns them as a list.
"""

from __future__ import annotations

__all__ = [
    "LockError",
    "MetadataError",
    "NotFoundError",
    "SealingError",
    "ValidationError",
    "VaultError",
    "VaultIOError",
]


class VaultError(Exception):
    """Base class for all vault errors."""

    pass


class ValidationError(VaultError):
    """Input rejected before any I/O (bad name, key type, policy, secret size)."""

    pass


class NotFoundError(VaultError):
    """Credential, backup or metadata entry does not exist."""

    pass


class VaultIOError(VaultError):
    """Filesystem operation failed."""

    def __init__(self, message: str, *, path: object | None = None) -> None:
        super().__init__(message)
        self.path = path


class LockError(VaultIOError):
    """Lock file could not be opened or locked."""

    pass


class MetadataError(VaultError):
    """Metadata file could not be parsed or serialized."""

    pass


class SealingError(VaultError):
    """External sealing engine reported failure."""

    def __init__(self, message: str, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
