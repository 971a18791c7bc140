"""Credential mutation protocol (create, rotate, rollback, delete) and read operations.

SINGLE WRITER PATTERN:
======================
All changes to sealed blobs and to ``vault.yaml`` go through
:class:`CredentialManager`, and every mutation runs under the vault-wide
``vault.lock``. Within one mutation the ordering is fixed:

    seal -> backup-then-replace -> metadata save

Each step gates the next. A failure before the final atomic move leaves the
vault unchanged; a failure of the final move restores the ``.prev`` backup.
Metadata is only saved once the blob is in place.

Every operation appends exactly one audit record, after the vault lock has
been released. The audit append is best-effort: a failure is logged and
never masks the outcome of the operation itself.

Credential states::

    absent -> active -> active-with-backup -> rolled-back
       ^         |              |
       +---------+--------------+  (delete)
"""

from __future__ import annotations

import os
import re
import secrets
import shutil
import string
import tempfile
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TypeVar

from ..observability.loguru_config import get_logger, timing_context
from . import audit_log, constants, metadata
from .audit_log import AuditContext
from .credstore import list_credentials as scan_credstore
from .errors import MetadataError, NotFoundError, ValidationError, VaultError, VaultIOError
from .file_lock import acquire_exclusive
from .models import CredentialMeta, PolicySection, normalize_service
from .paths import VaultPaths
from .sealing import SealingEngine
from .time import format_utc_iso8601, get_current_utc

__all__ = [
    "CredentialListing",
    "CredentialManager",
    "RotationPlan",
    "VerificationCheck",
    "dedup",
    "generate_secret",
    "load_policy",
    "match_credential",
    "validate_key_type",
    "validate_name",
]

vault_logger = get_logger("vault")
audit_logger = get_logger("audit")

T = TypeVar("T")

_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_SECRET_ALPHABET = string.ascii_letters + string.digits


def validate_name(name: str) -> str:
    """Reject names that are empty, traverse paths, or use characters outside ``[A-Za-z0-9._-]``."""
    if not name:
        raise ValidationError("name cannot be empty")
    if ".." in name:
        raise ValidationError(f"invalid name {name!r}: path traversal not allowed")
    if not _NAME_RE.match(name):
        raise ValidationError(f"invalid name {name!r}: only [A-Za-z0-9._-] allowed")
    return name


def validate_key_type(key_type: str) -> str:
    if key_type not in constants.VALID_KEY_TYPES:
        raise ValidationError(
            f"invalid key type {key_type!r}, must be one of: {', '.join(constants.VALID_KEY_TYPES)}"
        )
    return key_type


def dedup(values: Iterable[str]) -> list[str]:
    """Drop repeats, keeping first-occurrence order."""
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def generate_secret(length: int) -> str:
    """Random alphanumeric string from the OS CSPRNG."""
    if length < 0:
        raise ValidationError("secret length cannot be negative")
    return "".join(secrets.choice(_SECRET_ALPHABET) for _ in range(length))


def match_credential(meta: CredentialMeta, query: str) -> bool:
    """Case-insensitive substring match on name, description, tags and services."""
    query = query.lower()
    if query in meta.name.lower():
        return True
    if meta.description and query in meta.description.lower():
        return True
    if any(query in tag.lower() for tag in meta.tags):
        return True
    return any(query in service.lower() for service in meta.services)


def load_policy(paths: VaultPaths) -> tuple[PolicySection, str | None]:
    """Read policy from the metadata file, best-effort.

    Returns
    -------
    tuple[PolicySection, str | None]
        Policy (default if unreadable) and a warning message if it could not be read
    """
    if not paths.metadata_file.exists():
        return PolicySection(), None
    try:
        return metadata.load(paths.metadata_file).policy, None
    except (MetadataError, VaultIOError) as exc:
        return PolicySection(), f"cannot read policy from {paths.metadata_file}: {exc}"


@dataclass(frozen=True)
class CredentialListing:
    """Row of ``list`` output."""

    name: str
    description: str | None
    tags: list[str]
    services: list[str]
    size_bytes: int | None
    modified: datetime | None

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "tags": self.tags,
            "services": self.services,
            "size_bytes": self.size_bytes,
            "modified": format_utc_iso8601(self.modified) if self.modified else None,
        }


@dataclass(frozen=True)
class VerificationCheck:
    passed: bool
    message: str


@dataclass(frozen=True)
class RotationPlan:
    """Dry-run preview of a rotation; nothing on disk is changed to build it."""

    name: str
    exists: bool
    key_type: str
    auto: bool
    length: int | None
    issues: list[str]

    @property
    def ready(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, object]:
        return {
            "action": "rotate",
            "credential": self.name,
            "exists": self.exists,
            "auto": self.auto,
            "length": self.length,
            "key_type": self.key_type,
            "issues": self.issues,
        }


def _to_bytes(secret: str | bytes) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)


def _check_secret(secret: bytes) -> None:
    if not secret:
        raise ValidationError("secret is empty")
    if len(secret) > constants.MAX_SECRET_SIZE:
        raise ValidationError(
            f"secret exceeds maximum size ({len(secret)} bytes, max {constants.MAX_SECRET_SIZE} bytes)"
        )


def _ensure_dir(path: Path, mode: int) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
        os.chmod(path, mode)
    except OSError as exc:
        raise VaultIOError(f"prepare directory {path}: {exc}", path=path) from exc


def _set_mode(path: Path, mode: int) -> None:
    try:
        os.chmod(path, mode)
    except OSError as exc:
        raise VaultIOError(f"set permissions {mode:o} on {path}: {exc}", path=path) from exc


class CredentialManager:
    """Create, rotate, roll back, delete and read sealed credentials.

    Example:
        >>> manager = CredentialManager(VaultPaths.from_root("/var/lib/credvault"), SystemdCredsEngine())
        >>> manager.create("db_password", "s3cret", tags=["db"])
        >>> manager.rotate("db_password", auto=True, length=48)
        >>> manager.rollback("db_password")
    """

    def __init__(
        self,
        paths: VaultPaths,
        engine: SealingEngine,
        *,
        policy: PolicySection | None = None,
    ) -> None:
        """Initialize the manager.

        Parameters
        ----------
        paths
            Vault layout
        engine
            Sealing engine used to seal/unseal blobs
        policy
            Operator policy; read from the metadata file when omitted
        """
        self.paths = paths
        self.engine = engine
        if policy is None:
            policy, warning = load_policy(paths)
            if warning:
                vault_logger.warning(warning)
        self.policy = policy

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def resolve_key_type(self, explicit: str | None) -> str:
        """Explicit key type, else ``host+tpm2`` when hardware binding is available, else ``host``."""
        if explicit is not None:
            return validate_key_type(explicit)
        if self.engine.key_binding_available():
            return constants.DEFAULT_KEY_TYPE_WITH_TPM2
        return constants.DEFAULT_KEY_TYPE_WITHOUT_TPM2

    def _check_key_policy(self, key_type: str) -> None:
        if (
            self.policy.forbid_host_only_when_tpm2
            and key_type == "host"
            and self.engine.key_binding_available()
        ):
            raise ValidationError("policy: host-only encryption forbidden when TPM2 is available (use host+tpm2)")

    def _check_services(self, services: Iterable[str]) -> None:
        for service in services:
            if not self.policy.is_service_allowed(service):
                raise ValidationError(f"policy: service {service!r} not allowed (service_allowlist enforced)")

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def _audit(self, ctx: AuditContext, success: bool, error: str | None = None) -> None:
        try:
            audit_log.log_with_result(self.paths, ctx, success, error)
        except Exception as exc:
            audit_logger.warning("audit log failed for {} {}: {}", ctx.action, ctx.credential, exc)

    def _audited(self, ctx: AuditContext, operation: Callable[[], T]) -> T:
        try:
            with timing_context(ctx.action, credential=ctx.credential):
                result = operation()
        except Exception as exc:
            self._audit(ctx, success=False, error=str(exc))
            raise
        self._audit(ctx, success=True)
        return result

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _temp_secret(self, secret: bytes) -> Iterator[Path]:
        """Private plaintext file inside the credstore, removed on exit."""
        try:
            tmp_file = tempfile.NamedTemporaryFile(
                dir=self.paths.credstore, prefix=constants.SECRET_TEMP_PREFIX, delete=False
            )
        except OSError as exc:
            raise VaultIOError(f"create temp file in {self.paths.credstore}: {exc}") from exc

        tmp_path = Path(tmp_file.name)
        try:
            try:
                with tmp_file:
                    os.fchmod(tmp_file.fileno(), 0o600)
                    tmp_file.write(secret)
                    tmp_file.flush()
                    os.fsync(tmp_file.fileno())
            except OSError as exc:
                raise VaultIOError(f"write temp secret {tmp_path}: {exc}", path=tmp_path) from exc
            yield tmp_path
        finally:
            with suppress(FileNotFoundError):
                tmp_path.unlink()

    def _record_metadata(
        self,
        name: str,
        key_type: str,
        description: str | None,
        tags: list[str] | None,
        services: list[str] | None,
    ) -> CredentialMeta:
        """Merge-update the registry entry for ``name`` and save it atomically."""
        vault = metadata.load(self.paths.metadata_file)
        metadata.ensure_defaults(vault, str(self.paths.credstore))

        now = format_utc_iso8601(get_current_utc())
        meta = vault.find(name) or CredentialMeta(name=name)
        if meta.created_at is None:
            meta.created_at = now
        meta.rotated_at = now
        meta.encryption_key = key_type
        if description is not None:
            meta.description = description
        if tags:
            meta.tags = dedup(tags)
        if services:
            meta.services = dedup(services)

        metadata.upsert_credential(vault, meta)
        metadata.save(self.paths.metadata_file, vault)
        return meta

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        secret: str | bytes,
        *,
        key_type: str | None = None,
        binding_spec: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
        services: list[str] | None = None,
    ) -> Path:
        """Seal ``secret`` as credential ``name`` and record its metadata.

        Parameters
        ----------
        name
            Credential name
        secret
            Plaintext secret
        key_type
            Key type (host, tpm2, host+tpm2, auto); auto-detected when None
        binding_spec
            TPM2 PCR binding (e.g. "7" or "7+11")
        description, tags, services
            Metadata; only overwritten when provided

        Returns
        -------
        Path
            Sealed blob path

        Raises
        ------
        ValidationError
            Bad name, key type, policy violation or secret size
        VaultIOError
            Directory/file preparation failed
        SealingError
            Sealing engine failed (no metadata change is persisted)
        """
        ctx = AuditContext(
            action="create",
            credential=name,
            tpm2_pcrs=binding_spec,
            service_context=",".join(services) if services else None,
        )

        def _create() -> Path:
            validate_name(name)
            resolved_key = self.resolve_key_type(key_type)
            ctx.with_key = resolved_key
            self._check_key_policy(resolved_key)
            self._check_services(services or [])
            plaintext = _to_bytes(secret)
            _check_secret(plaintext)

            output = self.paths.cred_path(name)
            with acquire_exclusive(self.paths.vault_lock):
                _ensure_dir(self.paths.credstore, constants.CREDSTORE_DIR_MODE)
                self._sweep_scratch_files()
                with self._temp_secret(plaintext) as tmp_secret:
                    self.engine.seal(resolved_key, name, tmp_secret, output, binding_spec)
                _set_mode(output, constants.CRED_FILE_MODE)
                self._record_metadata(name, resolved_key, description, tags, services)

            vault_logger.info("Created credential {} ({})", name, resolved_key)
            return output

        return self._audited(ctx, _create)

    def rotate(
        self,
        name: str,
        secret: str | bytes | None = None,
        *,
        auto: bool = False,
        length: int = constants.DEFAULT_AUTO_SECRET_LENGTH,
        key_type: str | None = None,
        binding_spec: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
        services: list[str] | None = None,
    ) -> Path:
        """Replace credential ``name`` with a newly sealed secret.

        The live blob is copied to ``<name>.cred.prev`` before being replaced.
        If the final atomic move fails, the backup is restored over the live
        path and the error is raised; metadata is only updated after a
        successful move.

        Parameters
        ----------
        name
            Credential name
        secret
            New plaintext secret (mutually exclusive with ``auto``)
        auto
            Generate a random alphanumeric secret of ``length`` characters
        length
            Length of the auto-generated secret
        key_type, binding_spec, description, tags, services
            As for :meth:`create`

        Returns
        -------
        Path
            Live sealed blob path
        """
        ctx = AuditContext(
            action="rotate",
            credential=name,
            reason="auto-generated secret" if auto else None,
            tpm2_pcrs=binding_spec,
            service_context=",".join(services) if services else None,
        )

        def _rotate() -> Path:
            validate_name(name)
            resolved_key = self.resolve_key_type(key_type)
            ctx.with_key = resolved_key
            self._check_key_policy(resolved_key)
            self._check_services(services or [])

            if auto and secret is not None:
                raise ValidationError("an explicit secret and auto-generation cannot be combined")
            if auto:
                min_length = self.policy.min_auto_secret_length
                if min_length is not None and length < min_length:
                    raise ValidationError(
                        f"policy: auto-generated secret length {length} below minimum {min_length}"
                    )
                plaintext = generate_secret(length).encode("ascii")
            elif secret is None:
                raise ValidationError("a new secret is required (or use auto-generation)")
            else:
                plaintext = _to_bytes(secret)
            _check_secret(plaintext)

            with acquire_exclusive(self.paths.vault_lock):
                final_path = self._replace_blob(name, plaintext, resolved_key, binding_spec)
                self._record_metadata(name, resolved_key, description, tags, services)

            vault_logger.info("Rotated credential {} ({})", name, resolved_key)
            return final_path

        return self._audited(ctx, _rotate)

    def _replace_blob(self, name: str, plaintext: bytes, key_type: str, binding_spec: str | None) -> Path:
        """Seal to a temp blob, back up the live blob, then atomically swap. Caller holds the vault lock."""
        _ensure_dir(self.paths.credstore, constants.CREDSTORE_DIR_MODE)
        self._sweep_scratch_files()
        final_path = self.paths.cred_path(name)
        prev_path = self.paths.backup_path(name)
        stash_path = self._stash_path(name)

        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.paths.credstore, prefix=constants.BLOB_TEMP_PREFIX, suffix=constants.BLOB_TEMP_SUFFIX
            )
            os.close(fd)
        except OSError as exc:
            raise VaultIOError(f"create temp output in {self.paths.credstore}: {exc}") from exc
        tmp_output = Path(tmp_name)

        try:
            with self._temp_secret(plaintext) as tmp_secret:
                self.engine.seal(key_type, name, tmp_secret, tmp_output, binding_spec)

            stashed = backed_up = False
            if final_path.is_file():
                had_prev = prev_path.is_file()
                try:
                    # The older backup is set aside until the new blob is live
                    if had_prev:
                        os.replace(prev_path, stash_path)
                        stashed = True
                    shutil.copy2(final_path, prev_path)
                    backed_up = True
                except OSError as exc:
                    if stashed or not had_prev:
                        self._unstash_backup(stash_path, prev_path, stashed)
                    raise VaultIOError(f"backup {final_path} to {prev_path}: {exc}", path=final_path) from exc

            try:
                os.replace(tmp_output, final_path)
            except OSError as exc:
                if backed_up:
                    self._restore_backup(prev_path, final_path)
                    self._unstash_backup(stash_path, prev_path, stashed)
                raise VaultIOError(f"persist rotated credential {final_path}: {exc}", path=final_path) from exc

            if stashed:
                with suppress(FileNotFoundError):
                    stash_path.unlink()
        finally:
            with suppress(FileNotFoundError):
                tmp_output.unlink()

        _set_mode(final_path, constants.CRED_FILE_MODE)
        return final_path

    def _stash_path(self, name: str) -> Path:
        backup = self.paths.backup_path(name)
        return backup.with_name(backup.name + constants.BACKUP_STASH_SUFFIX)

    @staticmethod
    def _restore_backup(prev_path: Path, final_path: Path) -> None:
        if not prev_path.is_file():
            return
        try:
            os.replace(prev_path, final_path)
        except OSError as exc:
            raise VaultIOError(
                f"restore {final_path} from {prev_path} failed after aborted rotation: {exc}", path=final_path
            ) from exc
        vault_logger.warning("Rotation aborted, restored previous blob for {}", final_path.name)

    @staticmethod
    def _unstash_backup(stash_path: Path, prev_path: Path, stashed: bool) -> None:
        """Put the backup that predates an aborted rotation back in place."""
        try:
            if stashed:
                os.replace(stash_path, prev_path)
            else:
                with suppress(FileNotFoundError):
                    prev_path.unlink()
        except OSError as exc:
            raise VaultIOError(f"restore backup {prev_path} after aborted rotation: {exc}", path=prev_path) from exc

    def _sweep_scratch_files(self) -> None:
        """Clean up scratch files left by an interrupted mutation. Caller holds the vault lock."""
        try:
            entries = list(self.paths.credstore.iterdir())
        except FileNotFoundError:
            return
        except OSError as exc:
            raise VaultIOError(f"scan {self.paths.credstore}: {exc}", path=self.paths.credstore) from exc

        for entry in entries:
            name = entry.name
            try:
                if name.startswith(constants.SECRET_TEMP_PREFIX) or (
                    name.startswith(constants.BLOB_TEMP_PREFIX) and name.endswith(constants.BLOB_TEMP_SUFFIX)
                ):
                    entry.unlink()
                    vault_logger.warning("Removed stale scratch file {}", entry)
                elif name.endswith(constants.BACKUP_SUFFIX + constants.BACKUP_STASH_SUFFIX):
                    prev_path = entry.with_name(name.removesuffix(constants.BACKUP_STASH_SUFFIX))
                    if prev_path.exists():
                        entry.unlink()
                    else:
                        os.replace(entry, prev_path)
                    vault_logger.warning("Recovered stale backup stash {}", entry)
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise VaultIOError(f"remove stale file {entry}: {exc}", path=entry) from exc

    def rollback(self, name: str) -> Path:
        """Restore the ``.prev`` backup over the live blob, consuming the backup.

        Metadata is left as-is and still describes the rotation being undone.

        Raises
        ------
        NotFoundError
            If no backup exists
        """
        ctx = AuditContext(action="rollback-rotate", credential=name)

        def _rollback() -> Path:
            validate_name(name)
            cred_path = self.paths.cred_path(name)
            prev_path = self.paths.backup_path(name)

            with acquire_exclusive(self.paths.vault_lock):
                if not prev_path.is_file():
                    raise NotFoundError(f"no .prev backup found for {name!r}, cannot rollback")
                try:
                    os.replace(prev_path, cred_path)
                except OSError as exc:
                    raise VaultIOError(f"restore {name} from {prev_path}: {exc}", path=prev_path) from exc

            vault_logger.info("Rolled back credential {}", name)
            return cred_path

        return self._audited(ctx, _rollback)

    def delete(self, name: str) -> Path:
        """Remove the live blob and its registry entry.

        A lingering ``.prev`` backup is left in place.

        Raises
        ------
        NotFoundError
            If the credential blob does not exist
        """
        ctx = AuditContext(action="delete", credential=name)

        def _delete() -> Path:
            validate_name(name)
            cred_path = self.paths.cred_path(name)

            with acquire_exclusive(self.paths.vault_lock):
                if not cred_path.exists():
                    raise NotFoundError(f"credential not found: {cred_path}")
                try:
                    cred_path.unlink()
                except OSError as exc:
                    raise VaultIOError(f"remove {cred_path}: {exc}", path=cred_path) from exc

                if self.paths.metadata_file.exists():
                    vault = metadata.load(self.paths.metadata_file)
                    metadata.remove_credential(vault, name)
                    metadata.save(self.paths.metadata_file, vault)

            vault_logger.info("Deleted credential {}", name)
            return cred_path

        return self._audited(ctx, _delete)

    def initialize(self) -> bool:
        """Create the credstore and a default metadata file.

        Returns
        -------
        bool
            Whether hardware key binding is available
        """
        with acquire_exclusive(self.paths.vault_lock):
            _ensure_dir(self.paths.credstore, constants.CREDSTORE_DIR_MODE)
            vault = metadata.load(self.paths.metadata_file)
            metadata.ensure_defaults(vault, str(self.paths.credstore))
            metadata.save(self.paths.metadata_file, vault)

        vault_logger.info("Vault initialized at {}", self.paths.root)
        return self.engine.key_binding_available()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(
        self,
        name: str,
        *,
        output: Path | None = None,
        confirm: bool = False,
        reason: str | None = None,
        newline: str = "no",
    ) -> Path | bytes:
        """Unseal a credential to a file, or return its plaintext.

        Returning plaintext requires ``confirm`` and a non-empty ``reason``.
        """
        ctx = AuditContext(
            action="get",
            credential=name,
            reason=reason,
            output_mode="file" if output is not None else "stdout",
            target_path=str(output) if output is not None else None,
        )

        def _get() -> Path | bytes:
            validate_name(name)
            cred_path = self.paths.cred_path(name)
            if not cred_path.is_file():
                raise NotFoundError(f"credential not found: {cred_path}")

            if output is not None:
                self.engine.unseal(cred_path, output)
                _set_mode(output, constants.CRED_FILE_MODE)
                return output

            if not confirm:
                raise ValidationError("refusing to output secret without explicit confirmation")
            if not (reason or "").strip():
                raise ValidationError("a reason is required when outputting a secret")
            return self.engine.unseal_to_bytes(cred_path, newline)

        return self._audited(ctx, _get)

    def _require_metadata(self) -> list[CredentialMeta]:
        if not self.paths.metadata_file.exists():
            raise NotFoundError(f"metadata not found: {self.paths.metadata_file}")
        return metadata.load(self.paths.metadata_file).credentials

    def describe(self, name: str) -> CredentialMeta:
        validate_name(name)
        for meta in self._require_metadata():
            if meta.name == name:
                return meta
        raise NotFoundError(f"metadata not found for {name}")

    def search(self, query: str) -> list[CredentialMeta]:
        return [meta for meta in self._require_metadata() if match_credential(meta, query)]

    def list_credentials(self, *, service: str | None = None, tag: str | None = None) -> list[CredentialListing]:
        """List credentials from metadata (filtered), or by scanning the credstore when there is none."""
        items: list[CredentialListing] = []

        if self.paths.metadata_file.exists():
            for meta in metadata.load(self.paths.metadata_file).credentials:
                if service is not None and normalize_service(service) not in {
                    normalize_service(linked) for linked in meta.services
                }:
                    continue
                if tag is not None and tag not in meta.tags:
                    continue
                cred_path = self.paths.cred_path(meta.name)
                size: int | None = None
                modified: datetime | None = None
                if cred_path.is_file():
                    stat = cred_path.stat()
                    size = stat.st_size
                    modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
                items.append(
                    CredentialListing(
                        name=meta.name,
                        description=meta.description,
                        tags=list(meta.tags),
                        services=list(meta.services),
                        size_bytes=size,
                        modified=modified,
                    )
                )
        elif self.paths.credstore.is_dir():
            for entry in scan_credstore(self.paths.credstore):
                items.append(
                    CredentialListing(
                        name=entry.name,
                        description=None,
                        tags=[],
                        services=[],
                        size_bytes=entry.size_bytes,
                        modified=entry.modified,
                    )
                )

        return items

    def verify_rotation(self, name: str) -> list[VerificationCheck]:
        """Post-rotation checks: blob present, unsealable, and described in metadata."""
        validate_name(name)
        checks: list[VerificationCheck] = []
        cred_path = self.paths.cred_path(name)

        if not cred_path.is_file():
            checks.append(VerificationCheck(False, f"sealed blob missing: {name}"))
        else:
            checks.append(VerificationCheck(True, f"sealed blob exists: {name}"))
            with tempfile.TemporaryDirectory() as tmpdir:
                try:
                    self.engine.unseal(cred_path, Path(tmpdir) / "plaintext")
                    checks.append(VerificationCheck(True, f"unsealable: {name}"))
                except VaultError as exc:
                    checks.append(VerificationCheck(False, f"cannot unseal: {name} ({exc})"))

        if not self.paths.metadata_file.exists():
            checks.append(VerificationCheck(False, f"metadata file missing: {self.paths.metadata_file}"))
        else:
            meta = metadata.load(self.paths.metadata_file).find(name)
            if meta is None:
                checks.append(VerificationCheck(False, f"metadata missing for {name}"))
            else:
                checks.append(VerificationCheck(True, "metadata present"))
                if meta.rotated_at is None:
                    checks.append(VerificationCheck(False, "rotated_at not set"))

        return checks

    def plan_rotation(
        self,
        name: str,
        *,
        auto: bool = False,
        length: int = constants.DEFAULT_AUTO_SECRET_LENGTH,
        key_type: str | None = None,
        services: list[str] | None = None,
    ) -> RotationPlan:
        """Preview :meth:`rotate` without touching the vault.

        Policy violations that :meth:`rotate` would reject are reported as
        issues instead of raised. A bad name or key type still raises.
        """
        validate_name(name)
        resolved_key = self.resolve_key_type(key_type)
        exists = self.paths.cred_path(name).is_file()

        issues: list[str] = []
        if not exists:
            issues.append(f"credential {name!r} does not exist (will create new)")
        if not self.paths.credstore.is_dir():
            issues.append("credstore directory missing")
        if auto:
            min_length = self.policy.min_auto_secret_length
            if min_length is not None and length < min_length:
                issues.append(f"auto length {length} below policy minimum {min_length}")
        try:
            self._check_key_policy(resolved_key)
        except ValidationError as exc:
            issues.append(str(exc))
        try:
            self._check_services(services or [])
        except ValidationError as exc:
            issues.append(str(exc))

        return RotationPlan(
            name=name,
            exists=exists,
            key_type=resolved_key,
            auto=auto,
            length=length if auto else None,
            issues=issues,
        )
