"""Append-only, hash-chained audit ledger.

The ledger is a UTF-8 JSONL file (``audit.log`` in the vault root). Every
record carries:

- ``prev_hash``: hash of the preceding record
- ``entry_hash``: SHA-256 of the record's own canonical JSON (keys sorted
  recursively, ``entry_hash`` excluded)
- ``hash_version``: hashing scheme discriminator (records without it are
  legacy and are chained by a digest of their raw line)

The chain head is never cached in-process: each append recovers the previous
hash by reading the tail of the file under the audit lock, so the ledger is
stateless between invocations.

Verification reports *all* violations. Altering a historical record is caught
twice: its own ``entry_hash`` no longer matches its content, and the next
record's ``prev_hash`` no longer matches the recomputed hash.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from ..observability.loguru_config import get_logger
from . import constants
from .errors import VaultIOError
from .file_lock import acquire_exclusive
from .paths import VaultPaths
from .time import format_utc_iso8601, get_current_utc

__all__ = [
    "AuditContext",
    "AuditRecord",
    "AuditResult",
    "append",
    "canonicalize",
    "compute_entry_hash",
    "detect_actor",
    "last_line_hash",
    "log_action",
    "log_with_result",
    "read_log",
    "verify_chain",
]

audit_logger = get_logger("audit")

TAIL_CHUNK_SIZE = 8192

# Optional fields in serialization order (after the required core fields)
_OPTIONAL_FIELDS = (
    "prev_hash",
    "reason",
    "result",
    "output_mode",
    "target_path",
    "with_key",
    "tpm2_pcrs",
    "service_context",
    "entry_hash",
    "hash_version",
)


@dataclass(frozen=True)
class AuditResult:
    """Outcome of the audited action."""

    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditResult:
        error = data.get("error")
        return cls(success=bool(data.get("success", False)), error=None if error is None else str(error))


@dataclass
class AuditRecord:
    """One ledger entry.

    Attributes
    ----------
    timestamp : str
        ISO-8601 UTC timestamp, kept verbatim as written
    action : str
        Action identifier (create, rotate, delete, rollback-rotate, get, ...)
    actor : str
        Invoking user (``alice(sudo)`` when run through sudo)
    credential : str
        Credential name
    metadata_only : bool
        Always true: records never contain secret material
    prev_hash : str | None
        Hash of the preceding record
    reason, output_mode, target_path, with_key, tpm2_pcrs, service_context
        Optional forensic context
    result : AuditResult | None
        Outcome of the action
    entry_hash : str | None
        Canonical content hash of this record
    hash_version : int | None
        Hash scheme; None for legacy records
    """

    timestamp: str
    action: str
    actor: str
    credential: str
    metadata_only: bool = True
    prev_hash: str | None = None
    reason: str | None = None
    result: AuditResult | None = None
    output_mode: str | None = None
    target_path: str | None = None
    with_key: str | None = None
    tpm2_pcrs: str | None = None
    service_context: str | None = None
    entry_hash: str | None = None
    hash_version: int | None = None
    raw_line: str | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Serializable form; ``None`` optionals are omitted."""
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "action": self.action,
            "actor": self.actor,
            "credential": self.credential,
            "metadata_only": self.metadata_only,
        }
        for name in _OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            data[name] = value.to_dict() if isinstance(value, AuditResult) else value
        return data

    def to_json(self) -> str:
        """Single-line JSON (no trailing newline)."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, raw_line: str | None = None) -> AuditRecord:
        """Build a record from parsed JSON.

        Unknown keys are ignored, missing optionals default to None.

        Raises
        ------
        ValueError
            If a required core field is missing or mistyped
        """
        for key in ("timestamp", "action", "actor", "credential"):
            if not isinstance(data.get(key), str):
                raise ValueError(f"missing or invalid field: {key}")

        result = data.get("result")
        hash_version = data.get("hash_version")
        if hash_version is not None and (isinstance(hash_version, bool) or not isinstance(hash_version, int)):
            raise ValueError("invalid field: hash_version")

        known = {f.name for f in fields(cls)} - {"result", "raw_line", "hash_version", "metadata_only"}
        kwargs = {key: data[key] for key in known if key in data}

        return cls(
            **kwargs,
            metadata_only=bool(data.get("metadata_only", True)),
            result=AuditResult.from_dict(result) if isinstance(result, dict) else None,
            hash_version=hash_version,
            raw_line=raw_line,
        )


@dataclass
class AuditContext:
    """Caller-supplied context for one ledger append."""

    action: str
    credential: str
    reason: str | None = None
    output_mode: str | None = None
    target_path: str | None = None
    with_key: str | None = None
    tpm2_pcrs: str | None = None
    service_context: str | None = None


def detect_actor() -> str:
    """Identify the invoking operator from the environment."""
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user:
        return f"{sudo_user}(sudo)"
    return os.environ.get("USER") or "unknown"


def canonicalize(value: Any) -> Any:
    """Recursively sort object keys; arrays and scalars are preserved.

    Example
    -------
    >>> json.dumps(canonicalize({"b": 1, "a": {"d": 2, "c": 3}}))
    '{"a": {"c": 3, "d": 2}, "b": 1}'
    """
    if isinstance(value, dict):
        return {key: canonicalize(value[key]) for key in sorted(value)}
    if isinstance(value, list | tuple):
        return [canonicalize(item) for item in value]
    return value


def _digest(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def compute_entry_hash(record: AuditRecord | dict[str, Any]) -> str:
    """SHA-256 (lowercase hex) of the canonical JSON, ``entry_hash`` excluded."""
    data = record.to_dict() if isinstance(record, AuditRecord) else dict(record)
    data.pop("entry_hash", None)
    canonical = json.dumps(canonicalize(data), ensure_ascii=False, separators=(",", ":"))
    return _digest(canonical)


def _hash_of_line(line: bytes) -> str:
    """Chain hash for a raw ledger line: its entry_hash, else a raw-line digest."""
    try:
        data = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        data = None
    if isinstance(data, dict) and isinstance(data.get("entry_hash"), str):
        return data["entry_hash"]
    return _digest(line)


def last_line_hash(path: Path) -> str | None:
    """Return the chain hash of the last non-blank line.

    Reads backwards from EOF in fixed-size chunks so a single append never
    loads the whole ledger.
    """
    try:
        handle = path.open("rb")
    except FileNotFoundError:
        return None

    with handle:
        handle.seek(0, os.SEEK_END)
        offset = handle.tell()
        buf = b""

        while offset > 0:
            read_size = min(TAIL_CHUNK_SIZE, offset)
            offset -= read_size
            handle.seek(offset)
            buf = handle.read(read_size) + buf

            content = buf.rstrip()
            if not content:
                continue

            newline = content.rfind(b"\n")
            if newline != -1:
                return _hash_of_line(content[newline + 1 :].strip())
            if offset == 0:
                return _hash_of_line(content.strip())

    return None


def _ends_with_newline(path: Path) -> bool:
    """Whether the ledger is empty or its last byte is a newline."""
    try:
        handle = path.open("rb")
    except FileNotFoundError:
        return True

    with handle:
        handle.seek(0, os.SEEK_END)
        if handle.tell() == 0:
            return True
        handle.seek(-1, os.SEEK_END)
        return handle.read(1) == b"\n"


def _append_line(path: Path, line: str) -> None:
    try:
        # A torn tail from an interrupted append must not swallow this record
        prefix = "" if _ends_with_newline(path) else "\n"
        with path.open("a", encoding="utf-8") as handle:
            handle.write(prefix + line + "\n")
            handle.flush()
            os.fsync(handle.fileno())
        # Re-tighten on every append in case something relaxed the mode
        os.chmod(path, constants.AUDIT_LOG_MODE)
    except OSError as exc:
        raise VaultIOError(f"append audit log {path}: {exc}", path=path) from exc


def append(paths: VaultPaths, record: AuditRecord) -> AuditRecord:
    """Chain, hash and append ``record`` under the audit lock.

    Any ``prev_hash``/``entry_hash``/``hash_version`` on the input is
    overwritten.

    Returns
    -------
    AuditRecord
        The record as written
    """
    paths.root.mkdir(parents=True, exist_ok=True)

    with acquire_exclusive(paths.audit_lock):
        record.prev_hash = last_line_hash(paths.audit_log)
        record.hash_version = constants.AUDIT_HASH_VERSION
        record.entry_hash = None
        record.entry_hash = compute_entry_hash(record)

        line = record.to_json()
        _append_line(paths.audit_log, line)
        record.raw_line = line

    audit_logger.debug("Appended audit record {} for {}", record.action, record.credential)
    return record


def log_action(paths: VaultPaths, action: str, credential: str, actor: str | None = None) -> AuditRecord:
    """Append a simple record with no outcome or context."""
    record = AuditRecord(
        timestamp=format_utc_iso8601(get_current_utc()),
        action=action,
        actor=actor or detect_actor(),
        credential=credential,
    )
    return append(paths, record)


def log_with_result(
    paths: VaultPaths,
    ctx: AuditContext,
    success: bool,
    error: str | None = None,
) -> AuditRecord:
    """Append a record with full forensic context and outcome."""
    record = AuditRecord(
        timestamp=format_utc_iso8601(get_current_utc()),
        action=ctx.action,
        actor=detect_actor(),
        credential=ctx.credential,
        reason=ctx.reason,
        result=AuditResult(success=success, error=error),
        output_mode=ctx.output_mode,
        target_path=ctx.target_path,
        with_key=ctx.with_key,
        tpm2_pcrs=ctx.tpm2_pcrs,
        service_context=ctx.service_context,
    )
    return append(paths, record)


def _iter_lines(path: Path) -> tuple[list[tuple[str, dict[str, Any], AuditRecord]], int]:
    """Parse the ledger into (raw_line, raw_dict, record) triples plus a malformed count."""
    parsed: list[tuple[str, dict[str, Any], AuditRecord]] = []
    malformed = 0

    try:
        handle = path.open(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return parsed, 0
    except OSError as exc:
        raise VaultIOError(f"open audit log {path}: {exc}", path=path) from exc

    with handle:
        for line in handle:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                data = json.loads(stripped)
                if not isinstance(data, dict):
                    raise ValueError("record is not an object")
                record = AuditRecord.from_dict(data, raw_line=stripped)
            except ValueError:
                # json.JSONDecodeError is a ValueError
                malformed += 1
                continue
            parsed.append((stripped, data, record))

    return parsed, malformed


def read_log(paths: VaultPaths, limit: int | None = None) -> list[AuditRecord]:
    """Read ledger records in append order.

    Parameters
    ----------
    paths
        Vault paths
    limit
        Return only the last ``limit`` records

    Returns
    -------
    list[AuditRecord]
        Records (empty if the ledger does not exist)
    """
    parsed, malformed = _iter_lines(paths.audit_log)
    if malformed:
        audit_logger.warning("{} malformed audit entries skipped", malformed)

    records = [record for _, _, record in parsed]
    if limit is not None:
        records = records[-limit:] if limit > 0 else []
    return records


def verify_chain(paths: VaultPaths) -> tuple[int, list[str]]:
    """Verify every record's self-hash and chain link.

    Returns
    -------
    tuple[int, list[str]]
        Total parsed records and human-readable violation descriptions
    """
    parsed, malformed = _iter_lines(paths.audit_log)
    if malformed:
        audit_logger.warning("{} malformed audit entries skipped during verification", malformed)

    errors: list[str] = []
    expected_prev: str | None = None

    for index, (raw_line, data, record) in enumerate(parsed):
        number = index + 1

        if index > 0 and record.prev_hash != expected_prev:
            errors.append(
                f"entry {number}: prev_hash mismatch (expected {expected_prev!r}, got {record.prev_hash!r})"
            )

        recomputed: str | None = None
        if record.hash_version == constants.AUDIT_HASH_VERSION:
            recomputed = compute_entry_hash(data)
            if record.entry_hash is None:
                errors.append(f"entry {number}: entry_hash missing for hash_version {record.hash_version}")
            elif recomputed != record.entry_hash:
                errors.append(f"entry {number}: entry_hash mismatch (tampered?)")

        # Next link is checked against what this record's content hashes to
        if recomputed is not None:
            expected_prev = recomputed
        elif record.entry_hash is not None:
            expected_prev = record.entry_hash
        else:
            expected_prev = _digest(raw_line)

    return len(parsed), errors
