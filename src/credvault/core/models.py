"""Metadata models persisted in ``vault.yaml``."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .time import format_utc_iso8601

__all__ = [
    "CredentialMeta",
    "PolicySection",
    "VaultFile",
    "VaultSection",
    "normalize_service",
]

CURRENT_METADATA_VERSION = 1


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        # yaml.safe_load turns unquoted timestamps into datetimes
        return format_utc_iso8601(value)
    return str(value)


def normalize_service(service: str) -> str:
    """Service name without a trailing ``.service`` unit suffix."""
    return service.removesuffix(".service")


def _str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list")
    return [str(item) for item in value]


@dataclass
class CredentialMeta:
    """Metadata for one named credential.

    Attributes
    ----------
    name : str
        Unique credential name (``[A-Za-z0-9._-]+``)
    description : str | None
        Free-text description
    created_at : str | None
        ISO-8601 UTC; set once on first create
    rotated_at : str | None
        ISO-8601 UTC; refreshed on every create/rotate
    encryption_key : str | None
        Key type label used for the active blob
    tags : list[str]
        Tags
    services : list[str]
        Linked service names
    """

    name: str
    description: str | None = None
    created_at: str | None = None
    rotated_at: str | None = None
    encryption_key: str | None = None
    tags: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
            "rotated_at": self.rotated_at,
            "encryption_key": self.encryption_key,
            "tags": list(self.tags),
            "services": list(self.services),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialMeta:
        if not isinstance(data, dict):
            raise ValueError("credential entry must be a mapping")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("credential entry without a name")
        return cls(
            name=name,
            description=_opt_str(data.get("description")),
            created_at=_opt_str(data.get("created_at")),
            rotated_at=_opt_str(data.get("rotated_at")),
            encryption_key=_opt_str(data.get("encryption_key")),
            tags=_str_list(data.get("tags"), "tags"),
            services=_str_list(data.get("services"), "services"),
        )

    def __str__(self) -> str:
        if self.description:
            return f"{self.name} ({self.description})"
        return self.name


@dataclass
class VaultSection:
    """Registry version and default credstore location."""

    version: int = CURRENT_METADATA_VERSION
    credstore_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "credstore_path": self.credstore_path}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> VaultSection:
        data = data or {}
        version = data.get("version", CURRENT_METADATA_VERSION)
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError("vault.version must be an integer")
        return cls(version=version, credstore_path=_opt_str(data.get("credstore_path")))


@dataclass
class PolicySection:
    """Operator policy applied before any mutation.

    Attributes
    ----------
    service_allowlist : list[str]
        Services credentials may be linked to (empty = no restriction)
    min_auto_secret_length : int | None
        Minimum length accepted for auto-generated secrets
    forbid_host_only_when_tpm2 : bool
        Reject ``host`` key type when hardware key binding is available
    """

    service_allowlist: list[str] = field(default_factory=list)
    min_auto_secret_length: int | None = None
    forbid_host_only_when_tpm2: bool = False

    def is_service_allowed(self, service: str) -> bool:
        if not self.service_allowlist:
            return True
        wanted = normalize_service(service)
        return any(normalize_service(allowed) == wanted for allowed in self.service_allowlist)

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_allowlist": list(self.service_allowlist),
            "min_auto_secret_length": self.min_auto_secret_length,
            "forbid_host_only_when_tpm2": self.forbid_host_only_when_tpm2,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PolicySection:
        data = data or {}
        min_len = data.get("min_auto_secret_length")
        if min_len is not None and (isinstance(min_len, bool) or not isinstance(min_len, int)):
            raise ValueError("policy.min_auto_secret_length must be an integer")
        return cls(
            service_allowlist=_str_list(data.get("service_allowlist"), "policy.service_allowlist"),
            min_auto_secret_length=min_len,
            forbid_host_only_when_tpm2=bool(data.get("forbid_host_only_when_tpm2", False)),
        )


@dataclass
class VaultFile:
    """Whole registry document."""

    vault: VaultSection = field(default_factory=VaultSection)
    policy: PolicySection = field(default_factory=PolicySection)
    credentials: list[CredentialMeta] = field(default_factory=list)

    def find(self, name: str) -> CredentialMeta | None:
        for cred in self.credentials:
            if cred.name == name:
                return cred
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "vault": self.vault.to_dict(),
            "policy": self.policy.to_dict(),
            "credentials": [cred.to_dict() for cred in self.credentials],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VaultFile:
        credentials = data.get("credentials") or []
        if not isinstance(credentials, list):
            raise ValueError("credentials must be a list")
        return cls(
            vault=VaultSection.from_dict(data.get("vault")),
            policy=PolicySection.from_dict(data.get("policy")),
            credentials=[CredentialMeta.from_dict(item) for item in credentials],
        )
