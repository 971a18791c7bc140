"""Permissions, file names and limits shared across the vault."""

from __future__ import annotations

DEFAULT_VAULT_ROOT = "/var/lib/credvault"

# Directory/file modes
CREDSTORE_DIR_MODE = 0o700
CRED_FILE_MODE = 0o600
METADATA_FILE_MODE = 0o640
AUDIT_LOG_MODE = 0o640

# File names inside the vault root
CREDSTORE_DIRNAME = "credstore"
METADATA_FILENAME = "vault.yaml"
VAULT_LOCK_FILENAME = "vault.lock"
AUDIT_LOCK_FILENAME = "audit.lock"
AUDIT_LOG_FILENAME = "audit.log"

CRED_EXTENSION = ".cred"
BACKUP_SUFFIX = ".prev"

# Scratch files in the credstore, owned by the mutation holding vault.lock
SECRET_TEMP_PREFIX = ".secret-"
BLOB_TEMP_PREFIX = "cred-"
BLOB_TEMP_SUFFIX = CRED_EXTENSION + ".tmp"
BACKUP_STASH_SUFFIX = ".old"

# 1 MiB
MAX_SECRET_SIZE = 1_048_576
DEFAULT_AUTO_SECRET_LENGTH = 32

VALID_KEY_TYPES = ("host", "tpm2", "host+tpm2", "auto")
DEFAULT_KEY_TYPE_WITH_TPM2 = "host+tpm2"
DEFAULT_KEY_TYPE_WITHOUT_TPM2 = "host"

# Audit hashing scheme; records without hash_version predate it
AUDIT_HASH_VERSION = 2
