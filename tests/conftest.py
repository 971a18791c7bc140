"""Shared fixtures for credvault tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make src importable without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from credvault.core.errors import SealingError  # noqa: E402
from credvault.core.paths import VaultPaths  # noqa: E402

SEAL_PREFIX = b"SEALED:"


class FakeEngine:
    """In-process sealing engine: blobs are the plaintext with a marker prefix."""

    def __init__(self, *, tpm2: bool = False) -> None:
        self.tpm2 = tpm2
        self.fail_seal = False
        self.seal_calls: list[tuple[str, str, str | None]] = []
        self.setup_calls = 0

    def seal(self, key_spec, name, plaintext_path, output_path, binding_spec=None):
        if self.fail_seal:
            raise SealingError("encrypt failed (exit 1): simulated", stderr="simulated")
        self.seal_calls.append((key_spec, name, binding_spec))
        Path(output_path).write_bytes(SEAL_PREFIX + Path(plaintext_path).read_bytes())

    def _plaintext(self, blob_path) -> bytes:
        data = Path(blob_path).read_bytes()
        if not data.startswith(SEAL_PREFIX):
            raise SealingError("decrypt failed (exit 1): bad blob")
        return data[len(SEAL_PREFIX) :]

    def unseal(self, blob_path, output_path):
        Path(output_path).write_bytes(self._plaintext(blob_path))

    def unseal_to_bytes(self, blob_path, newline_mode=None):
        data = self._plaintext(blob_path)
        if newline_mode == "yes":
            data += b"\n"
        return data

    def key_binding_available(self) -> bool:
        return self.tpm2

    def setup(self) -> None:
        self.setup_calls += 1


def unseal_blob(path: Path) -> bytes:
    """Plaintext stored in a fake-sealed blob."""
    data = path.read_bytes()
    assert data.startswith(SEAL_PREFIX)
    return data[len(SEAL_PREFIX) :]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment out of vault resolution and settings."""
    for var in (
        "CREDVAULT_ROOT",
        "CREDVAULT_NON_INTERACTIVE",
        "CREDVAULT_LOG_LEVEL",
        "CREDVAULT_LOG_DIR",
        "CREDVAULT_SEAL_BINARY",
        "SUDO_USER",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("USER", "tester")


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def vault_paths(tmp_path: Path) -> VaultPaths:
    return VaultPaths.from_root(tmp_path / "vault")
