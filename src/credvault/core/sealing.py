"""Sealing engine boundary.

All cryptography is delegated to an external tool. The vault core only needs
the four operations of :class:`SealingEngine`; :class:`SystemdCredsEngine`
implements them by shelling out to ``systemd-creds``.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Protocol

from ..observability.loguru_config import get_logger
from .errors import SealingError

__all__ = ["SealingEngine", "SystemdCredsEngine"]

sealing_logger = get_logger("sealing")


class SealingEngine(Protocol):
    """Protocol for sealing engines."""

    def seal(
        self,
        key_spec: str,
        name: str,
        plaintext_path: Path,
        output_path: Path,
        binding_spec: str | None = None,
    ) -> None:
        """Seal ``plaintext_path`` into ``output_path``; raise SealingError on failure."""
        ...

    def unseal(self, blob_path: Path, output_path: Path) -> None:
        """Unseal ``blob_path`` into ``output_path``."""
        ...

    def unseal_to_bytes(self, blob_path: Path, newline_mode: str | None = None) -> bytes:
        """Unseal ``blob_path`` and return the plaintext."""
        ...

    def key_binding_available(self) -> bool:
        """Whether a hardware-backed key (TPM2) can be used."""
        ...

    def setup(self) -> None:
        """Prepare the host key used for sealing."""
        ...


class SystemdCredsEngine:
    """``systemd-creds`` backed engine."""

    def __init__(self, binary: str = "systemd-creds") -> None:
        self.binary = binary

    @staticmethod
    def _name_from_blob(path: Path) -> str:
        return Path(path).stem

    def _run(self, args: list[str], action: str) -> bytes:
        cmd = [self.binary, *args]
        sealing_logger.debug("Running {} {}", self.binary, args[0])
        try:
            completed = subprocess.run(cmd, capture_output=True, check=False)
        except OSError as exc:
            raise SealingError(f"{self.binary} {action}: {exc}") from exc

        if completed.returncode != 0:
            stdout = completed.stdout.decode("utf-8", errors="replace")
            stderr = completed.stderr.decode("utf-8", errors="replace")
            raise SealingError(
                f"{self.binary} {action} failed (exit {completed.returncode}): {stdout}{stderr}".strip(),
                stdout=stdout,
                stderr=stderr,
            )
        return completed.stdout

    def seal(
        self,
        key_spec: str,
        name: str,
        plaintext_path: Path,
        output_path: Path,
        binding_spec: str | None = None,
    ) -> None:
        args = ["encrypt", f"--with-key={key_spec}", f"--name={name}"]
        if binding_spec:
            args.append(f"--tpm2-pcrs={binding_spec}")
        args += [str(plaintext_path), str(output_path)]
        self._run(args, "encrypt")

    def unseal(self, blob_path: Path, output_path: Path) -> None:
        args = ["decrypt", f"--name={self._name_from_blob(blob_path)}", str(blob_path), str(output_path)]
        self._run(args, "decrypt")

    def unseal_to_bytes(self, blob_path: Path, newline_mode: str | None = None) -> bytes:
        args = ["decrypt", f"--name={self._name_from_blob(blob_path)}", str(blob_path)]
        if newline_mode:
            args.append(f"--newline={newline_mode}")
        return self._run(args, "decrypt")

    def setup(self) -> None:
        """Ensure the host key exists."""
        self._run(["setup"], "setup")

    def key_binding_available(self) -> bool:
        try:
            completed = subprocess.run(
                [self.binary, "has-tpm2", "--quiet"],
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            sealing_logger.debug("{} has-tpm2 unavailable: {}", self.binary, exc)
            return False
        return completed.returncode == 0
