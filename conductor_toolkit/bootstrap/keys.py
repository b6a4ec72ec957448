"""Long-lived age keypair used as the single encryption recipient."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandRunner
from .errors import KeyExtractionError
from .output import log, warn
from .pipeline import Probe

PUBLIC_KEY_MARKER = "public key:"
LOSS_WARNING = "BACK UP THIS KEY - without it, secrets in the repo are unrecoverable"


@dataclass(frozen=True, slots=True)
class KeyMaterial:
    """Location of the private key and the recipient derived from it."""

    private_path: Path
    public_key: str


def extract_public_key(path: Path) -> str:
    """Return the recipient named on the key file's ``# public key:`` line."""

    try:
        text = path.read_text()
    except FileNotFoundError as exc:
        raise KeyExtractionError(f"key file {path} does not exist") from exc
    for line in text.splitlines():
        if PUBLIC_KEY_MARKER in line:
            tokens = line.split()
            if tokens and not tokens[-1].endswith(":"):
                return tokens[-1]
    raise KeyExtractionError(f"could not extract public key from {path}")


def _write_owner_only(path: Path, content: str) -> None:
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as handle:
        handle.write(content)
    os.chmod(path, 0o600)


class KeyMaterialManager:
    """Restore, reuse, or generate the keypair, in that order of priority.

    The key is never rotated. The restore token and the private key are
    never printed.
    """

    def __init__(self, runner: CommandRunner, key_file: Path) -> None:
        self.runner = runner
        self.key_file = key_file

    def probe(self) -> Probe:
        if not self.key_file.exists():
            return Probe.ABSENT
        try:
            extract_public_key(self.key_file)
        except KeyExtractionError:
            return Probe.PRESENT_INVALID
        return Probe.PRESENT_VALID

    def ensure(self, restore_key: str | None = None) -> KeyMaterial:
        if restore_key:
            _write_owner_only(self.key_file, restore_key.rstrip("\n") + "\n")
            log("  age key restored from SOPS_AGE_KEY")
        elif self.key_file.exists():
            log(f"  age key already exists at {self.key_file}")
        else:
            self.generate()

        public_key = extract_public_key(self.key_file)
        log(f"  age public key: {public_key}")
        return KeyMaterial(private_path=self.key_file, public_key=public_key)

    def generate(self) -> None:
        self.key_file.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        self.runner.capture(["age-keygen", "-o", str(self.key_file)])
        os.chmod(self.key_file, 0o600)
        log(f"  generated new age key at {self.key_file}")
        warn(LOSS_WARNING)


__all__ = [
    "KeyMaterial",
    "KeyMaterialManager",
    "LOSS_WARNING",
    "PUBLIC_KEY_MARKER",
    "extract_public_key",
]
