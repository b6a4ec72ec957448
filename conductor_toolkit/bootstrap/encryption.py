"""SOPS-encrypted secret documents committed to the repository.

A destination counts as provisioned only when it decrypts with the local key.
Anything else, including a hand-edited file that no longer decrypts or a key
that is temporarily unavailable, is regenerated and overwritten.
"""

from __future__ import annotations

import secrets
import string
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandRunner
from .config import Configuration
from .output import log
from .pipeline import Probe
from .rendering import render

SOPS_RULES_FILE = ".sops.yaml"
PASSWORD_ALPHABET = string.ascii_letters + string.digits
COMMIT_MESSAGE = "chore: add SOPS-encrypted secrets [bootstrap]"


def generate_password(length: int = 32) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


@dataclass(frozen=True, slots=True)
class SecretSpec:
    """A Kubernetes Secret rendered from configuration and encrypted in place."""

    name: str
    namespace: str
    destination: Path
    values: Callable[[Configuration], Mapping[str, str]]

    def plaintext(self, config: Configuration) -> Callable[[], str]:
        def _render() -> str:
            return render(
                "secret.yaml.j2",
                name=self.name,
                namespace=self.namespace,
                data=dict(self.values(config)),
            )

        return _render


DEFAULT_SECRETS: tuple[SecretSpec, ...] = (
    SecretSpec(
        name="porkbun-secret",
        namespace="cert-manager",
        destination=Path("infrastructure/certs/porkbun-secret.sops.yaml"),
        values=lambda config: {
            "PORKBUN_API_KEY": config["PORKBUN_API_KEY"],
            "PORKBUN_SECRET_API_KEY": config["PORKBUN_SECRET_KEY"],
        },
    ),
    SecretSpec(
        name="immich-postgresql",
        namespace="immich",
        destination=Path("apps/immich/pg-secret.sops.yaml"),
        values=lambda _config: {"postgresql-password": generate_password()},
    ),
)


def render_sops_rules(recipient: str) -> str:
    return render("sops.yaml.j2", recipient=recipient)


class SecretEncryptor:
    """Encrypt secret documents to a single age recipient."""

    def __init__(self, runner: CommandRunner, workdir: Path, key_file: Path) -> None:
        self.runner = runner
        self.workdir = workdir
        self.key_file = key_file

    @property
    def _env(self) -> dict[str, str]:
        return {"SOPS_AGE_KEY_FILE": str(self.key_file)}

    def probe(self, destination: Path) -> Probe:
        if not destination.exists():
            return Probe.ABSENT
        if self.runner.succeeds(["sops", "--decrypt", str(destination)], env=self._env):
            return Probe.PRESENT_VALID
        return Probe.PRESENT_INVALID

    def ensure_encrypted(
        self,
        plaintext_generator: Callable[[], str],
        destination: Path,
        recipient: str,
    ) -> bool:
        state = self.probe(destination)
        if state is Probe.PRESENT_VALID:
            log(f"  {destination.name} already encrypted - skipping")
            return False
        if state is Probe.PRESENT_INVALID:
            log(f"  {destination.name} does not decrypt with the local key - regenerating")

        # Same name as the destination so the repository creation rules match it.
        staged = self.workdir / destination.name
        staged.write_text(plaintext_generator())
        try:
            ciphertext = self.runner.capture(
                ["sops", "--encrypt", "--age", recipient, str(staged)], env=self._env
            )
        finally:
            staged.unlink(missing_ok=True)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(ciphertext + "\n")
        log(f"  encrypted {destination.name}")
        return True


def publish_secrets(runner: CommandRunner, repo_root: Path, paths: list[Path], branch: str) -> bool:
    """Commit and push encrypted documents so the reconciler can fetch them."""

    if not (repo_root / ".git").is_dir():
        log("  not a git checkout - skipping commit of encrypted secrets")
        return False
    relative = [str(path.relative_to(repo_root)) for path in paths if path.exists()]
    runner.run(["git", "add", "-A", "--", *relative], cwd=repo_root)
    if runner.succeeds(["git", "diff", "--cached", "--quiet"], cwd=repo_root):
        log("  no new secrets to commit")
        return False
    runner.run(["git", "commit", "-m", COMMIT_MESSAGE], cwd=repo_root)
    runner.run(["git", "push", "origin", branch], cwd=repo_root)
    log("  encrypted secrets committed and pushed")
    return True


__all__ = [
    "COMMIT_MESSAGE",
    "DEFAULT_SECRETS",
    "SOPS_RULES_FILE",
    "SecretEncryptor",
    "SecretSpec",
    "generate_password",
    "publish_secrets",
    "render_sops_rules",
]
