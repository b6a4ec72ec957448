"""Local control-plane access, node readiness, and the Flux handoff."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

from ..runner import CommandError, CommandRunner
from .config import Configuration
from .errors import WaitTimeoutError
from .output import log
from .settings import Settings

READY_CONDITION = "condition=Ready node --all"
KUBECONFIG_EXPORT = "export KUBECONFIG=~/.kube/config"


def install_kubeconfig(runner: CommandRunner, settings: Settings) -> None:
    """Copy the root-owned k3s kubeconfig to a user-owned location."""

    target = settings.kubeconfig
    target.parent.mkdir(parents=True, exist_ok=True)
    runner.run(runner.privileged(["cp", str(settings.k3s_kubeconfig), str(target)]))
    if runner.use_sudo:
        owner = f"{os.getuid()}:{os.getgid()}"
        runner.run(runner.privileged(["chown", owner, str(target)]))
    os.chmod(target, 0o600)

    rc = settings.shell_rc
    existing = rc.read_text() if rc.exists() else ""
    if "export KUBECONFIG" not in existing:
        with rc.open("a") as handle:
            handle.write(f"\n{KUBECONFIG_EXPORT}\n")
        log(f"  added KUBECONFIG export to {rc}")


def nodes_ready(payload: Any) -> bool:
    """True when ``kubectl get nodes -o json`` lists only Ready nodes."""

    if not isinstance(payload, dict):
        return False
    items = payload.get("items") or []
    if not items:
        return False
    for node in items:
        conditions = node.get("status", {}).get("conditions", [])
        ready = [c for c in conditions if c.get("type") == "Ready"]
        if not ready or ready[0].get("status") != "True":
            return False
    return True


def wait_for_ready(
    runner: CommandRunner,
    *,
    kubeconfig: Path,
    timeout: float = 120.0,
    interval: float = 5.0,
) -> None:
    """Poll node status until every node is Ready or ``timeout`` elapses."""

    log(f"  waiting for node to reach Ready state (timeout: {timeout:g}s)...")
    env = {"KUBECONFIG": str(kubeconfig)}
    deadline = time.monotonic() + timeout
    while True:
        try:
            payload = runner.json(["kubectl", "get", "nodes", "-o", "json"], env=env)
        except (CommandError, ValueError):
            payload = None
        if nodes_ready(payload):
            log("  node is Ready")
            return
        if time.monotonic() >= deadline:
            raise WaitTimeoutError(
                READY_CONDITION, timeout, hint="check 'journalctl -u k3s'"
            )
        time.sleep(max(interval, 0.1))


class GitOpsHandoff:
    """Provision what Flux needs in-cluster, then register the repository.

    After :meth:`bootstrap` returns, Flux owns every resource under the
    configured repository path.
    """

    def __init__(self, runner: CommandRunner, config: Configuration, settings: Settings) -> None:
        self.runner = runner
        self.config = config
        self.settings = settings

    @property
    def _env(self) -> dict[str, str]:
        return {"KUBECONFIG": str(self.settings.kubeconfig)}

    def _apply_rendered(self, command: list[str]) -> None:
        manifest = self.runner.capture(command, env=self._env)
        self.runner.run(["kubectl", "apply", "-f", "-"], input=manifest, env=self._env)

    def ensure_namespace(self) -> None:
        self._apply_rendered(
            [
                "kubectl",
                "create",
                "namespace",
                self.settings.flux_namespace,
                "--dry-run=client",
                "-o",
                "yaml",
            ]
        )

    def ensure_decryption_secret(self, key_file: Path) -> None:
        self._apply_rendered(
            [
                "kubectl",
                "-n",
                self.settings.flux_namespace,
                "create",
                "secret",
                "generic",
                self.settings.flux_secret_name,
                f"--from-file=age.agekey={key_file}",
                "--dry-run=client",
                "-o",
                "yaml",
            ]
        )

    def bootstrap_command(self) -> list[str]:
        return [
            "flux",
            "bootstrap",
            "github",
            f"--owner={self.config['GITHUB_USER']}",
            f"--repository={self.config['GITHUB_REPO']}",
            f"--branch={self.settings.branch}",
            f"--path={self.settings.flux_path}",
            "--personal",
            "--token-auth",
        ]

    def bootstrap(self, key_file: Path) -> None:
        self.ensure_namespace()
        self.ensure_decryption_secret(key_file)
        env = {**self._env, "GITHUB_TOKEN": self.config["GITHUB_TOKEN"]}
        self.runner.run(self.bootstrap_command(), env=env)
        self.summarize(key_file)

    def summarize(self, key_file: Path) -> None:
        repo = f"github.com/{self.config['GITHUB_USER']}/{self.config['GITHUB_REPO']}"
        log("✔ Bootstrap complete!")
        log(f"  FluxCD reconciling from: {repo}/{self.settings.flux_path}")
        log("  Monitor:   flux get kustomizations --watch")
        log("  All pods:  kubectl get pods -A -w")
        log(f"  Age key:   {key_file}")
        log("  Back this up - it decrypts every secret in the repo.")
        log("")
        log("  After pods stabilise:")
        log("    1. Get a claim token from https://plex.tv/claim")
        log("    2. kubectl -n media set env deploy/plex PLEX_CLAIM=claim-xxx")
        log("    3. Wait 60 seconds for Plex to register")
        log("    4. kubectl -n media set env deploy/plex PLEX_CLAIM-")


__all__ = [
    "GitOpsHandoff",
    "KUBECONFIG_EXPORT",
    "READY_CONDITION",
    "install_kubeconfig",
    "nodes_ready",
    "wait_for_ready",
]
