"""Fixed-path configuration documents that must exist before k3s starts."""

from __future__ import annotations

import os
from pathlib import Path

from ..runner import CommandRunner
from .output import log
from .rendering import render
from .settings import Settings


def render_k3s_config(settings: Settings) -> str:
    return render(
        "k3s-config.yaml.j2",
        audit_log_dir=settings.audit_log_dir,
        psa_config_path=settings.psa_config_path,
    )


def render_psa_config(settings: Settings) -> str:
    return render("psa.yaml.j2", exempt_namespaces=settings.psa_exempt_namespaces)


class SystemConfigWriter:
    """Write configuration files once; an existing file is never touched.

    Content changes are not picked up on later runs. Delete the file to have
    it rewritten.
    """

    def __init__(self, runner: CommandRunner, workdir: Path, *, mode: int = 0o644) -> None:
        self.runner = runner
        self.workdir = workdir
        self.mode = mode

    def ensure_directories(self, *paths: Path) -> None:
        if self.runner.use_sudo:
            self.runner.run(self.runner.privileged(["mkdir", "-p", *(str(p) for p in paths)]))
            return
        for path in paths:
            path.mkdir(parents=True, exist_ok=True)

    def write_if_absent(self, path: Path, content: str, *, privileged: bool = True) -> bool:
        if path.exists():
            log(f"  {path} already exists - skipping")
            return False

        if privileged and self.runner.use_sudo:
            staged = self.workdir / path.name
            staged.write_text(content)
            self.runner.run(
                self.runner.privileged(
                    ["install", "-D", "-m", f"{self.mode:o}", str(staged), str(path)]
                )
            )
            staged.unlink()
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
            os.chmod(path, self.mode)
        log(f"  wrote {path}")
        return True


__all__ = ["SystemConfigWriter", "render_k3s_config", "render_psa_config"]
