"""Utility helpers for running subprocesses consistently."""

from __future__ import annotations

import json
import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class CommandError(RuntimeError):
    """Raised when a subprocess exits with a non-zero status."""

    command: Sequence[str]
    returncode: int
    stderr: str | None = None

    def __str__(self) -> str:
        message = f"{format_command(self.command)} exited with status {self.returncode}"
        if self.stderr:
            stderr = self.stderr.strip()
            if stderr:
                message = f"{message}\n{stderr}"
        return message


def format_command(command: Sequence[str]) -> str:
    """Render a subprocess command for display or logging."""

    return " ".join(shlex.quote(part) for part in command)


def _merge_env(env: Mapping[str, str] | None) -> Mapping[str, str] | None:
    if env is None:
        return None
    merged = os.environ.copy()
    merged.update(env)
    return merged


class CommandRunner:
    """Execute external commands, echoing each one before it runs.

    Captured stdout is returned to the caller and never printed, so commands
    that emit key material or ciphertext can be piped safely. ``input`` is
    written to the child's stdin and is never echoed either.
    """

    def __init__(self, *, cwd: Path | None = None, use_sudo: bool = True) -> None:
        self.cwd = cwd
        self.use_sudo = use_sudo

    def privileged(self, command: Sequence[str]) -> list[str]:
        if self.use_sudo:
            return ["sudo", *command]
        return list(command)

    def run(
        self,
        command: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> None:
        self._execute(command, input=input, env=env, cwd=cwd, capture_output=False)

    def capture(
        self,
        command: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> str:
        return self._execute(command, input=input, env=env, cwd=cwd, capture_output=True)

    def succeeds(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> bool:
        """Return ``True`` when the command exits cleanly. Output is discarded."""

        workdir = cwd or self.cwd
        try:
            result = subprocess.run(
                list(command),
                env=_merge_env(env),
                cwd=str(workdir) if workdir is not None else None,
                check=False,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def json(self, command: Sequence[str], *, env: Mapping[str, str] | None = None) -> Any:
        output = self.capture(command, env=env)
        if not output:
            return None
        return json.loads(output)

    def _execute(
        self,
        command: Sequence[str],
        *,
        input: str | None,
        env: Mapping[str, str] | None,
        cwd: Path | None,
        capture_output: bool,
    ) -> str:
        print(f"$ {format_command(command)}", flush=True)
        workdir = cwd or self.cwd
        try:
            result = subprocess.run(
                list(command),
                env=_merge_env(env),
                cwd=str(workdir) if workdir is not None else None,
                check=False,
                text=True,
                input=input,
                stdout=subprocess.PIPE if capture_output else None,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise CommandError(command, 127, stderr=str(exc)) from exc
        if result.returncode != 0:
            raise CommandError(command, result.returncode, stderr=result.stderr)
        if capture_output:
            return (result.stdout or "").strip()
        return ""


__all__ = ["CommandError", "CommandRunner", "format_command"]
