"""In-memory stand-in for :class:`conductor_toolkit.runner.CommandRunner`."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class Call:
    mode: str
    command: list[str]
    input: str | None = None
    env: dict[str, str] | None = None
    cwd: Path | None = None

    @property
    def program(self) -> str:
        parts = self.command[1:] if self.command[:1] == ["sudo"] else self.command
        return parts[0] if parts else ""


Handler = Callable[[Call], Any]


class FakeRunner:
    """Record every command and answer it through ``handler``.

    ``handler`` may return captured stdout, ``None`` for empty output, or an
    exception instance to raise. ``succeeds`` answers ``succeeds()`` calls.
    """

    def __init__(
        self,
        handler: Handler | None = None,
        *,
        succeeds: Callable[[Call], bool] | None = None,
        use_sudo: bool = False,
    ) -> None:
        self.handler = handler or (lambda _call: None)
        self._succeeds = succeeds or (lambda _call: True)
        self.use_sudo = use_sudo
        self.calls: list[Call] = []

    @property
    def commands(self) -> list[list[str]]:
        return [call.command for call in self.calls]

    def programs(self) -> list[str]:
        return [call.program for call in self.calls]

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
        self._dispatch("run", command, input=input, env=env, cwd=cwd)

    def capture(
        self,
        command: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> str:
        return self._dispatch("capture", command, input=input, env=env, cwd=cwd)

    def succeeds(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> bool:
        call = self._record("succeeds", command, input=None, env=env, cwd=cwd)
        return bool(self._succeeds(call))

    def json(self, command: Sequence[str], *, env: Mapping[str, str] | None = None) -> Any:
        output = self.capture(command, env=env)
        if not output:
            return None
        return json.loads(output)

    def _record(
        self,
        mode: str,
        command: Sequence[str],
        *,
        input: str | None,
        env: Mapping[str, str] | None,
        cwd: Path | None,
    ) -> Call:
        call = Call(mode, list(command), input, dict(env) if env else None, cwd)
        self.calls.append(call)
        return call

    def _dispatch(self, mode: str, command: Sequence[str], **kwargs: Any) -> str:
        call = self._record(mode, command, **kwargs)
        result = self.handler(call)
        if isinstance(result, BaseException):
            raise result
        return "" if result is None else str(result)
