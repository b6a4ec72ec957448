"""Operator configuration and the pre-flight validator."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import requests
from dotenv import dotenv_values

from .errors import (
    BootstrapError,
    ConfigurationError,
    ConnectivityError,
    PrivilegeError,
    ValidationFailed,
)
from .output import log

REQUIRED_VARS: tuple[str, ...] = (
    "DOMAIN",
    "NAS_IP",
    "NAS_HTPC_PATH",
    "NAS_IMMICH_PATH",
    "NODE_NAME",
    "ACME_EMAIL",
    "GITHUB_USER",
    "GITHUB_REPO",
    "GITHUB_TOKEN",
    "PORKBUN_API_KEY",
    "PORKBUN_SECRET_KEY",
)
RESTORE_KEY_VAR = "SOPS_AGE_KEY"
ENV_HINT = "Copy .env.example to .env and fill in all values."


@dataclass(frozen=True, slots=True)
class Configuration:
    """Immutable operator inputs threaded through every stage."""

    values: Mapping[str, str]
    repo_root: Path
    restore_key: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, name: str) -> str:
        return self.values[name]

    def get(self, name: str, default: str = "") -> str:
        return self.values.get(name, default)

    def missing(self, required: Iterable[str] = REQUIRED_VARS) -> list[str]:
        return [name for name in required if not self.values.get(name, "").strip()]


def load_configuration(
    repo_root: Path,
    *,
    env_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Configuration:
    """Collect inputs from the process environment and an optional ``.env`` file.

    Values from the file win over the environment. ``os.environ`` itself is
    never modified.
    """

    source = os.environ if environ is None else environ
    names = (*REQUIRED_VARS, RESTORE_KEY_VAR)
    merged = {name: source[name] for name in names if name in source}

    path = env_file if env_file is not None else repo_root / ".env"
    if path.is_file():
        log(f"loading environment from {path}")
        for key, value in dotenv_values(path).items():
            if key in names and value is not None:
                merged[key] = value
    else:
        log("no .env found - expecting variables already exported")

    restore_key = merged.pop(RESTORE_KEY_VAR, "").strip() or None
    return Configuration(values=merged, repo_root=repo_root, restore_key=restore_key)


def _url_reachable(url: str, timeout: float) -> bool:
    try:
        response = requests.get(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException:
        return False
    return response.ok


class ConfigValidator:
    """Check inputs and execution preconditions before anything is written.

    All checks run even when an earlier one fails so the operator sees every
    problem in a single pass.
    """

    def __init__(
        self,
        *,
        required: Iterable[str] = REQUIRED_VARS,
        connectivity_url: str = "https://get.k3s.io",
        timeout: float = 5.0,
        geteuid: Callable[[], int] | None = None,
        reachable: Callable[[str, float], bool] | None = None,
    ) -> None:
        self.required = tuple(required)
        self.connectivity_url = connectivity_url
        self.timeout = timeout
        self._geteuid = geteuid or os.geteuid
        self._reachable = reachable or _url_reachable

    def check(self, config: Configuration) -> list[BootstrapError]:
        problems: list[BootstrapError] = []

        missing = config.missing(self.required)
        if missing:
            problems.append(ConfigurationError(missing, hint=ENV_HINT))

        if self._geteuid() == 0:
            problems.append(
                PrivilegeError(
                    "do not run as root - run as your admin user (sudo is used where needed)"
                )
            )

        if not self._reachable(self.connectivity_url, self.timeout):
            problems.append(
                ConnectivityError(
                    f"cannot reach {self.connectivity_url} - check network connectivity"
                )
            )
        return problems

    def validate(self, config: Configuration) -> None:
        problems = self.check(config)
        if len(problems) == 1:
            raise problems[0]
        if problems:
            raise ValidationFailed(problems)
        log("validation passed")


__all__ = [
    "ConfigValidator",
    "Configuration",
    "ENV_HINT",
    "REQUIRED_VARS",
    "RESTORE_KEY_VAR",
    "load_configuration",
]
