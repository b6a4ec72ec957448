"""Operational constants for the bootstrap pipeline.

Defaults describe a single-node k3s install managed by Flux. Any field can be
overridden from the ``[bootstrap]`` table of a TOML file passed with
``--settings``; relative paths in that file resolve against its directory.
"""

from __future__ import annotations

import platform
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

from .errors import BootstrapError

PSA_EXEMPT_NAMESPACES = (
    "kube-system",
    "cert-manager",
    "node-feature-discovery",
    "intel-device-plugins-gpu",
    "flux-system",
)

_MACHINE_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
}


def detect_arch(machine: str | None = None) -> str:
    value = (machine or platform.machine()).lower()
    try:
        return _MACHINE_ARCH[value]
    except KeyError:
        raise BootstrapError(f"unsupported machine architecture: {value}") from None


@dataclass(frozen=True, slots=True)
class Settings:
    """Fixed paths, tool versions, and bounds used across stages."""

    k3s_config_dir: Path = Path("/etc/rancher/k3s")
    audit_log_dir: Path = Path("/var/log/kubernetes")
    bin_dir: Path = Path("/usr/local/bin")
    age_key_file: Path = field(
        default_factory=lambda: Path.home() / ".config" / "sops" / "age" / "keys.txt"
    )
    kubeconfig: Path = field(default_factory=lambda: Path.home() / ".kube" / "config")
    shell_rc: Path = field(default_factory=lambda: Path.home() / ".bashrc")
    age_version: str = "v1.2.1"
    sops_version: str = "v3.9.4"
    arch: str = field(default_factory=detect_arch)
    psa_exempt_namespaces: tuple[str, ...] = PSA_EXEMPT_NAMESPACES
    flux_namespace: str = "flux-system"
    flux_secret_name: str = "sops-age"
    flux_path: str = "clusters/conductor"
    branch: str = "main"
    connectivity_url: str = "https://get.k3s.io"
    connect_timeout: float = 5.0
    download_timeout: float = 60.0
    ready_timeout: float = 120.0
    poll_interval: float = 5.0
    use_sudo: bool = True

    @property
    def k3s_config_path(self) -> Path:
        return self.k3s_config_dir / "config.yaml"

    @property
    def psa_config_path(self) -> Path:
        return self.k3s_config_dir / "psa.yaml"

    @property
    def k3s_kubeconfig(self) -> Path:
        return self.k3s_config_dir / "k3s.yaml"


_PATH_FIELDS = {
    "k3s_config_dir",
    "audit_log_dir",
    "bin_dir",
    "age_key_file",
    "kubeconfig",
    "shell_rc",
}
_FLOAT_FIELDS = {"connect_timeout", "download_timeout", "ready_timeout", "poll_interval"}


def _expand_path(value: str, *, base: Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def load_settings(path: Path | None) -> Settings:
    """Build :class:`Settings`, applying overrides from ``path`` when given."""

    settings = Settings()
    if path is None:
        return settings
    if not path.exists():
        raise BootstrapError(f"settings file not found: {path}")

    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise BootstrapError(f"could not parse {path}: {exc}") from exc

    section = data.get("bootstrap", {})
    if not isinstance(section, dict):
        raise BootstrapError(f"[bootstrap] in {path} must be a table")

    known = {item.name for item in fields(Settings)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise BootstrapError(f"unknown settings in {path}: {', '.join(unknown)}")

    overrides: dict[str, object] = {}
    for key, value in section.items():
        if key in _PATH_FIELDS:
            overrides[key] = _expand_path(str(value), base=path.parent)
        elif key in _FLOAT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise BootstrapError(f"{key} in {path} must be a number")
            overrides[key] = float(value)
        elif key == "psa_exempt_namespaces":
            if not isinstance(value, list):
                raise BootstrapError(f"{key} in {path} must be a list of namespaces")
            overrides[key] = tuple(str(item) for item in value)
        elif key == "use_sudo":
            if not isinstance(value, bool):
                raise BootstrapError(f"{key} in {path} must be true or false")
            overrides[key] = value
        else:
            overrides[key] = str(value)
    return replace(settings, **overrides)


__all__ = ["PSA_EXEMPT_NAMESPACES", "Settings", "detect_arch", "load_settings"]
