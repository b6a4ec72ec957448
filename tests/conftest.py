"""Test fixtures and configuration helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

# Ensure the project root is importable so ``conductor_toolkit`` and the
# ``tests.helpers`` namespace resolve without an editable install.
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from conductor_toolkit.bootstrap.config import REQUIRED_VARS, Configuration  # noqa: E402
from conductor_toolkit.bootstrap.settings import Settings  # noqa: E402

SAMPLE_VALUES: dict[str, str] = {
    "DOMAIN": "home.test",
    "NAS_IP": "10.0.0.5",
    "NAS_HTPC_PATH": "/volume1/media",
    "NAS_IMMICH_PATH": "/volume1/photos",
    "NODE_NAME": "conductor",
    "ACME_EMAIL": "ops@home.test",
    "GITHUB_USER": "octo",
    "GITHUB_REPO": "homelab",
    "GITHUB_TOKEN": "ghp_exampletoken",
    "PORKBUN_API_KEY": "pk1_abc",
    "PORKBUN_SECRET_KEY": "sk1_def",
}


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def config(repo_root: Path) -> Configuration:
    assert set(SAMPLE_VALUES) == set(REQUIRED_VARS)
    return Configuration(values=SAMPLE_VALUES, repo_root=repo_root)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in ``tmp_path`` that never reach for sudo."""

    system = tmp_path / "system"
    home = tmp_path / "home"
    return Settings(
        k3s_config_dir=system / "etc" / "rancher" / "k3s",
        audit_log_dir=system / "var" / "log" / "kubernetes",
        bin_dir=system / "usr" / "local" / "bin",
        age_key_file=home / ".config" / "sops" / "age" / "keys.txt",
        kubeconfig=home / ".kube" / "config",
        shell_rc=home / ".bashrc",
        arch="amd64",
        ready_timeout=10.0,
        poll_interval=1.0,
        use_sudo=False,
    )
