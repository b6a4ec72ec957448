from __future__ import annotations

import stat
from pathlib import Path

from conductor_toolkit.bootstrap.settings import Settings
from conductor_toolkit.bootstrap.system_config import (
    SystemConfigWriter,
    render_k3s_config,
    render_psa_config,
)
from tests.helpers.fake_runner import FakeRunner


def test_k3s_config_points_at_admission_policy(settings: Settings) -> None:
    rendered = render_k3s_config(settings)

    assert f"admission-control-config-file={settings.psa_config_path}" in rendered
    assert f"audit-log-path={settings.audit_log_dir}/audit.log" in rendered
    assert "secrets-encryption: true" in rendered
    assert 'write-kubeconfig-mode: "0640"' in rendered


def test_psa_config_lists_every_exempt_namespace(settings: Settings) -> None:
    rendered = render_psa_config(settings)

    assert 'enforce: "baseline"' in rendered
    assert 'warn: "restricted"' in rendered
    for namespace in settings.psa_exempt_namespaces:
        assert f"          - {namespace}\n" in rendered


def test_rendering_is_deterministic(settings: Settings) -> None:
    assert render_k3s_config(settings) == render_k3s_config(settings)
    assert render_psa_config(settings) == render_psa_config(settings)


def test_write_if_absent_creates_file_with_mode(tmp_path: Path) -> None:
    writer = SystemConfigWriter(FakeRunner(), tmp_path / "work")
    target = tmp_path / "etc" / "k3s" / "config.yaml"

    assert writer.write_if_absent(target, "selinux: true\n") is True

    assert target.read_text() == "selinux: true\n"
    assert stat.S_IMODE(target.stat().st_mode) == 0o644


def test_existing_file_is_never_overwritten(tmp_path: Path) -> None:
    runner = FakeRunner()
    writer = SystemConfigWriter(runner, tmp_path)
    target = tmp_path / "config.yaml"
    target.write_text("hand-edited: true\n")

    assert writer.write_if_absent(target, "selinux: true\n") is False

    assert target.read_text() == "hand-edited: true\n"
    assert runner.calls == []


def test_second_write_leaves_identical_content(tmp_path: Path, settings: Settings) -> None:
    writer = SystemConfigWriter(FakeRunner(), tmp_path)
    target = settings.psa_config_path

    writer.write_if_absent(target, render_psa_config(settings))
    first = target.read_bytes()
    writer.write_if_absent(target, render_psa_config(settings))

    assert target.read_bytes() == first


def test_privileged_write_installs_staged_copy(tmp_path: Path) -> None:
    workdir = tmp_path / "work"
    workdir.mkdir()
    staged_contents = []

    def handler(call):
        staged_contents.append(Path(call.command[-2]).read_text())

    runner = FakeRunner(handler, use_sudo=True)
    writer = SystemConfigWriter(runner, workdir)
    target = tmp_path / "etc" / "psa.yaml"

    writer.write_if_absent(target, "kind: AdmissionConfiguration\n")

    assert runner.commands == [
        ["sudo", "install", "-D", "-m", "644", str(workdir / "psa.yaml"), str(target)]
    ]
    assert staged_contents == ["kind: AdmissionConfiguration\n"]
    assert not (workdir / "psa.yaml").exists()


def test_unprivileged_write_skips_sudo(tmp_path: Path) -> None:
    runner = FakeRunner(use_sudo=True)
    writer = SystemConfigWriter(runner, tmp_path)
    target = tmp_path / "repo" / ".sops.yaml"

    writer.write_if_absent(target, "creation_rules: []\n", privileged=False)

    assert runner.calls == []
    assert target.read_text() == "creation_rules: []\n"


def test_ensure_directories_uses_sudo_when_enabled(tmp_path: Path) -> None:
    runner = FakeRunner(use_sudo=True)
    SystemConfigWriter(runner, tmp_path).ensure_directories(Path("/etc/a"), Path("/var/b"))

    assert runner.commands == [["sudo", "mkdir", "-p", "/etc/a", "/var/b"]]


def test_ensure_directories_without_sudo_creates_them(tmp_path: Path) -> None:
    runner = FakeRunner()
    SystemConfigWriter(runner, tmp_path).ensure_directories(tmp_path / "a" / "b")

    assert (tmp_path / "a" / "b").is_dir()
    assert runner.calls == []
