"""The nine bootstrap stages and the entry point that runs them."""

from __future__ import annotations

import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..runner import CommandRunner
from .cluster import GitOpsHandoff, install_kubeconfig, wait_for_ready
from .config import ConfigValidator, Configuration
from .encryption import (
    DEFAULT_SECRETS,
    SOPS_RULES_FILE,
    SecretEncryptor,
    SecretSpec,
    publish_secrets,
    render_sops_rules,
)
from .keys import KeyMaterial, KeyMaterialManager
from .output import log
from .packages import InstalledTool, PackageInstaller, age_tool, flux_tool, k3s_tool, sops_tool
from .personalize import build_rules, is_personalized, personalize
from .pipeline import Probe, Stage, describe_plan, run_pipeline, work_directory
from .settings import Settings
from .system_config import SystemConfigWriter, render_k3s_config, render_psa_config


def _exists(path: Path) -> Callable[[], Probe]:
    def _probe() -> Probe:
        return Probe.PRESENT_VALID if path.exists() else Probe.ABSENT

    return _probe


def _all_valid(probes: list[Probe]) -> Probe:
    if all(state is Probe.PRESENT_VALID for state in probes):
        return Probe.PRESENT_VALID
    if any(state is not Probe.ABSENT for state in probes):
        return Probe.PRESENT_INVALID
    return Probe.ABSENT


@dataclass
class BootstrapContext:
    """Collaborators shared by the stages of a single run."""

    config: Configuration
    settings: Settings
    runner: CommandRunner
    workdir: Path
    validator: ConfigValidator
    installer: PackageInstaller
    secrets: tuple[SecretSpec, ...] = DEFAULT_SECRETS
    key: KeyMaterial | None = field(default=None)

    @classmethod
    def create(
        cls,
        config: Configuration,
        settings: Settings,
        workdir: Path,
        *,
        runner: CommandRunner | None = None,
    ) -> BootstrapContext:
        runner = runner or CommandRunner(cwd=config.repo_root, use_sudo=settings.use_sudo)
        return cls(
            config=config,
            settings=settings,
            runner=runner,
            workdir=workdir,
            validator=ConfigValidator(
                connectivity_url=settings.connectivity_url,
                timeout=settings.connect_timeout,
            ),
            installer=PackageInstaller(
                runner,
                workdir,
                bin_dir=settings.bin_dir,
                connect_timeout=settings.connect_timeout,
                read_timeout=settings.download_timeout,
            ),
        )

    @property
    def crypto_tools(self) -> list[InstalledTool]:
        return [age_tool(self.settings), sops_tool(self.settings)]

    @property
    def writer(self) -> SystemConfigWriter:
        return SystemConfigWriter(self.runner, self.workdir)

    @property
    def key_manager(self) -> KeyMaterialManager:
        return KeyMaterialManager(self.runner, self.settings.age_key_file)

    @property
    def encryptor(self) -> SecretEncryptor:
        return SecretEncryptor(self.runner, self.workdir, self.settings.age_key_file)

    def destination(self, spec: SecretSpec) -> Path:
        return self.config.repo_root / spec.destination


def _validate(ctx: BootstrapContext) -> None:
    ctx.validator.validate(ctx.config)


def _personalize(ctx: BootstrapContext) -> None:
    personalize(ctx.config.repo_root, build_rules(ctx.config))


def _write_k3s_config(ctx: BootstrapContext) -> None:
    ctx.writer.ensure_directories(ctx.settings.k3s_config_dir, ctx.settings.audit_log_dir)
    ctx.writer.write_if_absent(ctx.settings.k3s_config_path, render_k3s_config(ctx.settings))


def _write_psa_config(ctx: BootstrapContext) -> None:
    ctx.writer.write_if_absent(ctx.settings.psa_config_path, render_psa_config(ctx.settings))


def _install_runtime(ctx: BootstrapContext) -> None:
    ctx.installer.ensure_installed(k3s_tool())


def _wait_ready(ctx: BootstrapContext) -> None:
    install_kubeconfig(ctx.runner, ctx.settings)
    wait_for_ready(
        ctx.runner,
        kubeconfig=ctx.settings.kubeconfig,
        timeout=ctx.settings.ready_timeout,
        interval=ctx.settings.poll_interval,
    )


def _install_crypto_tools(ctx: BootstrapContext) -> None:
    for tool in ctx.crypto_tools:
        ctx.installer.ensure_installed(tool)


def _key_material_and_secrets(ctx: BootstrapContext) -> None:
    ctx.key = ctx.key_manager.ensure(ctx.config.restore_key)
    repo_root = ctx.config.repo_root

    rules_path = repo_root / SOPS_RULES_FILE
    ctx.writer.write_if_absent(
        rules_path, render_sops_rules(ctx.key.public_key), privileged=False
    )

    encryptor = ctx.encryptor
    destinations: list[Path] = [rules_path]
    for spec in ctx.secrets:
        destination = ctx.destination(spec)
        encryptor.ensure_encrypted(spec.plaintext(ctx.config), destination, ctx.key.public_key)
        destinations.append(destination)

    if shutil.which("git"):
        publish_secrets(ctx.runner, repo_root, destinations, ctx.settings.branch)


def _handoff(ctx: BootstrapContext) -> None:
    ctx.installer.ensure_installed(flux_tool())
    key_file = ctx.key.private_path if ctx.key else ctx.settings.age_key_file
    GitOpsHandoff(ctx.runner, ctx.config, ctx.settings).bootstrap(key_file)


def build_stages(ctx: BootstrapContext) -> list[Stage]:
    settings = ctx.settings
    installer = ctx.installer

    def personalize_probe() -> Probe:
        if is_personalized(ctx.config.repo_root):
            return Probe.PRESENT_VALID
        return Probe.ABSENT

    def crypto_probe() -> Probe:
        return _all_valid([installer.probe(tool) for tool in ctx.crypto_tools])

    def runtime_probe() -> Probe:
        return installer.probe(k3s_tool())

    def crypto_verify() -> bool:
        return crypto_probe() is Probe.PRESENT_VALID

    def runtime_verify() -> bool:
        return runtime_probe() is Probe.PRESENT_VALID

    return [
        Stage("Validating configuration", action=lambda: _validate(ctx)),
        Stage(
            "Personalizing repository",
            action=lambda: _personalize(ctx),
            probe=personalize_probe,
        ),
        Stage(
            "Writing k3s server configuration",
            action=lambda: _write_k3s_config(ctx),
            probe=_exists(settings.k3s_config_path),
            verify=lambda: settings.k3s_config_path.exists(),
        ),
        Stage(
            "Writing PSA policy",
            action=lambda: _write_psa_config(ctx),
            probe=_exists(settings.psa_config_path),
            verify=lambda: settings.psa_config_path.exists(),
        ),
        Stage(
            "Installing k3s",
            action=lambda: _install_runtime(ctx),
            probe=runtime_probe,
            verify=runtime_verify,
        ),
        Stage("Configuring kubeconfig and waiting for Ready", action=lambda: _wait_ready(ctx)),
        Stage(
            "Installing age + SOPS",
            action=lambda: _install_crypto_tools(ctx),
            probe=crypto_probe,
            verify=crypto_verify,
        ),
        Stage("Setting up encryption", action=lambda: _key_material_and_secrets(ctx)),
        Stage("Bootstrapping FluxCD", action=lambda: _handoff(ctx)),
    ]


def run_bootstrap(
    config: Configuration,
    settings: Settings,
    *,
    plan_only: bool = False,
    runner: CommandRunner | None = None,
) -> None:
    """Run every stage against this machine, or only report what would run."""

    with work_directory() as workdir:
        ctx = BootstrapContext.create(config, settings, workdir, runner=runner)
        stages = build_stages(ctx)
        if plan_only:
            render_plan(stages)
            return
        repo = f"github.com/{config.get('GITHUB_USER')}/{config.get('GITHUB_REPO')}"
        log(f"k3s + FluxCD bootstrap - repo: {repo}")
        run_pipeline(stages)


def render_plan(stages: list[Stage]) -> None:
    total = len(stages)
    for index, (name, state) in enumerate(describe_plan(stages), start=1):
        if state is Probe.PRESENT_VALID:
            verdict = "satisfied - would skip"
        elif state is Probe.PRESENT_INVALID:
            verdict = "present but invalid - would repair"
        elif state is Probe.ABSENT:
            verdict = "absent - would run"
        else:
            verdict = "always runs"
        log(f"Step {index}/{total}: {name}: {verdict}")


__all__ = ["BootstrapContext", "build_stages", "render_plan", "run_bootstrap"]
