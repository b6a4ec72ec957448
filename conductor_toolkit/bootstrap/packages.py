"""Download and install the command-line tools the bootstrap depends on."""

from __future__ import annotations

import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import requests

from ..runner import CommandError, CommandRunner
from .errors import DownloadError, InstallError
from .output import log
from .pipeline import Probe
from .settings import Settings

RETRY_ATTEMPTS = 3
CHUNK_SIZE = 1 << 16


class InstallShape(Enum):
    ARCHIVE = "archive"
    BINARY = "binary"
    SCRIPT = "script"


@dataclass(frozen=True, slots=True)
class InstalledTool:
    """A named external command and how to obtain it."""

    name: str
    url: str
    shape: InstallShape
    version: str | None = None
    provides: tuple[str, ...] = ()
    members: tuple[str, ...] = ()
    mode: int = 0o755
    interpreter: str = "sh"

    @property
    def commands(self) -> tuple[str, ...]:
        return self.provides or (self.name,)

    @property
    def artifact_name(self) -> str:
        return self.url.rsplit("/", 1)[-1] or self.name


def age_tool(settings: Settings) -> InstalledTool:
    version = settings.age_version
    return InstalledTool(
        name="age",
        version=version,
        url=(
            "https://github.com/FiloSottile/age/releases/download/"
            f"{version}/age-{version}-linux-{settings.arch}.tar.gz"
        ),
        shape=InstallShape.ARCHIVE,
        provides=("age", "age-keygen"),
        members=("age/age", "age/age-keygen"),
    )


def sops_tool(settings: Settings) -> InstalledTool:
    version = settings.sops_version
    return InstalledTool(
        name="sops",
        version=version,
        url=(
            "https://github.com/getsops/sops/releases/download/"
            f"{version}/sops-{version}.linux.{settings.arch}"
        ),
        shape=InstallShape.BINARY,
        mode=0o755,
    )


def k3s_tool() -> InstalledTool:
    return InstalledTool(
        name="k3s",
        url="https://get.k3s.io",
        shape=InstallShape.SCRIPT,
        interpreter="sh",
    )


def flux_tool() -> InstalledTool:
    return InstalledTool(
        name="flux",
        url="https://fluxcd.io/install.sh",
        shape=InstallShape.SCRIPT,
        interpreter="bash",
    )


def _request(
    session: requests.Session, url: str, *, timeout: tuple[float, float]
) -> requests.Response:
    last_error: Exception | None = None
    for attempt in range(RETRY_ATTEMPTS):
        try:
            resp = session.get(url, stream=True, timeout=timeout, allow_redirects=True)
        except (requests.ConnectionError, requests.Timeout) as exc:
            last_error = exc
        else:
            if resp.status_code < 500 and resp.status_code != 429:
                return resp
            last_error = requests.HTTPError(f"HTTP {resp.status_code}", response=resp)
            resp.close()
        if attempt + 1 < RETRY_ATTEMPTS:
            time.sleep(2**attempt)
    raise DownloadError(f"failed to download {url}: {last_error}")


class PackageInstaller:
    """Install tools into a system-wide bin directory when they are missing."""

    def __init__(
        self,
        runner: CommandRunner,
        workdir: Path,
        *,
        bin_dir: Path = Path("/usr/local/bin"),
        connect_timeout: float = 5.0,
        read_timeout: float = 60.0,
        session: requests.Session | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.runner = runner
        self.workdir = workdir
        self.bin_dir = bin_dir
        self.timeout = (connect_timeout, read_timeout)
        self.session = session or requests.Session()
        self._which = which

    def probe(self, tool: InstalledTool) -> Probe:
        present = [cmd for cmd in tool.commands if self._which(cmd)]
        if len(present) == len(tool.commands):
            return Probe.PRESENT_VALID
        if present:
            return Probe.PRESENT_INVALID
        return Probe.ABSENT

    def ensure_installed(self, tool: InstalledTool) -> bool:
        """Install ``tool`` unless every command it provides is on ``PATH``."""

        if self.probe(tool) is Probe.PRESENT_VALID:
            log(f"  {tool.name} already installed")
            return False
        artifact = self.download(tool)
        self.install(tool, artifact)
        label = f"{tool.name} {tool.version}" if tool.version else tool.name
        log(f"  {label} installed")
        return True

    def download(self, tool: InstalledTool) -> Path:
        destination = self.workdir / tool.artifact_name
        resp = _request(self.session, tool.url, timeout=self.timeout)
        with resp:
            if not resp.ok:
                raise DownloadError(f"failed to download {tool.url}: HTTP {resp.status_code}")
            written = 0
            try:
                with destination.open("wb") as handle:
                    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                        handle.write(chunk)
                        written += len(chunk)
            except requests.RequestException as exc:
                raise DownloadError(f"failed to download {tool.url}: {exc}") from exc
        if written == 0:
            raise DownloadError(f"download of {tool.url} was empty")
        return destination

    def install(self, tool: InstalledTool, artifact: Path) -> None:
        if tool.shape is InstallShape.ARCHIVE:
            command = [
                "tar",
                "-C",
                str(self.bin_dir),
                "-xzf",
                str(artifact),
                f"--strip-components={_strip_depth(tool.members)}",
                *tool.members,
            ]
        elif tool.shape is InstallShape.BINARY:
            command = [
                "install",
                "-m",
                f"{tool.mode:o}",
                str(artifact),
                str(self.bin_dir / tool.name),
            ]
        else:
            command = [tool.interpreter, str(artifact)]
        try:
            self.runner.run(self.runner.privileged(command))
        except CommandError as exc:
            raise InstallError(f"failed to install {tool.name}: {exc}") from exc


def _strip_depth(members: tuple[str, ...]) -> int:
    if not members:
        return 0
    return min(member.count("/") for member in members)


__all__ = [
    "InstallShape",
    "InstalledTool",
    "PackageInstaller",
    "age_tool",
    "flux_tool",
    "k3s_tool",
    "sops_tool",
]
