"""Generic sequential stage runner and the run-scoped work directory."""

from __future__ import annotations

import contextlib
import os
import shutil
import signal
import tempfile
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..runner import CommandError
from .errors import BootstrapError, StageError
from .output import log

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class Probe(Enum):
    """Observed state of whatever a stage is responsible for."""

    ABSENT = "absent"
    PRESENT_VALID = "present-valid"
    PRESENT_INVALID = "present-invalid"


@dataclass(frozen=True, slots=True)
class Stage:
    """One step of the pipeline.

    ``probe`` decides whether ``action`` needs to run: ``PRESENT_VALID``
    skips it, anything else runs it. Stages without a probe always run.
    ``verify`` is checked after the action and must return ``True``.
    """

    name: str
    action: Callable[[], None]
    probe: Callable[[], Probe] | None = None
    verify: Callable[[], bool] | None = None


def _state(stage: Stage) -> Probe | None:
    return stage.probe() if stage.probe is not None else None


def run_stage(stage: Stage) -> bool:
    """Run ``stage`` unless its probe reports it satisfied; return whether it ran."""

    state = _state(stage)
    if state is Probe.PRESENT_VALID:
        log("  already satisfied - skipping")
        return False
    if state is Probe.PRESENT_INVALID:
        log("  present but invalid - repairing")
    stage.action()
    if stage.verify is not None and not stage.verify():
        raise StageError(stage.name, "postcondition not met after running the stage")
    return True


def run_pipeline(stages: Sequence[Stage]) -> None:
    """Execute ``stages`` strictly in order, stopping at the first failure."""

    total = len(stages)
    for index, stage in enumerate(stages, start=1):
        log(f"▶ Step {index}/{total}: {stage.name}")
        try:
            run_stage(stage)
        except StageError:
            raise
        except (BootstrapError, CommandError, OSError, ValueError) as exc:
            raise StageError(stage.name, str(exc)) from exc


def describe_plan(stages: Sequence[Stage]) -> list[tuple[str, Probe | None]]:
    """Evaluate every probe without running any action."""

    return [(stage.name, _state(stage)) for stage in stages]


class Interrupted(BootstrapError):
    """The run received a termination signal."""


def _raise_interrupted(signum: int, _frame: object) -> None:
    raise Interrupted(f"received {signal.Signals(signum).name}")


@contextlib.contextmanager
def work_directory(prefix: str = "bootstrap.") -> Iterator[Path]:
    """Yield an owner-only scratch directory removed on every exit path.

    Termination signals are turned into :class:`Interrupted` while the
    directory is held so the cleanup below still runs.
    """

    previous = {sig: signal.signal(sig, _raise_interrupted) for sig in HANDLED_SIGNALS}
    path = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        os.chmod(path, 0o700)
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        for sig, handler in previous.items():
            signal.signal(sig, handler)


__all__ = [
    "HANDLED_SIGNALS",
    "Interrupted",
    "Probe",
    "Stage",
    "describe_plan",
    "run_pipeline",
    "run_stage",
    "work_directory",
]
