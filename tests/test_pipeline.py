from __future__ import annotations

import os
import signal
import stat
from pathlib import Path

import pytest

from conductor_toolkit.bootstrap.errors import BootstrapError, StageError
from conductor_toolkit.bootstrap.pipeline import (
    Interrupted,
    Probe,
    Stage,
    describe_plan,
    run_pipeline,
    run_stage,
    work_directory,
)
from conductor_toolkit.runner import CommandError


def _recording_stage(name: str, log: list[str], **kwargs) -> Stage:
    return Stage(name, action=lambda: log.append(name), **kwargs)


def test_stages_run_in_order(capsys) -> None:
    ran: list[str] = []
    stages = [_recording_stage(name, ran) for name in ("one", "two", "three")]

    run_pipeline(stages)

    assert ran == ["one", "two", "three"]
    out = capsys.readouterr().out
    assert "Step 1/3: one" in out
    assert "Step 3/3: three" in out


def test_satisfied_stage_is_skipped(capsys) -> None:
    ran: list[str] = []
    stage = _recording_stage("installed", ran, probe=lambda: Probe.PRESENT_VALID)

    assert run_stage(stage) is False

    assert ran == []
    assert "already satisfied" in capsys.readouterr().out


def test_invalid_stage_is_repaired(capsys) -> None:
    ran: list[str] = []
    stage = _recording_stage("broken", ran, probe=lambda: Probe.PRESENT_INVALID)

    assert run_stage(stage) is True

    assert ran == ["broken"]
    assert "repairing" in capsys.readouterr().out


def test_absent_stage_runs() -> None:
    ran: list[str] = []

    assert run_stage(_recording_stage("fresh", ran, probe=lambda: Probe.ABSENT)) is True
    assert ran == ["fresh"]


def test_failed_postcondition_names_stage() -> None:
    stage = Stage("Writing PSA policy", action=lambda: None, verify=lambda: False)

    with pytest.raises(StageError) as excinfo:
        run_pipeline([stage])

    assert excinfo.value.stage == "Writing PSA policy"


@pytest.mark.parametrize(
    "error",
    [
        BootstrapError("boom"),
        CommandError(["k3s"], 1, stderr="boom"),
        PermissionError("boom"),
    ],
)
def test_failures_stop_the_pipeline_and_name_the_stage(error: Exception) -> None:
    ran: list[str] = []

    def explode() -> None:
        raise error

    stages = [
        _recording_stage("first", ran),
        Stage("second", action=explode),
        _recording_stage("third", ran),
    ]

    with pytest.raises(StageError) as excinfo:
        run_pipeline(stages)

    assert ran == ["first"]
    assert excinfo.value.stage == "second"
    assert excinfo.value.__cause__ is error
    assert "boom" in str(excinfo.value)


def test_describe_plan_runs_no_actions() -> None:
    ran: list[str] = []
    stages = [
        _recording_stage("probed", ran, probe=lambda: Probe.PRESENT_VALID),
        _recording_stage("unprobed", ran),
    ]

    assert describe_plan(stages) == [("probed", Probe.PRESENT_VALID), ("unprobed", None)]
    assert ran == []


def test_work_directory_is_private_and_removed() -> None:
    with work_directory() as path:
        assert path.is_dir()
        assert stat.S_IMODE(path.stat().st_mode) == 0o700
        (path / "plaintext.yaml").write_text("password: x\n")

    assert not path.exists()


def test_work_directory_is_removed_on_error() -> None:
    holder: list[Path] = []

    with pytest.raises(RuntimeError):
        with work_directory() as path:
            holder.append(path)
            raise RuntimeError("stage failed")

    assert not holder[0].exists()


def test_termination_signal_still_cleans_up() -> None:
    previous = signal.getsignal(signal.SIGTERM)
    holder: list[Path] = []

    with pytest.raises(Interrupted, match="SIGTERM"):
        with work_directory() as path:
            holder.append(path)
            os.kill(os.getpid(), signal.SIGTERM)

    assert not holder[0].exists()
    assert signal.getsignal(signal.SIGTERM) == previous


def test_undecodable_file_is_reported_against_the_stage(tmp_path: Path) -> None:
    notes = tmp_path / "notes.md"
    notes.write_bytes(b"caf\xe9\n")

    def read_notes() -> None:
        notes.read_text(encoding="utf-8")

    with pytest.raises(StageError) as excinfo:
        run_pipeline([Stage("Personalizing repository", action=read_notes)])

    assert excinfo.value.stage == "Personalizing repository"
    assert isinstance(excinfo.value.__cause__, UnicodeDecodeError)
