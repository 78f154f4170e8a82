"""
gate-orchestrator — unit tests for hook execution.

File: tests/unit/gate/test_hooks.py

Purpose
- Run real shell hooks and check exit codes, output capture, and environment.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from gate_orchestrator.domain.errors import HookError
from gate_orchestrator.gate.hooks import HookName, HookRunner
from gate_orchestrator.integration_plane.executor import CommandExecutor


def test_hook_log_filenames() -> None:
    assert HookName.PRE_TEST.log_filename == "gate-pre-test-hook.txt"
    assert HookName.GATE.log_filename == "gate-gate-hook.txt"
    assert HookName.POST_TEST.log_filename == "gate-post-test-hook.txt"


def test_hook_output_and_exit_code_are_captured(tmp_path: Path) -> None:
    runner = HookRunner(
        CommandExecutor(),
        log_dir=tmp_path / "logs",
        cwd=tmp_path,
        env={"GATE_HOOK_GREETING": "hello"},
    )

    result = runner.run(HookName.GATE, 'echo "$GATE_HOOK_GREETING"; echo oops >&2; exit 7')

    assert result.exit_code == 7
    assert not result.ok
    assert result.output_path == tmp_path / "logs" / "gate-gate-hook.txt"
    assert result.output_path.read_text(encoding="utf-8").split() == ["hello", "oops"]
    assert result.to_dict()["name"] == "gate"


def test_hook_runs_in_configured_directory(tmp_path: Path) -> None:
    workdir = tmp_path / "base"
    workdir.mkdir()
    runner = HookRunner(CommandExecutor(), log_dir=tmp_path, cwd=workdir)

    result = runner.run(HookName.PRE_TEST, "pwd")

    assert result.ok
    assert result.output_path.read_text(encoding="utf-8").strip() == workdir.resolve().as_posix()


def test_missing_shell_raises_hook_error(tmp_path: Path) -> None:
    runner = HookRunner(
        CommandExecutor(), log_dir=tmp_path, cwd=tmp_path, shell=str(tmp_path / "no-shell")
    )

    with pytest.raises(HookError, match="gate hook could not be started"):
        runner.run(HookName.GATE, "true")
