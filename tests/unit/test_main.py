"""
gate-orchestrator — unit tests for the process entrypoint.

File: tests/unit/test_main.py

Purpose
- Validate exception-to-exit-code routing and argv handling at the CLI boundary.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gate_orchestrator.config.loader import ConfigLoadError
from gate_orchestrator.domain.errors import (
    CommandSpawnError,
    ConfigurationInconsistentError,
    RefNotFoundError,
    RemoteUnreachableError,
    WorkspaceSyncError,
)
from gate_orchestrator.main import (
    ExitCode,
    _normalize_exit_code,
    _route_exception,
    cli_entrypoint,
)


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigLoadError("config file not found: gate.toml"), ExitCode.CONFIG_ERROR),
        (ConfigurationInconsistentError("no fallback ref"), ExitCode.CONFIG_ERROR),
        (RefNotFoundError("openstack/nova", "refs/zuul/master/Z1"), ExitCode.REF_NOT_FOUND),
        (
            RemoteUnreachableError("openstack/nova", "git remote update", 3),
            ExitCode.REMOTE_UNREACHABLE,
        ),
        (WorkspaceSyncError("clone refused"), ExitCode.WORKSPACE_ERROR),
        (CommandSpawnError(["git"], "No such file"), ExitCode.INTERNAL_ERROR),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
        (KeyboardInterrupt(), ExitCode.INTERNAL_ERROR),
    ],
)
def test_route_exception(exc: BaseException, expected: ExitCode) -> None:
    assert _route_exception(exc) is expected


def test_route_exception_follows_cause_chain() -> None:
    try:
        try:
            raise RefNotFoundError("openstack/nova", "refs/zuul/master/Z1")
        except RefNotFoundError as inner:
            raise RuntimeError("sync aborted") from inner
    except RuntimeError as outer:
        assert _route_exception(outer) is ExitCode.REF_NOT_FOUND


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 0), (0, 0), (3, 3), (255, 255), (256, 6), (-1, 6), ("fatal", 6)],
)
def test_normalize_exit_code(raw: object, expected: int) -> None:
    assert _normalize_exit_code(raw) == expected


def test_missing_config_file_exits_with_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli_entrypoint(["projects", "--config", str(tmp_path / "missing.toml")])

    assert exit_code == ExitCode.CONFIG_ERROR
    assert "config file not found" in capsys.readouterr().err


def test_unknown_command_is_a_usage_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["frobnicate"]) == 2
    assert "invalid choice" in capsys.readouterr().err


def test_projects_command_prints_sync_order(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config = tmp_path / "gate.toml"
    config.write_text(
        '[run]\nprojects = ["openstack/nova", "openstack/keystone"]\n', encoding="utf-8"
    )

    exit_code = cli_entrypoint(["projects", "--config", str(config), "--json"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["projects"] == [
        "openstack-infra/devstack-gate",
        "openstack/nova",
        "openstack/keystone",
    ]
