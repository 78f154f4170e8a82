"""
gate-orchestrator — shared pytest fixtures.

File: tests/conftest.py

Purpose
- Isolate every test from the host git configuration, CI variables, and global
  structlog/logging state.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
import structlog

from gate_orchestrator.config.loader import ENV_PREFIX, LEGACY_ENV_BINDINGS
from gate_orchestrator.observability import shutdown_logging

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    xdg = tmp_path / "xdg"
    home.mkdir()
    xdg.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Gate Tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "gate-tests@example.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Gate Tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "gate-tests@example.invalid")


@pytest.fixture(autouse=True)
def clean_ci_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for binding in LEGACY_ENV_BINDINGS:
        monkeypatch.delenv(binding.env_name, raising=False)
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_logging_state() -> Iterator[None]:
    yield
    shutdown_logging()
    structlog.reset_defaults()
