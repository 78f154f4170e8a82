"""Hand the run over to a freshly synced copy of the gate tooling itself."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from gate_orchestrator.constants import DEFAULT_BRANCH
from gate_orchestrator.domain.models import ProjectSet

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from gate_orchestrator.config.settings import GateSettings
    from gate_orchestrator.domain.models import SyncReport
    from gate_orchestrator.integration_plane.executor import CommandExecutor
    from gate_orchestrator.integration_plane.orchestrator import ProjectSetOrchestrator

REEXEC_ENV: dict[str, str] = {"GATE_RUN_REEXEC": "true", "RE_EXEC": "true"}


def needs_self_update(settings: GateSettings) -> bool:
    """True when the queued changes touch the gate tooling and this run is not the hand-off."""

    if settings.run.skip_self_project or settings.run.reexec:
        return False
    return settings.run.self_project in settings.queue.changes


def forward_arguments(config_file: Path | None, *, verbose: bool = False) -> tuple[str, ...]:
    """Arguments that let the handed-off child load the same configuration.

    The child runs from the synced tree, so an implicitly found ``gate.toml`` is
    passed on by absolute path.
    """

    args: list[str] = []
    if config_file is not None:
        args += ["--config", config_file.as_posix()]
    if verbose:
        args.append("--verbose")
    return tuple(args)


class SelfUpdateHandoff:
    """Sync the self project on ``master`` into the new root and rerun from that tree."""

    def __init__(
        self,
        orchestrator: ProjectSetOrchestrator,
        executor: CommandExecutor,
        *,
        python: str = sys.executable,
        logger: Any | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._executor = executor
        self._python = python
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def sync_self(self, settings: GateSettings) -> SyncReport:
        return self._orchestrator.sync_all(
            ProjectSet.build((settings.self_project,)),
            DEFAULT_BRANCH,
            settings.paths.new_root,
            settings.queue.branch,
            settings.queue.ref,
            override_branch=settings.override_branch,
            pass_name="self-update",
        )

    def child_env(self, tree: Path, environ: Mapping[str, str] | None = None) -> dict[str, str]:
        base = os.environ if environ is None else environ
        source_dir = (tree / "src").as_posix()
        existing = base.get("PYTHONPATH", "")
        pythonpath = f"{source_dir}{os.pathsep}{existing}" if existing else source_dir
        return {**REEXEC_ENV, "PYTHONPATH": pythonpath}

    def hand_off(self, settings: GateSettings, forward_args: Sequence[str] = ()) -> int:
        """Sync the self project, rerun ``gate_orchestrator run`` from it, return its status."""

        report = self.sync_self(settings)
        tree = report.state_for(settings.self_project).path
        self._logger.info(
            "gate_self_update_handoff",
            tree=tree.as_posix(),
            commit=report.state_for(settings.self_project).commit,
        )
        result = self._executor.run(
            self._python,
            ("-m", "gate_orchestrator", "run", *forward_args),
            None,
            cwd=tree,
            env=self.child_env(tree),
            capture=False,
        )
        self._logger.info("gate_self_update_finished", exit_code=result.exit_code)
        return result.exit_code


__all__ = ["REEXEC_ENV", "SelfUpdateHandoff", "forward_arguments", "needs_self_update"]
