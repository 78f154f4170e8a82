"""
gate-orchestrator — end-to-end gate run.

File: src/gate_orchestrator/gate/runner.py

Purpose
- Wire settings into the executor, synchronizer, resolver and orchestrator, then
  drive one gate run: optional self-update hand-off, the new (and, when upgrading,
  old) sync passes, and the pre-test/gate/post-test hooks.

Functional requirements
- Fatal sync conditions propagate as typed exceptions before any hook runs.
- The gate hook decides the outcome; the post-test hook only runs after a passing
  gate hook and then decides it instead.
"""

from __future__ import annotations

import json
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from gate_orchestrator.domain.models import SyncPass
from gate_orchestrator.gate.bootstrap import SelfUpdateHandoff, needs_self_update
from gate_orchestrator.gate.hooks import HookName, HookResult, HookRunner
from gate_orchestrator.gate.upgrade import UpgradeBranches, select_upgrade_branches
from gate_orchestrator.integration_plane.executor import CommandExecutor
from gate_orchestrator.integration_plane.orchestrator import ProjectSetOrchestrator
from gate_orchestrator.integration_plane.ref_resolver import RefResolver
from gate_orchestrator.integration_plane.workspace_sync import WorkspaceSynchronizer
from gate_orchestrator.utils.fs import atomic_write, seed_from_cache

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from gate_orchestrator.config.settings import GateSettings
    from gate_orchestrator.domain.models import SyncReport


@dataclass(frozen=True, slots=True)
class GateComponents:
    executor: CommandExecutor
    synchronizer: WorkspaceSynchronizer
    resolver: RefResolver
    orchestrator: ProjectSetOrchestrator


def build_components(
    settings: GateSettings,
    *,
    executor: CommandExecutor | None = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
) -> GateComponents:
    """Assemble the sync stack from settings; ``sleep`` and ``rng`` are shared by all retries."""

    rng = rng or random.Random()
    executor = executor or CommandExecutor(kill_grace_seconds=settings.git.kill_grace_seconds)
    policy = settings.git.retry_policy()
    synchronizer = WorkspaceSynchronizer(
        executor,
        origin_url_template=settings.origin_url_template(),
        retry_policy=policy,
        git_timeout_seconds=settings.git.command_timeout_seconds,
        clean_retry_delay_seconds=settings.git.clean_retry_delay_seconds,
        sleep=sleep,
        rng=rng,
    )
    resolver = RefResolver(
        queue_fetch_url_template=settings.queue_fetch_url_template(),
        queue_url=settings.queue.url,
        project_under_test=settings.project_under_test,
        retry_policy=policy,
        sleep=sleep,
        rng=rng,
    )
    return GateComponents(
        executor=executor,
        synchronizer=synchronizer,
        resolver=resolver,
        orchestrator=ProjectSetOrchestrator(synchronizer, resolver),
    )


def plan_passes(settings: GateSettings) -> tuple[tuple[SyncPass, ...], UpgradeBranches | None]:
    """New pass first, then the old pass when an upgrade mode is active."""

    upgrade = select_upgrade_branches(settings.upgrade_mode, settings.queue.branch)
    if upgrade is None:
        return (SyncPass("new", settings.new_branch, settings.paths.new_root),), None
    return (
        SyncPass("new", upgrade.new, settings.paths.new_root),
        SyncPass("old", upgrade.old, settings.paths.old_root),
    ), upgrade


@dataclass(frozen=True, slots=True)
class GateRunResult:
    """Outcome of a gate run.

    ``handoff_exit_code`` is set when the run was delegated to a self-updated copy.
    """

    passed: bool
    reports: tuple[SyncReport, ...] = ()
    hooks: tuple[HookResult, ...] = ()
    handoff_exit_code: int | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "passed": self.passed,
            "handoff_exit_code": self.handoff_exit_code,
            "passes": [report.to_dict() for report in self.reports],
            "hooks": [hook.to_dict() for hook in self.hooks],
        }


class GateRun:
    def __init__(
        self,
        settings: GateSettings,
        *,
        run_log_dir: Path,
        components: GateComponents | None = None,
        hook_runner: HookRunner | None = None,
        handoff: SelfUpdateHandoff | None = None,
        forward_args: Sequence[str] = (),
        logger: Any | None = None,
    ) -> None:
        self._settings = settings
        self._run_log_dir = Path(run_log_dir)
        self._components = components or build_components(settings)
        self._hook_runner = hook_runner
        self._handoff = handoff or SelfUpdateHandoff(
            self._components.orchestrator, self._components.executor
        )
        self._forward_args = tuple(forward_args)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def execute(self) -> GateRunResult:
        settings = self._settings
        passes, upgrade = plan_passes(settings)

        if needs_self_update(settings):
            self._logger.info(
                "gate_self_update_required",
                self_project=settings.run.self_project,
            )
            exit_code = self._handoff.hand_off(settings, self._forward_args)
            return GateRunResult(passed=exit_code == 0, handoff_exit_code=exit_code)

        project_set = settings.project_set()
        reports: list[SyncReport] = []
        for sync_pass in passes:
            if seed_from_cache(settings.paths.workspace_cache, sync_pass.destination_root):
                self._logger.info(
                    "gate_workspace_cache_seeded",
                    pass_name=sync_pass.name,
                    cache=settings.paths.workspace_cache.as_posix(),
                    destination_root=sync_pass.destination_root.as_posix(),
                )
            report = self._components.orchestrator.sync_all(
                project_set,
                sync_pass.branch,
                sync_pass.destination_root,
                settings.queue.branch,
                settings.queue.ref,
                override_branch=settings.override_branch,
                pass_name=sync_pass.name,
            )
            atomic_write(
                self._run_log_dir / f"sync-{sync_pass.name}.json",
                json.dumps(report.to_dict(), indent=2, sort_keys=True) + "\n",
            )
            reports.append(report)

        hooks = self._run_hooks(upgrade)
        passed = all(hook.ok for hook in hooks if hook.name is not HookName.PRE_TEST)
        self._logger.info("gate_run_finished", passed=passed)
        return GateRunResult(passed=passed, reports=tuple(reports), hooks=hooks)

    def _run_hooks(self, upgrade: UpgradeBranches | None) -> tuple[HookResult, ...]:
        settings = self._settings
        runner = self._hook_runner or HookRunner(
            self._components.executor,
            log_dir=self._run_log_dir,
            cwd=settings.paths.base_dir,
            env=self._hook_env(upgrade),
        )

        results: list[HookResult] = []
        if settings.hooks.pre_test:
            pre_test = runner.run(HookName.PRE_TEST, settings.hooks.pre_test)
            if not pre_test.ok:
                self._logger.warning("gate_pre_test_hook_failed", exit_code=pre_test.exit_code)
            results.append(pre_test)

        gate = runner.run(HookName.GATE, settings.gate_hook_command)
        results.append(gate)

        if gate.ok and settings.hooks.post_test:
            results.append(runner.run(HookName.POST_TEST, settings.hooks.post_test))
        return tuple(results)

    def _hook_env(self, upgrade: UpgradeBranches | None) -> dict[str, str]:
        settings = self._settings
        env = {
            "BASE": settings.paths.base_dir.as_posix(),
            "GATE_RUN_LOG_DIR": self._run_log_dir.as_posix(),
            "ZUUL_BRANCH": settings.queue.branch,
            "ZUUL_REF": settings.queue.ref,
            "ZUUL_PROJECT": settings.queue.project,
        }
        if upgrade is not None:
            env["GRENADE_OLD_BRANCH"] = upgrade.old
            env["GRENADE_NEW_BRANCH"] = upgrade.new
        return env


__all__ = [
    "GateComponents",
    "GateRun",
    "GateRunResult",
    "build_components",
    "plan_passes",
]
