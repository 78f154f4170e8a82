"""
Workspace synchronization for individual project trees.

`prepare()` brings a tree at ``<destination_root>/<short_name>`` to a known remote
state: cloned when absent, origin reset to the canonical URL, remote-tracking
refs refreshed under a bounded retry budget and pruned.

`materialize()` applies a `ResolutionOutcome` to a prepared tree: checkout, hard
reset, and a forced clean that is retried once. A second clean failure is
logged and reported through ``WorkspaceState.clean`` rather than raised.
"""

from __future__ import annotations

import random
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from gate_orchestrator.constants import (
    CLEAN_RETRY_DELAY_SECONDS,
    GIT_COMMAND_TIMEOUT_SECONDS,
    ORIGIN_REMOTE,
)
from gate_orchestrator.domain.errors import (
    ConfigurationInconsistentError,
    GateError,
    RefNotFoundError,
    WorkspaceSyncError,
)
from gate_orchestrator.domain.models import (
    Failed,
    FailureKind,
    UseBranchHead,
    UseChangeReference,
    WorkspaceState,
)
from gate_orchestrator.integration_plane.git_remote import FetchStatus, ProjectRepository
from gate_orchestrator.integration_plane.retry import RetryPolicy, call_with_retries

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from gate_orchestrator.domain.models import Project, ResolutionOutcome
    from gate_orchestrator.integration_plane.executor import CommandExecutor
    from gate_orchestrator.integration_plane.url_templates import UrlTemplate


def failure_error(project: Project, outcome: Failed) -> GateError:
    """Exception matching a ``Failed`` resolution outcome."""

    if outcome.kind is FailureKind.CONFIGURATION_INCONSISTENT:
        return ConfigurationInconsistentError(outcome.reason)
    return RefNotFoundError(project.name, outcome.reference, outcome.reason)


class WorkspaceSynchronizer:
    """Prepare and materialize project working trees."""

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        origin_url_template: UrlTemplate,
        retry_policy: RetryPolicy | None = None,
        git_timeout_seconds: float = GIT_COMMAND_TIMEOUT_SECONDS,
        clean_retry_delay_seconds: float = CLEAN_RETRY_DELAY_SECONDS,
        git_env: Mapping[str, str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        logger: Any | None = None,
    ) -> None:
        self._executor = executor
        self._origin_url_template = origin_url_template
        self._retry_policy = retry_policy or RetryPolicy()
        self._git_timeout_seconds = git_timeout_seconds
        self._clean_retry_delay_seconds = clean_retry_delay_seconds
        self._git_env = dict(git_env or {})
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def origin_url(self, project: Project) -> str:
        return self._origin_url_template.render(project)

    def repository(self, project: Project, destination_root: Path) -> ProjectRepository:
        return ProjectRepository(
            project,
            Path(destination_root) / project.short_name,
            self._executor,
            timeout_seconds=self._git_timeout_seconds,
            env_overrides=self._git_env,
        )

    def prepare(self, project: Project, destination_root: Path) -> ProjectRepository:
        repo = self.repository(project, destination_root)
        url = self.origin_url(project)
        policy = self._retry_policy

        if not repo.exists():
            if repo.path.exists() and any(repo.path.iterdir()):
                raise WorkspaceSyncError(
                    f"{repo.path} exists and is not a git working tree; refusing to clone into it"
                )
            self._logger.info("gate_project_clone", project=project.name, url=url)
            call_with_retries(
                lambda: repo.clone(url, timeout_seconds=policy.timeout_seconds),
                retryable=lambda result: not result.ok,
                describe=lambda result: result.detail(),
                policy=policy,
                project=project.name,
                operation="git clone",
                sleep=self._sleep,
                rng=self._rng,
                logger=self._logger,
            )

        repo.set_origin_url(url)
        call_with_retries(
            lambda: repo.remote_update(timeout_seconds=policy.timeout_seconds),
            retryable=lambda result: not result.ok,
            describe=lambda result: result.detail(),
            policy=policy,
            project=project.name,
            operation="git remote update",
            sleep=self._sleep,
            rng=self._rng,
            logger=self._logger,
        )

        pruned = repo.prune_origin()
        if not pruned.ok:
            self._logger.warning(
                "gate_remote_prune_failed",
                project=project.name,
                detail=pruned.detail(),
            )
        return repo

    def materialize(self, repo: ProjectRepository, outcome: ResolutionOutcome) -> WorkspaceState:
        project = repo.project
        if isinstance(outcome, Failed):
            raise failure_error(project, outcome)

        if isinstance(outcome, UseChangeReference):
            self._ensure_commit(repo, outcome)
            repo.checkout_detached(outcome.commit)
            repo.reset_hard(outcome.commit)
            ref = outcome.ref
        elif isinstance(outcome, UseBranchHead):
            repo.checkout_branch(outcome.branch)
            repo.reset_hard(f"refs/remotes/{ORIGIN_REMOTE}/{outcome.branch}")
            ref = outcome.branch
        else:
            raise TypeError(f"unsupported resolution outcome: {outcome!r}")

        clean = self._clean(repo)
        state = WorkspaceState(
            project=project,
            path=repo.path,
            ref=ref,
            commit=repo.head_commit(),
            clean=clean,
        )
        self._logger.info(
            "gate_project_synced",
            project=project.name,
            path=state.path.as_posix(),
            ref=state.ref,
            commit=state.commit,
            clean=state.clean,
        )
        return state

    def sync(
        self, project: Project, outcome: ResolutionOutcome, destination_root: Path
    ) -> WorkspaceState:
        if isinstance(outcome, Failed):
            raise failure_error(project, outcome)
        return self.materialize(self.prepare(project, destination_root), outcome)

    def _ensure_commit(self, repo: ProjectRepository, outcome: UseChangeReference) -> None:
        if repo.has_commit(outcome.commit):
            return
        if not outcome.url:
            raise RefNotFoundError(
                repo.project.name,
                outcome.ref,
                f"commit {outcome.commit} for ref {outcome.ref} is not present in {repo.path}",
            )
        policy = self._retry_policy
        fetched = call_with_retries(
            lambda: repo.fetch_ref(
                outcome.url, outcome.ref, timeout_seconds=policy.timeout_seconds
            ),
            retryable=lambda result: result.status is FetchStatus.UNREACHABLE,
            describe=lambda result: result.detail,
            policy=policy,
            project=repo.project.name,
            operation=f"git fetch {outcome.ref}",
            sleep=self._sleep,
            rng=self._rng,
            logger=self._logger,
        )
        if not fetched.fetched or not repo.has_commit(outcome.commit):
            raise RefNotFoundError(
                repo.project.name,
                outcome.ref,
                f"Unable to find ref {outcome.ref} at {outcome.commit} for {repo.project.name}",
            )

    def _clean(self, repo: ProjectRepository) -> bool:
        result = repo.clean()
        if result.ok:
            return True
        self._sleep(self._clean_retry_delay_seconds)
        result = repo.clean()
        if result.ok:
            return True
        self._logger.warning(
            "gate_tree_clean_failed",
            project=repo.project.name,
            path=repo.path.as_posix(),
            detail=result.detail(),
        )
        return False


__all__ = ["WorkspaceSynchronizer", "failure_error"]
