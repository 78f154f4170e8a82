"""Run the resolver and synchronizer over a whole project set, one pass at a time."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from gate_orchestrator.domain.models import Failed, ProjectSyncRecord, SyncReport
from gate_orchestrator.integration_plane.workspace_sync import failure_error
from gate_orchestrator.observability.logging import correlation_scope

if TYPE_CHECKING:
    from gate_orchestrator.domain.models import ProjectSet
    from gate_orchestrator.integration_plane.ref_resolver import RefResolver
    from gate_orchestrator.integration_plane.workspace_sync import WorkspaceSynchronizer


class ProjectSetOrchestrator:
    """Sequentially prepare, resolve, and materialize every project of a set.

    The first ``Failed`` outcome or fatal synchronizer error aborts the pass; trees
    already synchronized are left as they are.
    """

    def __init__(
        self,
        synchronizer: WorkspaceSynchronizer,
        resolver: RefResolver,
        *,
        logger: Any | None = None,
    ) -> None:
        self._synchronizer = synchronizer
        self._resolver = resolver
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def sync_all(
        self,
        project_set: ProjectSet,
        branch: str,
        destination_root: Path,
        queue_branch: str,
        queue_change_ref: str,
        *,
        override_branch: str | None = None,
        pass_name: str = "new",
    ) -> SyncReport:
        destination_root = Path(destination_root)
        destination_root.mkdir(parents=True, exist_ok=True)
        records: list[ProjectSyncRecord] = []

        with correlation_scope(pass_name=pass_name):
            self._logger.info(
                "gate_pass_started",
                pass_name=pass_name,
                branch=branch,
                destination_root=destination_root.as_posix(),
                projects=len(project_set),
            )
            for project in project_set:
                with correlation_scope(project=project.name):
                    repo = self._synchronizer.prepare(project, destination_root)
                    outcome = self._resolver.resolve(
                        project,
                        branch,
                        queue_branch,
                        queue_change_ref,
                        override_branch,
                        remote=repo,
                    )
                    if isinstance(outcome, Failed):
                        raise failure_error(project, outcome)
                    state = self._synchronizer.materialize(repo, outcome)
                records.append(ProjectSyncRecord(project=project, outcome=outcome, state=state))

            self._logger.info(
                "gate_pass_finished",
                pass_name=pass_name,
                branch=branch,
                synced=len(records),
                unclean=sum(1 for record in records if not record.state.clean),
            )

        return SyncReport(
            branch=branch,
            destination_root=destination_root,
            records=tuple(records),
        )


__all__ = ["ProjectSetOrchestrator"]
