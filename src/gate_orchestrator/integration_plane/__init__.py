"""
gate-orchestrator integration plane.

File: src/gate_orchestrator/integration_plane/__init__.py

Purpose
- Everything that touches git and subprocesses: command execution, the per-project
  repository wrapper, ref resolution, workspace synchronization, and the pass-level
  orchestrator.

Functional requirements
- Remote operations are bounded by timeouts and a fixed retry budget.
- Passes run strictly sequentially in project-set order.
"""

from gate_orchestrator.integration_plane.executor import CommandExecutor, CommandResult
from gate_orchestrator.integration_plane.git_remote import (
    FetchResult,
    FetchStatus,
    GitCommandError,
    ProjectRepository,
    classify_fetch_failure,
)
from gate_orchestrator.integration_plane.orchestrator import ProjectSetOrchestrator
from gate_orchestrator.integration_plane.ref_resolver import (
    RefResolver,
    RemoteRefSource,
    substitute_branch,
)
from gate_orchestrator.integration_plane.retry import RetryPolicy, call_with_retries
from gate_orchestrator.integration_plane.url_templates import (
    ORIGIN_URL_VARIABLES,
    QUEUE_FETCH_URL_VARIABLES,
    UrlTemplate,
    UrlTemplateError,
)
from gate_orchestrator.integration_plane.workspace_sync import (
    WorkspaceSynchronizer,
    failure_error,
)

__all__ = [
    "ORIGIN_URL_VARIABLES",
    "QUEUE_FETCH_URL_VARIABLES",
    "CommandExecutor",
    "CommandResult",
    "FetchResult",
    "FetchStatus",
    "GitCommandError",
    "ProjectRepository",
    "ProjectSetOrchestrator",
    "RefResolver",
    "RemoteRefSource",
    "RetryPolicy",
    "UrlTemplate",
    "UrlTemplateError",
    "WorkspaceSynchronizer",
    "call_with_retries",
    "classify_fetch_failure",
    "failure_error",
    "substitute_branch",
]
