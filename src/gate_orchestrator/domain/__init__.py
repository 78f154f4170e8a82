"""
gate-orchestrator domain package.

File: src/gate_orchestrator/domain/__init__.py

Purpose
- Domain types shared across the orchestrator: projects, project sets, resolution
  outcomes, workspace state, and the error taxonomy.

Functional requirements
- Domain layer stays free of IO side effects.
"""

from gate_orchestrator.domain.errors import (
    CommandSpawnError,
    ConfigurationInconsistentError,
    GateError,
    HookError,
    RefNotFoundError,
    RemoteUnreachableError,
    WorkspaceSyncError,
)
from gate_orchestrator.domain.models import (
    Failed,
    FailureKind,
    Project,
    ProjectSet,
    ProjectSyncRecord,
    ResolutionOutcome,
    SyncPass,
    SyncReport,
    UseBranchHead,
    UseChangeReference,
    WorkspaceState,
)

__all__ = [
    "CommandSpawnError",
    "ConfigurationInconsistentError",
    "Failed",
    "FailureKind",
    "GateError",
    "HookError",
    "Project",
    "ProjectSet",
    "ProjectSyncRecord",
    "RefNotFoundError",
    "RemoteUnreachableError",
    "ResolutionOutcome",
    "SyncPass",
    "SyncReport",
    "UseBranchHead",
    "UseChangeReference",
    "WorkspaceState",
    "WorkspaceSyncError",
]
