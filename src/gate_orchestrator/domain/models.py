"""Immutable domain types for projects, resolution outcomes, and workspace state."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

_PROJECT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*(/[A-Za-z0-9][A-Za-z0-9._-]*)+$")


@dataclass(frozen=True, slots=True, order=True)
class Project:
    """A repository identified by ``org/name``."""

    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _PROJECT_RE.fullmatch(self.name):
            raise ValueError(f"invalid project identifier: {self.name!r}")
        if ".." in PurePosixPath(self.name).parts:
            raise ValueError(f"project identifier must not traverse upwards: {self.name!r}")

    @property
    def short_name(self) -> str:
        return PurePosixPath(self.name).name

    def __str__(self) -> str:
        return self.name


class FailureKind(StrEnum):
    REF_NOT_FOUND = "ref_not_found"
    CONFIGURATION_INCONSISTENT = "configuration_inconsistent"


@dataclass(frozen=True, slots=True)
class UseChangeReference:
    """Check out the speculative merge state fetched from the queue."""

    ref: str
    commit: str
    url: str = ""

    def describe(self) -> str:
        return f"change-ref {self.ref} ({self.commit[:12]})"


@dataclass(frozen=True, slots=True)
class UseBranchHead:
    """Check out the tip of the remote-tracking branch."""

    branch: str

    def describe(self) -> str:
        return f"branch {self.branch}"


@dataclass(frozen=True, slots=True)
class Failed:
    """No acceptable ref exists; the run cannot continue."""

    reason: str
    kind: FailureKind = FailureKind.REF_NOT_FOUND
    reference: str = ""

    def describe(self) -> str:
        return f"failed ({self.kind.value}): {self.reason}"


ResolutionOutcome = UseChangeReference | UseBranchHead | Failed


@dataclass(frozen=True, slots=True)
class WorkspaceState:
    """On-disk working tree of one project after synchronization."""

    project: Project
    path: Path
    ref: str
    commit: str
    clean: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "project": self.project.name,
            "path": self.path.as_posix(),
            "ref": self.ref,
            "commit": self.commit,
            "clean": self.clean,
        }


@dataclass(frozen=True, slots=True)
class ProjectSet:
    """Ordered, duplicate-free collection of projects kept in lockstep."""

    projects: tuple[Project, ...] = ()

    @classmethod
    def build(
        cls,
        projects: Iterable[str | Project],
        *,
        self_project: str | Project | None = None,
        extra_projects: Iterable[str | Project] = (),
    ) -> ProjectSet:
        """Build the set: self project first, then ``projects``, then ``extra_projects``."""

        ordered: list[Project] = []
        seen: set[str] = set()

        def _add(item: str | Project) -> None:
            project = item if isinstance(item, Project) else Project(item.strip())
            if project.name in seen:
                return
            seen.add(project.name)
            ordered.append(project)

        if self_project is not None:
            _add(self_project)
        for item in projects:
            _add(item)
        for item in extra_projects:
            _add(item)
        return cls(projects=tuple(ordered))

    def __iter__(self) -> Iterator[Project]:
        return iter(self.projects)

    def __len__(self) -> int:
        return len(self.projects)

    def __contains__(self, item: object) -> bool:
        name = item.name if isinstance(item, Project) else item
        return any(project.name == name for project in self.projects)

    def names(self) -> tuple[str, ...]:
        return tuple(project.name for project in self.projects)

    def only(self, project: str | Project) -> ProjectSet:
        """Return a single-project set."""

        return ProjectSet.build((project,))


@dataclass(frozen=True, slots=True)
class SyncPass:
    """One synchronization pass: every project at ``branch`` under ``destination_root``."""

    name: str
    branch: str
    destination_root: Path


@dataclass(frozen=True, slots=True)
class ProjectSyncRecord:
    project: Project
    outcome: ResolutionOutcome
    state: WorkspaceState


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Ordered per-project results of one orchestrator pass."""

    branch: str
    destination_root: Path
    records: tuple[ProjectSyncRecord, ...] = field(default_factory=tuple)

    def state_for(self, project: str | Project) -> WorkspaceState:
        name = project.name if isinstance(project, Project) else project
        for record in self.records:
            if record.project.name == name:
                return record.state
        raise KeyError(name)

    def to_dict(self) -> dict[str, object]:
        return {
            "branch": self.branch,
            "destination_root": self.destination_root.as_posix(),
            "projects": [
                {
                    **record.state.to_dict(),
                    "outcome": record.outcome.describe(),
                }
                for record in self.records
            ],
        }


__all__ = [
    "Failed",
    "FailureKind",
    "Project",
    "ProjectSet",
    "ProjectSyncRecord",
    "ResolutionOutcome",
    "SyncPass",
    "SyncReport",
    "UseBranchHead",
    "UseChangeReference",
    "WorkspaceState",
]
