"""Typed, immutable view of a validated gate configuration."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gate_orchestrator.config.loader import load_config
from gate_orchestrator.config.projects_manifest import load_projects_manifest
from gate_orchestrator.constants import (
    DEFAULT_BRANCH,
    DEFAULT_GATE_SCRIPT,
    NEW_WORKSPACE_DIR,
    OLD_WORKSPACE_DIR,
)
from gate_orchestrator.domain.models import Project, ProjectSet
from gate_orchestrator.integration_plane.retry import RetryPolicy
from gate_orchestrator.integration_plane.url_templates import (
    ORIGIN_URL_VARIABLES,
    QUEUE_FETCH_URL_VARIABLES,
    UrlTemplate,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class UpgradeMode(StrEnum):
    NONE = "none"
    BACKWARD = "backward"
    FORWARD = "forward"


@dataclass(frozen=True, slots=True)
class QueueSettings:
    """State handed over by the merge queue for this run."""

    branch: str
    ref: str
    project: str
    url: str
    changes: str
    fetch_url_template: str


@dataclass(frozen=True, slots=True)
class RunSettings:
    branch: str
    override_branch: str
    self_project: str
    skip_self_project: bool
    reexec: bool
    projects: tuple[str, ...]
    extra_projects: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class GitSettings:
    origin_url_template: str
    remote_update_attempts: int
    remote_update_timeout_seconds: float
    kill_grace_seconds: float
    retry_backoff_min_seconds: float
    retry_backoff_max_seconds: float
    command_timeout_seconds: float
    clean_retry_delay_seconds: float

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.remote_update_attempts,
            timeout_seconds=self.remote_update_timeout_seconds,
            backoff_min_seconds=self.retry_backoff_min_seconds,
            backoff_max_seconds=self.retry_backoff_max_seconds,
        )


@dataclass(frozen=True, slots=True)
class HookSettings:
    pre_test: str
    gate: str
    post_test: str


@dataclass(frozen=True, slots=True)
class PathSettings:
    base_dir: Path
    workspace_cache: Path
    projects_file: Path | None

    @property
    def new_root(self) -> Path:
        return self.base_dir / NEW_WORKSPACE_DIR

    @property
    def old_root(self) -> Path:
        return self.base_dir / OLD_WORKSPACE_DIR


@dataclass(frozen=True, slots=True)
class ObservabilitySettings:
    log_level: str
    log_dir: Path
    log_to_stdout: bool
    redact_secrets: bool


@dataclass(frozen=True, slots=True)
class GateSettings:
    """Everything a gate run needs, built once at startup and passed explicitly."""

    queue: QueueSettings
    run: RunSettings
    git: GitSettings
    upgrade_mode: UpgradeMode
    hooks: HookSettings
    paths: PathSettings
    observability: ObservabilitySettings

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        manifest_projects: Sequence[str] | None = None,
    ) -> GateSettings:
        """Build settings from a validated config mapping.

        ``manifest_projects``, when given, replaces ``run.projects``.
        """

        queue = config["queue"]
        run = config["run"]
        git = config["git"]
        hooks = config["hooks"]
        paths = config["paths"]
        observability = config["observability"]

        projects = run["projects"] if manifest_projects is None else manifest_projects
        return cls(
            queue=QueueSettings(
                branch=queue["branch"].strip(),
                ref=queue["ref"].strip(),
                project=queue["project"].strip(),
                url=queue["url"].strip(),
                changes=queue["changes"],
                fetch_url_template=queue["fetch_url_template"],
            ),
            run=RunSettings(
                branch=run["branch"].strip(),
                override_branch=run["override_branch"].strip(),
                self_project=run["self_project"].strip(),
                skip_self_project=bool(run["skip_self_project"]),
                reexec=bool(run["reexec"]),
                projects=tuple(name.strip() for name in projects),
                extra_projects=tuple(name.strip() for name in run["extra_projects"]),
            ),
            git=GitSettings(
                origin_url_template=git["origin_url_template"],
                remote_update_attempts=int(git["remote_update_attempts"]),
                remote_update_timeout_seconds=float(git["remote_update_timeout_seconds"]),
                kill_grace_seconds=float(git["kill_grace_seconds"]),
                retry_backoff_min_seconds=float(git["retry_backoff_min_seconds"]),
                retry_backoff_max_seconds=float(git["retry_backoff_max_seconds"]),
                command_timeout_seconds=float(git["command_timeout_seconds"]),
                clean_retry_delay_seconds=float(git["clean_retry_delay_seconds"]),
            ),
            upgrade_mode=UpgradeMode(config["upgrade"]["mode"]),
            hooks=HookSettings(
                pre_test=hooks["pre_test"].strip(),
                gate=hooks["gate"].strip(),
                post_test=hooks["post_test"].strip(),
            ),
            paths=PathSettings(
                base_dir=Path(paths["base_dir"]),
                workspace_cache=Path(paths["workspace_cache"]),
                projects_file=Path(paths["projects_file"]) if paths["projects_file"] else None,
            ),
            observability=ObservabilitySettings(
                log_level=observability["log_level"],
                log_dir=Path(observability["log_dir"]),
                log_to_stdout=bool(observability["log_to_stdout"]),
                redact_secrets=bool(observability["redact_secrets"]),
            ),
        )

    @property
    def project_under_test(self) -> Project | None:
        return Project(self.queue.project) if self.queue.project else None

    @property
    def self_project(self) -> Project:
        return Project(self.run.self_project)

    @property
    def gate_hook_command(self) -> str:
        """The configured gate hook, or the self project's gate script under the new tree."""

        if self.hooks.gate:
            return self.hooks.gate
        script = self.paths.new_root / self.self_project.short_name / DEFAULT_GATE_SCRIPT
        return shlex.quote(script.as_posix())

    @property
    def override_branch(self) -> str | None:
        return self.run.override_branch or None

    @property
    def new_branch(self) -> str:
        """Branch of the new pass when no upgrade mode is active."""

        return self.run.branch or self.queue.branch or DEFAULT_BRANCH

    def project_set(self) -> ProjectSet:
        return ProjectSet.build(
            self.run.projects,
            self_project=None if self.run.skip_self_project else self.self_project,
            extra_projects=self.run.extra_projects,
        )

    def origin_url_template(self) -> UrlTemplate:
        return UrlTemplate(self.git.origin_url_template, allowed_variables=ORIGIN_URL_VARIABLES)

    def queue_fetch_url_template(self) -> UrlTemplate:
        return UrlTemplate(
            self.queue.fetch_url_template, allowed_variables=QUEUE_FETCH_URL_VARIABLES
        )


def load_settings(
    config_path: Path | str | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[GateSettings, dict[str, Any]]:
    """Load, validate, and freeze the configuration; also return the raw effective mapping."""

    config = load_config(config_path, cli_overrides=cli_overrides, environ=environ)
    projects_file = config["paths"]["projects_file"]
    manifest = load_projects_manifest(projects_file) if projects_file else None
    return GateSettings.from_config(config, manifest_projects=manifest), config


__all__ = [
    "GateSettings",
    "GitSettings",
    "HookSettings",
    "ObservabilitySettings",
    "PathSettings",
    "QueueSettings",
    "RunSettings",
    "UpgradeMode",
    "load_settings",
]
