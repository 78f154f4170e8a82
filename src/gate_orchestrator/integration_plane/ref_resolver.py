"""Choose the commit each project checks out for a gate pass."""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from gate_orchestrator.constants import DEFAULT_BRANCH
from gate_orchestrator.domain.models import (
    Failed,
    FailureKind,
    Project,
    UseBranchHead,
    UseChangeReference,
)
from gate_orchestrator.integration_plane.git_remote import FetchStatus
from gate_orchestrator.integration_plane.retry import RetryPolicy, call_with_retries

if TYPE_CHECKING:
    from collections.abc import Callable

    from gate_orchestrator.domain.models import ResolutionOutcome
    from gate_orchestrator.integration_plane.git_remote import FetchResult
    from gate_orchestrator.integration_plane.url_templates import UrlTemplate


class RemoteRefSource(Protocol):
    """What the resolver needs from a prepared working tree."""

    def has_remote_branch(self, branch: str) -> bool: ...

    def fetch_ref(
        self, url: str, ref: str, *, timeout_seconds: float | None = None
    ) -> FetchResult: ...


def substitute_branch(reference: str, from_branch: str, to_branch: str) -> str:
    """Replace the first literal occurrence of ``from_branch`` in ``reference``.

    This is plain text substitution. It does not check that the match is the
    branch segment of the reference, so ``refs/zuul/master/Zmaster1`` with
    ``master -> stable/havana`` only rewrites the first ``master``.
    """

    if not reference or not from_branch:
        return reference
    return reference.replace(from_branch, to_branch, 1)


class RefResolver:
    """Decide between a queue change reference and a branch head for one project."""

    def __init__(
        self,
        *,
        queue_fetch_url_template: UrlTemplate,
        queue_url: str,
        project_under_test: Project | str | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        logger: Any | None = None,
    ) -> None:
        self._fetch_url_template = queue_fetch_url_template
        self._queue_url = queue_url.rstrip("/")
        if isinstance(project_under_test, str) and project_under_test:
            project_under_test = Project(project_under_test)
        self.project_under_test = project_under_test or None
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def queue_fetch_url(self, project: Project) -> str:
        return self._fetch_url_template.render(project, url=self._queue_url)

    def is_under_test(self, project: Project) -> bool:
        return self.project_under_test is not None and project == self.project_under_test

    def resolve(
        self,
        project: Project,
        requested_branch: str,
        queue_branch: str,
        queue_change_ref: str,
        override_branch: str | None = None,
        *,
        remote: RemoteRefSource,
    ) -> ResolutionOutcome:
        override_ref = ""
        if override_branch:
            override_ref = substitute_branch(queue_change_ref, requested_branch, override_branch)

        branch = requested_branch
        fallback_ref = ""
        fell_back = False
        # Exact branch name; a prefix of another branch does not count.
        if not remote.has_remote_branch(requested_branch):
            fallback_ref = substitute_branch(queue_change_ref, requested_branch, DEFAULT_BRANCH)
            branch = DEFAULT_BRANCH
            fell_back = True
            self._logger.info(
                "gate_branch_fallback",
                project=project.name,
                requested_branch=requested_branch,
                branch=branch,
                fallback_ref=fallback_ref,
            )

        if queue_branch != branch:
            return self._branch_head(project, branch, reason="queue branch differs")

        candidates = _unique_non_empty((override_ref, queue_change_ref, fallback_ref))
        if not candidates and not self.is_under_test(project):
            return self._branch_head(project, branch, reason="no change reference")

        url = self.queue_fetch_url(project)
        for candidate in candidates:
            fetched = self._fetch(remote, project, url, candidate)
            if fetched.fetched:
                self._logger.info(
                    "gate_ref_resolved",
                    project=project.name,
                    outcome="change_ref",
                    ref=candidate,
                    commit=fetched.commit,
                )
                return UseChangeReference(ref=candidate, commit=fetched.commit, url=url)
            self._logger.debug(
                "gate_ref_candidate_missing",
                project=project.name,
                ref=candidate,
                detail=fetched.detail,
            )

        if self.is_under_test(project):
            tried = ", ".join(candidates) or "no candidates"
            kind = (
                FailureKind.CONFIGURATION_INCONSISTENT if fell_back else FailureKind.REF_NOT_FOUND
            )
            reason = f"Unable to find ref {queue_change_ref} for {project.name}"
            if fell_back:
                reason = (
                    f"{reason}; branch {requested_branch} does not exist and "
                    f"no fallback ref resolved (tried {tried})"
                )
            self._logger.error(
                "gate_ref_resolved",
                project=project.name,
                outcome="failed",
                kind=kind.value,
                ref=queue_change_ref,
            )
            return Failed(reason=reason, kind=kind, reference=queue_change_ref)

        return self._branch_head(project, branch, reason="no candidate resolved")

    def _branch_head(self, project: Project, branch: str, *, reason: str) -> UseBranchHead:
        self._logger.info(
            "gate_ref_resolved",
            project=project.name,
            outcome="branch_head",
            branch=branch,
            reason=reason,
        )
        return UseBranchHead(branch=branch)

    def _fetch(
        self, remote: RemoteRefSource, project: Project, url: str, ref: str
    ) -> FetchResult:
        policy = self._retry_policy
        return call_with_retries(
            lambda: remote.fetch_ref(url, ref, timeout_seconds=policy.timeout_seconds),
            retryable=lambda result: result.status is FetchStatus.UNREACHABLE,
            describe=lambda result: result.detail,
            policy=policy,
            project=project.name,
            operation=f"git fetch {ref}",
            sleep=self._sleep,
            rng=self._rng,
            logger=self._logger,
        )


def _unique_non_empty(values: tuple[str, ...]) -> tuple[str, ...]:
    ordered: list[str] = []
    for value in values:
        if value and value not in ordered:
            ordered.append(value)
    return tuple(ordered)


__all__ = ["RefResolver", "RemoteRefSource", "substitute_branch"]
