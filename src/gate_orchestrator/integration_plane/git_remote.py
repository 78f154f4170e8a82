"""Git CLI wrapper bound to one project working tree."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Final

from gate_orchestrator.constants import FETCH_HEAD, GIT_COMMAND_TIMEOUT_SECONDS, ORIGIN_REMOTE
from gate_orchestrator.domain.errors import WorkspaceSyncError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from gate_orchestrator.domain.models import Project
    from gate_orchestrator.integration_plane.executor import CommandExecutor, CommandResult

_REMOTE_BRANCH_PREFIX: Final[str] = f"refs/remotes/{ORIGIN_REMOTE}/"

_NOT_FOUND_MARKERS: Final[tuple[str, ...]] = (
    "couldn't find remote ref",
    "could not find remote ref",
    "no such remote ref",
    "not our ref",
    "repository not found",
    "does not appear to be a git repository",
)
_UNREACHABLE_MARKERS: Final[tuple[str, ...]] = (
    "could not resolve host",
    "unable to access",
    "connection refused",
    "connection timed out",
    "connection reset",
    "operation timed out",
    "failed to connect",
    "could not read from remote repository",
    "the remote end hung up unexpectedly",
    "early eof",
    "network is unreachable",
)


class GitCommandError(WorkspaceSyncError):
    """Raised when a git subprocess exits non-zero where success is required."""

    def __init__(self, result: CommandResult) -> None:
        self.result = result
        message = f"git command failed ({result.exit_code}): {' '.join(result.command)}"
        detail = result.detail()
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class FetchStatus(StrEnum):
    FETCHED = "fetched"
    NOT_FOUND = "not_found"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of fetching a single ref by name."""

    url: str
    ref: str
    status: FetchStatus
    commit: str = ""
    detail: str = ""

    @property
    def fetched(self) -> bool:
        return self.status is FetchStatus.FETCHED


def classify_fetch_failure(result: CommandResult) -> FetchStatus:
    """Map a failed ``git fetch`` to "ref not found" or "remote unreachable".

    Failures that match neither marker list count as "not found" so resolution
    moves on to the next candidate.
    """

    if result.timed_out:
        return FetchStatus.UNREACHABLE
    text = f"{result.stderr}\n{result.stdout}".lower()
    if any(marker in text for marker in _NOT_FOUND_MARKERS):
        return FetchStatus.NOT_FOUND
    if any(marker in text for marker in _UNREACHABLE_MARKERS):
        return FetchStatus.UNREACHABLE
    return FetchStatus.NOT_FOUND


class ProjectRepository:
    """Working tree of ``project`` at ``path`` driven through the git CLI."""

    def __init__(
        self,
        project: Project,
        path: Path | str,
        executor: CommandExecutor,
        *,
        timeout_seconds: float = GIT_COMMAND_TIMEOUT_SECONDS,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.project = project
        self.path = Path(path)
        self._executor = executor
        self._timeout_seconds = timeout_seconds
        self._env = {"GIT_TERMINAL_PROMPT": "0", **dict(env_overrides or {})}

    def exists(self) -> bool:
        return (self.path / ".git").exists()

    def clone(self, url: str, *, timeout_seconds: float | None = None) -> CommandResult:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return self._run_git(
            ["clone", url, str(self.path.resolve())],
            cwd=self.path.parent,
            check=False,
            timeout_seconds=timeout_seconds,
        )

    def origin_url(self) -> str:
        result = self._run_git(["remote", "get-url", ORIGIN_REMOTE], check=False)
        return result.stdout.strip() if result.ok else ""

    def set_origin_url(self, url: str) -> None:
        if self._run_git(["remote", "set-url", ORIGIN_REMOTE, url], check=False).ok:
            return
        self._run_git(["remote", "add", ORIGIN_REMOTE, url])

    def remote_update(self, *, timeout_seconds: float | None = None) -> CommandResult:
        return self._run_git(["remote", "update"], check=False, timeout_seconds=timeout_seconds)

    def prune_origin(self) -> CommandResult:
        return self._run_git(["remote", "prune", ORIGIN_REMOTE], check=False)

    def remote_branches(self) -> frozenset[str]:
        """Names of the remote-tracking branches of ``origin``."""

        output = self._run_git(
            ["for-each-ref", "--format=%(refname)", _REMOTE_BRANCH_PREFIX.rstrip("/")]
        ).stdout
        branches: set[str] = set()
        for line in output.splitlines():
            ref = line.strip()
            if not ref.startswith(_REMOTE_BRANCH_PREFIX):
                continue
            name = ref.removeprefix(_REMOTE_BRANCH_PREFIX)
            if name and name != "HEAD":
                branches.add(name)
        return frozenset(branches)

    def has_remote_branch(self, branch: str) -> bool:
        """True when ``origin/<branch>`` exists by exact name.

        ``stable/x`` does not match ``stable/x-eol``.
        """

        return branch in self.remote_branches()

    def fetch_ref(self, url: str, ref: str, *, timeout_seconds: float | None = None) -> FetchResult:
        """Fetch one ref from ``url``; on success the commit is what ``FETCH_HEAD`` names."""

        if not ref:
            return FetchResult(url=url, ref=ref, status=FetchStatus.NOT_FOUND, detail="empty ref")

        result = self._run_git(["fetch", url, ref], check=False, timeout_seconds=timeout_seconds)
        if not result.ok:
            return FetchResult(
                url=url,
                ref=ref,
                status=classify_fetch_failure(result),
                detail=result.detail(),
            )
        return FetchResult(
            url=url,
            ref=ref,
            status=FetchStatus.FETCHED,
            commit=self.rev_parse(FETCH_HEAD),
        )

    def has_commit(self, commit: str) -> bool:
        if not commit:
            return False
        return self._run_git(["cat-file", "-e", f"{commit}^{{commit}}"], check=False).ok

    def checkout_detached(self, commit: str) -> None:
        self._run_git(["checkout", "--force", "--detach", commit])

    def checkout_branch(self, branch: str) -> None:
        """Point local ``branch`` at ``origin/branch`` and check it out."""

        self._run_git(["checkout", "--force", "-B", branch, f"{_REMOTE_BRANCH_PREFIX}{branch}"])

    def reset_hard(self, target: str) -> None:
        self._run_git(["reset", "--hard", "--quiet", target])

    def clean(self) -> CommandResult:
        return self._run_git(["clean", "-x", "-f", "-d", "-q"], check=False)

    def rev_parse(self, ref: str) -> str:
        return self._run_git(["rev-parse", "--verify", f"{ref}^{{commit}}"]).stdout.strip()

    def head_commit(self) -> str:
        return self.rev_parse("HEAD")

    def is_clean(self) -> bool:
        status = self._run_git(["status", "--porcelain", "--ignored"]).stdout
        return not status.strip()

    def _run_git(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
        timeout_seconds: float | None = None,
    ) -> CommandResult:
        result = self._executor.run(
            "git",
            args,
            timeout_seconds if timeout_seconds is not None else self._timeout_seconds,
            cwd=cwd if cwd is not None else self.path,
            env=self._env,
        )
        if check and not result.ok:
            raise GitCommandError(result)
        return result


__all__ = [
    "FetchResult",
    "FetchStatus",
    "GitCommandError",
    "ProjectRepository",
    "classify_fetch_failure",
]
