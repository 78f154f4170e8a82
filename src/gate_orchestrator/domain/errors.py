"""Error taxonomy for gate workspace synchronization."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class GateError(RuntimeError):
    """Base error for all gate orchestration failures."""


class CommandSpawnError(GateError):
    """Raised when an external command cannot be started at all."""

    def __init__(self, command: Sequence[str], reason: str) -> None:
        self.command = tuple(command)
        self.reason = reason
        super().__init__(f"unable to start {' '.join(self.command)}: {reason}")


class RefNotFoundError(GateError):
    """The merge queue promised a reference that does not exist for the project under test."""

    def __init__(self, project: str, reference: str, message: str | None = None) -> None:
        self.project = project
        self.reference = reference
        super().__init__(message or f"Unable to find ref {reference} for {project}")


class ConfigurationInconsistentError(GateError):
    """Settings contradict each other or the state of the remotes."""


class RemoteUnreachableError(GateError):
    """Network failure or timeout talking to a remote after the retry budget."""

    def __init__(self, project: str, operation: str, attempts: int, detail: str = "") -> None:
        self.project = project
        self.operation = operation
        self.attempts = attempts
        self.detail = detail
        message = f"{operation} for {project} failed after {attempts} attempt(s)"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class WorkspaceSyncError(GateError):
    """A git operation on the local working tree failed unexpectedly."""


class HookError(GateError):
    """A configured test hook could not be executed."""


__all__ = [
    "CommandSpawnError",
    "ConfigurationInconsistentError",
    "GateError",
    "HookError",
    "RefNotFoundError",
    "RemoteUnreachableError",
    "WorkspaceSyncError",
]
