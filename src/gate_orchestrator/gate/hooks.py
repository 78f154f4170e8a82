"""Run the pre-test, gate, and post-test shell hooks and capture their output."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from gate_orchestrator.domain.errors import CommandSpawnError, HookError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gate_orchestrator.integration_plane.executor import CommandExecutor


class HookName(StrEnum):
    PRE_TEST = "pre_test"
    GATE = "gate"
    POST_TEST = "post_test"

    @property
    def log_filename(self) -> str:
        return f"gate-{self.value.replace('_', '-')}-hook.txt"


@dataclass(frozen=True, slots=True)
class HookResult:
    name: HookName
    command: str
    exit_code: int
    output_path: Path

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name.value,
            "exit_code": self.exit_code,
            "output_path": self.output_path.as_posix(),
        }


class HookRunner:
    """Execute hook commands through ``shell -c`` without a timeout."""

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        log_dir: Path,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        shell: str = "/bin/bash",
        logger: Any | None = None,
    ) -> None:
        self._executor = executor
        self._log_dir = Path(log_dir)
        self._cwd = cwd
        self._env = dict(env or {})
        self._shell = shell
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def output_path(self, name: HookName) -> Path:
        return self._log_dir / name.log_filename

    def run(self, name: HookName, command: str) -> HookResult:
        output_path = self.output_path(name)
        self._logger.info("gate_hook_started", hook=name.value, output_path=output_path.as_posix())
        try:
            result = self._executor.run(
                self._shell,
                ("-c", command),
                None,
                cwd=self._cwd,
                env=self._env,
                output_path=output_path,
            )
        except CommandSpawnError as exc:
            raise HookError(f"{name.value} hook could not be started: {exc.reason}") from exc

        self._logger.info(
            "gate_hook_finished",
            hook=name.value,
            exit_code=result.exit_code,
            output_path=output_path.as_posix(),
        )
        return HookResult(
            name=name,
            command=command,
            exit_code=result.exit_code,
            output_path=output_path,
        )


__all__ = ["HookName", "HookResult", "HookRunner"]
