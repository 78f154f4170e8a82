"""Subprocess execution with a hard timeout and a terminate-then-kill grace window.

Each command runs in its own session, so timeouts signal the whole process group.
"""

from __future__ import annotations

import contextlib
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING, Final

from gate_orchestrator.constants import KILL_GRACE_SECONDS, TIMEOUT_EXIT_CODE
from gate_orchestrator.domain.errors import CommandSpawnError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_DRAIN_SECONDS: Final[float] = 5.0


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized outcome of one external command."""

    command: tuple[str, ...]
    cwd: str
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def detail(self) -> str:
        if self.timed_out:
            return "timed out"
        return self.stderr.strip() or self.stdout.strip() or f"exit code {self.exit_code}"


class CommandExecutor:
    """Run external programs; ordinary failures are reported, never raised."""

    def __init__(
        self,
        *,
        kill_grace_seconds: float = KILL_GRACE_SECONDS,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        if kill_grace_seconds < 0:
            raise ValueError("kill_grace_seconds must be >= 0")
        self.kill_grace_seconds = kill_grace_seconds
        self._env_overrides = dict(env_overrides or {})

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout_seconds: float | None = None,
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        output_path: Path | None = None,
        capture: bool = True,
    ) -> CommandResult:
        """Run ``command`` with ``args``.

        When ``timeout_seconds`` elapses the process group gets SIGTERM, and SIGKILL
        if it is still alive after ``kill_grace_seconds``. With ``output_path`` set,
        stdout and stderr are appended to that file instead of being captured. With
        ``capture=False`` the child inherits this process's stdout and stderr.
        """

        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        argv = (command, *args)
        run_cwd = Path(cwd).resolve() if cwd is not None else Path.cwd()
        run_env = os.environ.copy()
        run_env.update(self._env_overrides)
        if env is not None:
            run_env.update(env)

        sink: IO[str] | None = None
        if output_path is not None:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            sink = output_path.open("a", encoding="utf-8")

        pipe = subprocess.PIPE if capture else None
        try:
            try:
                process = subprocess.Popen(
                    argv,
                    cwd=run_cwd,
                    env=run_env,
                    stdin=subprocess.DEVNULL,
                    stdout=sink if sink is not None else pipe,
                    stderr=subprocess.STDOUT if sink is not None else pipe,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    start_new_session=True,
                )
            except OSError as exc:
                raise CommandSpawnError(argv, exc.strerror or str(exc)) from exc

            stdout, stderr, timed_out = self._wait(process, timeout_seconds)
        finally:
            if sink is not None:
                sink.close()

        return CommandResult(
            command=argv,
            cwd=run_cwd.as_posix(),
            exit_code=TIMEOUT_EXIT_CODE if timed_out else process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            timed_out=timed_out,
        )

    def _wait(
        self,
        process: subprocess.Popen[str],
        timeout_seconds: float | None,
    ) -> tuple[str | None, str | None, bool]:
        try:
            stdout, stderr = process.communicate(timeout=timeout_seconds)
            return stdout, stderr, False
        except subprocess.TimeoutExpired:
            _signal_group(process, signal.SIGTERM)

        if self.kill_grace_seconds > 0:
            try:
                stdout, stderr = process.communicate(timeout=self.kill_grace_seconds)
                return stdout, stderr, True
            except subprocess.TimeoutExpired:
                pass
        _signal_group(process, signal.SIGKILL)
        try:
            stdout, stderr = process.communicate(timeout=_DRAIN_SECONDS)
        except subprocess.TimeoutExpired:
            # A descendant that left the group still holds the pipes.
            for stream in (process.stdout, process.stderr):
                if stream is not None:
                    stream.close()
            process.wait()
            return None, None, True
        return stdout, stderr, True


def _signal_group(process: subprocess.Popen[str], signum: signal.Signals) -> None:
    # The child leads its own session, so its pid is the process group id.
    with contextlib.suppress(ProcessLookupError):
        os.killpg(process.pid, signum)


__all__ = ["CommandExecutor", "CommandResult"]
