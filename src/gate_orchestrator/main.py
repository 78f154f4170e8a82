"""
gate-orchestrator — process entrypoint and exit-code contract.

File: src/gate_orchestrator/main.py

Purpose
- Run the CLI router and turn whatever escapes it into a stable process exit code.

Functional requirements
- Typed gate failures map to dedicated exit codes; the first mapped exception in
  the cause/context chain wins.
- Unmapped failures print a traceback and exit ``INTERNAL_ERROR``.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit-code contract of a gate run."""

    SUCCESS = 0
    GATE_FAILED = 1
    CONFIG_ERROR = 2
    REF_NOT_FOUND = 3
    REMOTE_UNREACHABLE = 4
    WORKSPACE_ERROR = 5
    INTERNAL_ERROR = 6


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m gate_orchestrator`` and the console script."""

    try:
        from gate_orchestrator.ui.cli import run_cli

        status: object = run_cli(argv)
    except SystemExit as exc:
        status = exc.code
    except BaseException as exc:  # noqa: BLE001 - every failure becomes an exit code here.
        code = _route_exception(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            _write_stderr(str(exc).strip() or type(exc).__name__)
        return int(code)
    return _normalize_exit_code(status)


def console_entrypoint() -> None:
    """Console-script shim."""

    raise SystemExit(cli_entrypoint())


def _normalize_exit_code(raw_code: object) -> int:
    # A self-update hand-off returns the child's status unchanged.
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, int) and 0 <= raw_code <= 255:
        return raw_code
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _exit_code_table() -> tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...]:
    from gate_orchestrator.config.loader import ConfigLoadError
    from gate_orchestrator.config.schema import ConfigValidationError
    from gate_orchestrator.domain.errors import (
        ConfigurationInconsistentError,
        RefNotFoundError,
        RemoteUnreachableError,
        WorkspaceSyncError,
    )
    from gate_orchestrator.integration_plane.url_templates import UrlTemplateError

    return (
        ((KeyboardInterrupt,), ExitCode.INTERNAL_ERROR),
        (
            (
                ConfigLoadError,
                ConfigValidationError,
                ConfigurationInconsistentError,
                UrlTemplateError,
            ),
            ExitCode.CONFIG_ERROR,
        ),
        ((RefNotFoundError,), ExitCode.REF_NOT_FOUND),
        ((RemoteUnreachableError,), ExitCode.REMOTE_UNREACHABLE),
        ((WorkspaceSyncError,), ExitCode.WORKSPACE_ERROR),
    )


def _route_exception(exc: BaseException) -> ExitCode:
    table = _exit_code_table()
    for link in _exception_chain(exc):
        for error_types, code in table:
            if isinstance(link, error_types):
                return code
    return ExitCode.INTERNAL_ERROR


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and its explicit causes or implicit contexts, each once."""

    visited: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in visited:
        visited.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif link.__suppress_context__:
            link = None
        else:
            link = link.__context__


def _write_stderr(message: str) -> None:
    print(message.rstrip("\n"), file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint", "console_entrypoint"]
