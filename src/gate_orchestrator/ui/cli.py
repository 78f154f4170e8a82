"""Command-line interface router for gate-orchestrator."""

from __future__ import annotations

import argparse
import json
import secrets
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from gate_orchestrator.config import (
    ConfigLoadError,
    ConfigValidationError,
    GateSettings,
    config_file_in_use,
    dump_effective_config,
    effective_config,
    load_settings,
)
from gate_orchestrator.domain.models import Failed, FailureKind, Project
from gate_orchestrator.gate.bootstrap import forward_arguments
from gate_orchestrator.gate.runner import GateRun, build_components
from gate_orchestrator.integration_plane.url_templates import UrlTemplateError
from gate_orchestrator.main import ExitCode
from gate_orchestrator.observability import (
    GateLoggingConfig,
    GateLoggingHandle,
    configure_structlog,
    correlation_scope,
    setup_gate_logging,
    shutdown_logging,
)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="gate-orchestrator",
        description=(
            "gate-orchestrator — align a set of git projects to a merge-queue state and "
            "run the gate hooks.\n\n"
            "Common workflows:\n"
            "  gate-orchestrator run                     Full gate run\n"
            "  gate-orchestrator sync --branch master    One sync pass\n"
            "  gate-orchestrator resolve openstack/nova  Show the ref nova would use\n"
            "  gate-orchestrator config                  Show effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to gate TOML config (default: ./gate.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log at DEBUG level and mirror logs to stdout.",
    )
    common.add_argument("--json", action="store_true", help="Emit JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Sync every pass and run the hooks",
        description=(
            "Run the whole gate: self-update hand-off when needed, the new (and old, for "
            "upgrade testing) sync passes, then the pre-test, gate and post-test hooks.\n\n"
            "Examples:\n"
            "  ZUUL_BRANCH=master ZUUL_REF=refs/zuul/master/Z1 gate-orchestrator run\n"
            "  gate-orchestrator run --config gate.toml\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.set_defaults(handler=_cmd_run)

    sync_parser = subparsers.add_parser(
        "sync",
        parents=[common],
        help="Run a single sync pass",
        description=(
            "Synchronize every project of the set to one branch under one destination.\n\n"
            "Examples:\n"
            "  gate-orchestrator sync --branch stable/havana --dest /opt/stack/old --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sync_parser.add_argument("--branch", default=None, help="Requested branch for the pass.")
    sync_parser.add_argument("--dest", default=None, help="Destination root directory.")
    sync_parser.set_defaults(handler=_cmd_sync)

    resolve_parser = subparsers.add_parser(
        "resolve",
        parents=[common],
        help="Prepare one project tree and print its resolution outcome",
        description=(
            "Clone or refresh one project and show which ref it would check out, "
            "without touching its working tree.\n\n"
            "Examples:\n"
            "  gate-orchestrator resolve openstack/nova --branch stable/havana\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    resolve_parser.add_argument("project", help="Project identifier (org/name).")
    resolve_parser.add_argument("--branch", default=None, help="Requested branch.")
    resolve_parser.add_argument("--dest", default=None, help="Destination root directory.")
    resolve_parser.set_defaults(handler=_cmd_resolve)

    projects_parser = subparsers.add_parser(
        "projects",
        parents=[common],
        help="Print the effective project set in sync order",
    )
    projects_parser.set_defaults(handler=_cmd_projects)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
        description=(
            "Display the effective config after merging defaults, file, legacy CI env, "
            "GATE_ env, and CLI overrides. Credentials are redacted.\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    settings, _ = _load_settings(args)
    handle = _start_logging(args, settings)
    try:
        forward_args = forward_arguments(
            config_file_in_use(args.config_path), verbose=args.verbose
        )

        with correlation_scope(run_id=handle.run_id):
            result = GateRun(
                settings,
                run_log_dir=handle.run_log_dir,
                forward_args=forward_args,
            ).execute()
    finally:
        shutdown_logging(handle)

    if result.handoff_exit_code is not None:
        return result.handoff_exit_code

    payload = {"command": "run", "run_id": handle.run_id, **result.to_dict()}
    if args.json:
        _emit_json(payload)
    else:
        for report in result.reports:
            _print_report(report.to_dict())
        for hook in result.hooks:
            print(f"hook {hook.name.value}: exit {hook.exit_code} ({hook.output_path})")
        print("gate passed" if result.passed else "gate failed")
    return int(ExitCode.SUCCESS if result.passed else ExitCode.GATE_FAILED)


def _cmd_sync(args: argparse.Namespace) -> int:
    settings, _ = _load_settings(args)
    branch = args.branch or settings.new_branch
    destination = Path(args.dest).expanduser().resolve() if args.dest else settings.paths.new_root
    handle = _start_logging(args, settings)
    try:
        with correlation_scope(run_id=handle.run_id):
            report = build_components(settings).orchestrator.sync_all(
                settings.project_set(),
                branch,
                destination,
                settings.queue.branch,
                settings.queue.ref,
                override_branch=settings.override_branch,
                pass_name="sync",
            )
    finally:
        shutdown_logging(handle)

    payload = report.to_dict()
    if args.json:
        _emit_json({"command": "sync", **payload})
    else:
        _print_report(payload)
    return 0


def _cmd_resolve(args: argparse.Namespace) -> int:
    settings, _ = _load_settings(args)
    try:
        project = Project(args.project.strip())
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc
    branch = args.branch or settings.new_branch
    destination = Path(args.dest).expanduser().resolve() if args.dest else settings.paths.new_root

    handle = _start_logging(args, settings)
    try:
        with correlation_scope(run_id=handle.run_id, project=project.name):
            components = build_components(settings)
            repo = components.synchronizer.prepare(project, destination)
            outcome = components.resolver.resolve(
                project,
                branch,
                settings.queue.branch,
                settings.queue.ref,
                settings.override_branch,
                remote=repo,
            )
    finally:
        shutdown_logging(handle)

    payload: dict[str, object] = {
        "command": "resolve",
        "project": project.name,
        "branch": branch,
        "path": repo.path.as_posix(),
        "outcome": outcome.describe(),
    }
    if args.json:
        _emit_json(payload)
    else:
        print(f"{project.name}: {outcome.describe()}")
    if isinstance(outcome, Failed):
        if outcome.kind is FailureKind.CONFIGURATION_INCONSISTENT:
            return int(ExitCode.CONFIG_ERROR)
        return int(ExitCode.REF_NOT_FOUND)
    return int(ExitCode.SUCCESS)


def _cmd_projects(args: argparse.Namespace) -> int:
    settings, _ = _load_settings(args)
    names = settings.project_set().names()
    if args.json:
        _emit_json({"command": "projects", "projects": list(names)})
        return 0
    for name in names:
        print(name)
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    _, config = _load_settings(args)
    if args.json:
        _emit_json({"command": "config", "config": effective_config(config)})
        return 0
    print(dump_effective_config(config, indent=2))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _print_report(report: Mapping[str, object]) -> None:
    print(f"branch {report['branch']} -> {report['destination_root']}")
    projects = report.get("projects")
    if not isinstance(projects, list):
        return
    for entry in projects:
        marker = "" if entry.get("clean", True) else " [unclean]"
        print(f"  {entry['project']}: {entry['outcome']} @ {str(entry['commit'])[:12]}{marker}")


def _load_settings(args: argparse.Namespace) -> tuple[GateSettings, dict[str, object]]:
    overrides: dict[str, object] = {}
    if args.verbose:
        overrides["observability.log_level"] = "DEBUG"
        overrides["observability.log_to_stdout"] = True
    try:
        return load_settings(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError, UrlTemplateError) as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc


def _start_logging(args: argparse.Namespace, settings: GateSettings) -> GateLoggingHandle:
    observability = settings.observability
    handle = setup_gate_logging(
        GateLoggingConfig(
            run_id=_new_run_id(),
            log_dir=observability.log_dir,
            level=observability.log_level,
            log_to_stdout=observability.log_to_stdout and not args.json,
            redact_secrets=observability.redact_secrets,
        )
    )
    configure_structlog()
    return handle


def _new_run_id() -> str:
    stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"gate-{stamp}-{secrets.token_hex(4)}"


__all__ = ["CLIError", "build_parser", "run_cli"]
