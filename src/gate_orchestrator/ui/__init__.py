"""Command-line surface of gate-orchestrator."""

from gate_orchestrator.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
