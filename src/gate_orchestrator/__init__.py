"""
gate-orchestrator

File: src/gate_orchestrator/__init__.py

Purpose
- Package root for the multi-project CI gate: aligns a set of related git
  repositories to the commit set chosen by a merge queue, then runs the gate hooks.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
