"""Gate run pipeline: upgrade branch selection, self-update hand-off, hooks, and the run itself."""

from gate_orchestrator.gate.bootstrap import SelfUpdateHandoff, needs_self_update
from gate_orchestrator.gate.hooks import HookName, HookResult, HookRunner
from gate_orchestrator.gate.runner import (
    GateComponents,
    GateRun,
    GateRunResult,
    build_components,
    plan_passes,
)
from gate_orchestrator.gate.upgrade import UpgradeBranches, select_upgrade_branches

__all__ = [
    "GateComponents",
    "GateRun",
    "GateRunResult",
    "HookName",
    "HookResult",
    "HookRunner",
    "SelfUpdateHandoff",
    "UpgradeBranches",
    "build_components",
    "needs_self_update",
    "plan_passes",
    "select_upgrade_branches",
]
