"""Branch pairs for upgrade testing (an "old" tree upgraded to a "new" tree)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from gate_orchestrator.config.settings import UpgradeMode
from gate_orchestrator.constants import DEFAULT_BRANCH
from gate_orchestrator.domain.errors import ConfigurationInconsistentError


@dataclass(frozen=True, slots=True)
class UpgradeBranches:
    old: str
    new: str


_BACKWARD: Final[dict[str, UpgradeBranches]] = {
    "stable/havana": UpgradeBranches(old="stable/grizzly", new="stable/havana"),
    "stable/icehouse": UpgradeBranches(old="stable/havana", new="stable/icehouse"),
}
_BACKWARD_DEFAULT: Final[UpgradeBranches] = UpgradeBranches(
    old="stable/grizzly", new=DEFAULT_BRANCH
)
_FORWARD: Final[dict[str, UpgradeBranches]] = {
    "stable/grizzly": UpgradeBranches(old="stable/grizzly", new="stable/havana"),
    "stable/havana": UpgradeBranches(old="stable/havana", new=DEFAULT_BRANCH),
}


def select_upgrade_branches(mode: UpgradeMode | str, queue_branch: str) -> UpgradeBranches | None:
    """Return the old/new branch pair for ``mode``, or ``None`` when not upgrading.

    Backward upgrades from an unlisted branch test ``stable/grizzly -> master``.
    Forward upgrades only exist for the listed branches.
    """

    mode = UpgradeMode(mode)
    if mode is UpgradeMode.NONE:
        return None
    if mode is UpgradeMode.BACKWARD:
        return _BACKWARD.get(queue_branch, _BACKWARD_DEFAULT)

    branches = _FORWARD.get(queue_branch)
    if branches is None:
        known = ", ".join(sorted(_FORWARD))
        raise ConfigurationInconsistentError(
            f"forward upgrade is not defined for queue branch {queue_branch!r} "
            f"(known: {known})"
        )
    return branches


__all__ = ["UpgradeBranches", "select_upgrade_branches"]
