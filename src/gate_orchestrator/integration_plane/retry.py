"""Bounded retries with randomized backoff for remote git operations."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from gate_orchestrator.constants import (
    REMOTE_UPDATE_MAX_ATTEMPTS,
    REMOTE_UPDATE_TIMEOUT_SECONDS,
    RETRY_BACKOFF_MAX_SECONDS,
    RETRY_BACKOFF_MIN_SECONDS,
)
from gate_orchestrator.domain.errors import RemoteUnreachableError

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget, per-attempt timeout, and backoff window for remote calls."""

    max_attempts: int = REMOTE_UPDATE_MAX_ATTEMPTS
    timeout_seconds: float = REMOTE_UPDATE_TIMEOUT_SECONDS
    backoff_min_seconds: float = RETRY_BACKOFF_MIN_SECONDS
    backoff_max_seconds: float = RETRY_BACKOFF_MAX_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.backoff_min_seconds < 0 or self.backoff_max_seconds < self.backoff_min_seconds:
            raise ValueError("backoff window must satisfy 0 <= min <= max")

    def backoff_seconds(self, rng: random.Random) -> float:
        return rng.uniform(self.backoff_min_seconds, self.backoff_max_seconds)


def call_with_retries(
    attempt: Callable[[], T],
    *,
    retryable: Callable[[T], bool],
    describe: Callable[[T], str],
    policy: RetryPolicy,
    project: str,
    operation: str,
    sleep: Callable[[float], None],
    rng: random.Random,
    logger: Any,
) -> T:
    """Call ``attempt`` until it returns a non-retryable result or the budget is spent.

    Raises ``RemoteUnreachableError`` once ``policy.max_attempts`` retryable results
    have been observed.
    """

    detail = ""
    for attempt_number in range(1, policy.max_attempts + 1):
        result = attempt()
        if not retryable(result):
            return result

        detail = describe(result)
        logger.warning(
            "gate_remote_operation_failed",
            project=project,
            operation=operation,
            attempt=attempt_number,
            max_attempts=policy.max_attempts,
            detail=detail,
        )
        if attempt_number == policy.max_attempts:
            break

        delay = policy.backoff_seconds(rng)
        logger.info(
            "gate_remote_operation_backoff",
            project=project,
            operation=operation,
            sleep_seconds=round(delay, 3),
        )
        sleep(delay)

    raise RemoteUnreachableError(project, operation, policy.max_attempts, detail)


__all__ = ["RetryPolicy", "call_with_retries"]
