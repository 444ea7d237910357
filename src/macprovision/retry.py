"""Fixed-interval retry for idempotent external operations."""

from __future__ import annotations

import logging as py_logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from macprovision.errors import ExitCode, ProvisionError, RetryExhaustedError

T = TypeVar("T")

logger = py_logging.getLogger(__name__)


class RecoverableError(Exception):
    """Transient failure that can be retried."""


class FatalError(Exception):
    """Non-recoverable failure that should stop immediately."""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 10
    wait_seconds: float = 60.0

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ProvisionError(
                f"Invalid attempt budget: {self.max_attempts!r}",
                code=ExitCode.CONFIG_ERROR,
                hint="Attempts must be a whole number of at least 1.",
            )
        if self.wait_seconds < 0:
            raise ProvisionError(
                f"Invalid retry wait: {self.wait_seconds}",
                code=ExitCode.CONFIG_ERROR,
                hint="Wait seconds cannot be negative.",
            )


DOWNLOAD_POLICY = RetryPolicy(max_attempts=20, wait_seconds=30)
BREW_POLICY = RetryPolicy(max_attempts=10, wait_seconds=60)
GITHUB_POLICY = RetryPolicy(max_attempts=10, wait_seconds=60)


def run_with_retry(
    operation: Callable[[], T],
    *,
    policy: RetryPolicy,
    name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Run ``operation`` until it returns, raises FatalError or the budget runs out.

    A RecoverableError consumes one attempt and, when attempts remain, is
    followed by a sleep of ``policy.wait_seconds``. The final attempt is never
    followed by a sleep. Exhaustion raises RetryExhaustedError carrying the
    elapsed wall-clock time.
    """
    started = clock()
    remaining = policy.max_attempts
    last_reason = ""

    while remaining > 0:
        try:
            return operation()
        except FatalError:
            logger.error("%s aborted with a non-recoverable failure", name)
            raise
        except RecoverableError as exc:
            remaining -= 1
            last_reason = str(exc)
            logger.debug("%s attempt failed: %s", name, last_reason or "no details")
            if remaining <= 0:
                break
            logger.info(
                "Waiting %s seconds before retrying (retries left: %s)...",
                _format_seconds(policy.wait_seconds),
                remaining,
            )
            sleep(policy.wait_seconds)

    elapsed = int(clock() - started)
    logger.error("%s failed after %s seconds", name, elapsed)
    raise RetryExhaustedError(
        f"{name} failed after {elapsed} seconds ({policy.max_attempts} attempts)",
        code=ExitCode.FAILURE,
        hint=last_reason,
        operation=name,
        attempts=policy.max_attempts,
        elapsed_seconds=elapsed,
    )


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)
