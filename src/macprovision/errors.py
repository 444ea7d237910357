"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    UNSUPPORTED_PLATFORM = 4


@dataclass
class ProvisionError(Exception):
    message: str
    code: ExitCode = ExitCode.FAILURE
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class PreconditionError(ProvisionError):
    """A required input is missing or invalid; never retried."""


@dataclass
class RetryExhaustedError(ProvisionError):
    """Every attempt of a retried operation failed."""

    operation: str = ""
    attempts: int = 0
    elapsed_seconds: int = 0


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
