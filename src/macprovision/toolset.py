"""Image toolset lookups and version ordering."""

from __future__ import annotations

import functools
import logging as py_logging
import subprocess
from pathlib import Path

from macprovision.errors import ExitCode, PreconditionError, ProvisionError

logger = py_logging.getLogger(__name__)

DEFAULT_TOOLSET_RELATIVE = Path("image-generation/toolset.json")

_DOT = ord(".")
_TILDE = ord("~")
_ZERO = ord("0")


def get_toolset_path(home: Path | None = None, override: str = "") -> Path:
    if override:
        return Path(override).expanduser()
    return (home or Path.home()) / DEFAULT_TOOLSET_RELATIVE


def get_toolset_value(
    query: str,
    *,
    path: Path,
    runner: callable = subprocess.run,
) -> str:
    """Evaluate a jq query against the toolset file and return raw output."""
    if not path.is_file():
        raise PreconditionError(
            f"Toolset file not found: {path}",
            code=ExitCode.FAILURE,
            hint="Copy toolset.json into the image-generation directory.",
        )
    logger.debug("Querying toolset path=%s query=%s", path, query)
    result = runner(
        ["jq", "-r", query, str(path)],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise ProvisionError(
            f"jq query failed: {query}",
            code=ExitCode.FAILURE,
            hint=result.stderr.strip()[:200],
        )
    return result.stdout.strip()


def _order(char: int) -> int:
    if _is_digit(char):
        return 0
    if _is_alpha(char):
        return char
    if char == _TILDE:
        return -1
    return char + 256


def _is_digit(char: int) -> bool:
    return 0x30 <= char <= 0x39


def _is_alpha(char: int) -> bool:
    return 0x41 <= char <= 0x5A or 0x61 <= char <= 0x7A


def _suffix_start(value: bytes) -> int:
    """Length of ``value`` without its trailing ``(\\.[A-Za-z~][A-Za-z0-9~]*)*`` suffix."""
    size = len(value)
    prefix = 0
    index = 0
    while index < size:
        index += 1
        prefix = index
        while index + 1 < size and value[index] == _DOT and (_is_alpha(value[index + 1]) or value[index + 1] == _TILDE):
            index += 2
            while index < size and (_is_alpha(value[index]) or _is_digit(value[index]) or value[index] == _TILDE):
                index += 1
    return prefix


def _compare_runs(first: bytes, second: bytes) -> int:
    i = j = 0
    while i < len(first) or j < len(second):
        while (i < len(first) and not _is_digit(first[i])) or (j < len(second) and not _is_digit(second[j])):
            left = _order(first[i]) if i < len(first) else 0
            right = _order(second[j]) if j < len(second) else 0
            if left != right:
                return left - right
            i += 1
            j += 1
        while i < len(first) and first[i] == _ZERO:
            i += 1
        while j < len(second) and second[j] == _ZERO:
            j += 1
        first_diff = 0
        while i < len(first) and j < len(second) and _is_digit(first[i]) and _is_digit(second[j]):
            if not first_diff:
                first_diff = first[i] - second[j]
            i += 1
            j += 1
        if i < len(first) and _is_digit(first[i]):
            return 1
        if j < len(second) and _is_digit(second[j]):
            return -1
        if first_diff:
            return first_diff
    return 0


def _version_order(first: bytes, second: bytes) -> int:
    if not first or not second:
        return int(bool(first)) - int(bool(second))
    if first[:1] == b".":
        if second[:1] != b".":
            return -1
        for special in (b".", b".."):
            if first == special or second == special:
                return int(second == special) - int(first == special)
    elif second[:1] == b".":
        return 1

    first_prefix = _suffix_start(first)
    second_prefix = _suffix_start(second)
    result = _compare_runs(first[:first_prefix], second[:second_prefix])
    if result or (first_prefix == len(first) and second_prefix == len(second)):
        return result
    return _compare_runs(first, second)


def version_compare(first: str, second: str) -> int:
    """Compare like GNU ``sort -V``; returns <0, 0 or >0.

    Digit runs compare numerically, ``~`` sorts before everything (even the
    end of the string), letters before other punctuation, and a trailing
    file suffix such as ``.tar.gz`` is only consulted on a tie. Strings that
    still tie fall back to a plain byte comparison.
    """
    left = first.encode("utf-8")
    right = second.encode("utf-8")
    result = _version_order(left, right)
    if result:
        return result
    return (left > right) - (left < right)


version_sort_key = functools.cmp_to_key(version_compare)


def version_lte(first: str, second: str) -> bool:
    return version_compare(first, second) <= 0
