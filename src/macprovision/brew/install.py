"""Homebrew installs that survive flaky bottle and formula fetches.

brew ships bottles per macOS release and ``brew install`` fails when a bottle
does not exist yet or the download hiccups, so every stage is retried.
"""

from __future__ import annotations

import logging as py_logging
import os
import re
import stat
import subprocess
import time
from collections.abc import Callable
from pathlib import Path

from macprovision.errors import ExitCode, PreconditionError, ProvisionError
from macprovision.retry import BREW_POLICY, RecoverableError, RetryPolicy, run_with_retry

logger = py_logging.getLogger(__name__)

_SHA256_LINE = re.compile(r"^([ \t]*sha256[ \t]+)(\S.*?)[ \t]*$", re.MULTILINE)


def _run_brew(args: list[str], runner: callable) -> subprocess.CompletedProcess:
    command = ["brew", *args]
    logger.debug("Running %s", " ".join(command))
    try:
        return runner(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise ProvisionError(
            "brew executable could not be started.",
            code=ExitCode.FAILURE,
            hint="Install Homebrew and ensure brew is in PATH.",
        ) from exc


def _retried_brew(
    args: list[str],
    *,
    runner: callable,
    policy: RetryPolicy,
    sleep: Callable[[float], None],
) -> str:
    label = "brew " + " ".join(args)

    def attempt() -> str:
        result = _run_brew(args, runner)
        if result.returncode != 0:
            logger.warning("%s exited with code %s", label, result.returncode)
            raise RecoverableError((result.stderr or "").strip()[:200])
        return result.stdout

    return run_with_retry(attempt, policy=policy, name=label, sleep=sleep)


def parse_dependencies(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


def brew_smart_install(
    tool_name: str,
    *,
    runner: callable = subprocess.run,
    policy: RetryPolicy = BREW_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Prefetch ``tool_name`` and its dependencies, then install it."""
    tool = tool_name.strip()
    if not tool:
        raise PreconditionError("Tool name is required.", code=ExitCode.FAILURE)

    logger.info("Downloading %s...", tool)
    deps_output = _retried_brew(["deps", tool], runner=runner, policy=policy, sleep=sleep)
    dependencies = parse_dependencies(deps_output)
    logger.debug("%s depends on %s", tool, ", ".join(dependencies) or "nothing")

    for dependency in [*dependencies, tool]:
        _retried_brew(["--cache", dependency], runner=runner, policy=policy, sleep=sleep)

    _retried_brew(["install", tool], runner=runner, policy=policy, sleep=sleep)
    logger.info("Installed %s", tool)


def brew_cask_install_ignoring_sha256(
    tool_name: str,
    *,
    runner: callable = subprocess.run,
) -> None:
    """Install a cask with its checksum pinned to ``:no_check``.

    The cask file is restored from git afterwards, even when the install fails.
    """
    repo = _run_brew(["--repo", "homebrew/cask"], runner)
    if repo.returncode != 0 or not repo.stdout.strip():
        raise ProvisionError(
            "Could not locate the homebrew/cask tap.",
            code=ExitCode.FAILURE,
            hint="Run 'brew tap homebrew/cask' first.",
        )
    cask_dir = Path(repo.stdout.strip()) / "Casks"
    cask_file = cask_dir / f"{tool_name}.rb"
    if not cask_file.is_file():
        raise PreconditionError(
            f"Cask file not found: {cask_file}",
            code=ExitCode.FAILURE,
        )

    mode = cask_file.stat().st_mode
    os.chmod(cask_file, mode | stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH)
    content = cask_file.read_text(encoding="utf-8")
    patched, count = _SHA256_LINE.subn(r"\1:no_check", content)
    if count == 0:
        logger.warning("No sha256 line found in %s", cask_file)
    cask_file.write_text(patched, encoding="utf-8")

    try:
        result = _run_brew(["install", "--cask", tool_name], runner)
        if result.returncode != 0:
            raise ProvisionError(
                f"brew install --cask {tool_name} failed.",
                code=ExitCode.FAILURE,
                hint=(result.stderr or "").strip()[:200],
            )
    finally:
        restore = runner(
            ["git", "checkout", "HEAD", "--", cask_file.name],
            cwd=str(cask_dir),
            capture_output=True,
            text=True,
            check=False,
        )
        if restore.returncode != 0:
            logger.warning("Could not restore %s from git", cask_file)
