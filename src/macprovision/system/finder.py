"""Finder UI housekeeping."""

from __future__ import annotations

import logging as py_logging
import subprocess

from macprovision.errors import ExitCode, ProvisionError

logger = py_logging.getLogger(__name__)

CLOSE_WINDOWS_SCRIPT = 'tell application "Finder" to close windows'


def close_finder_windows(*, runner: callable = subprocess.run) -> None:
    """Close every Finder window; open windows interfere with UI tests."""
    result = runner(
        ["osascript", "-e", CLOSE_WINDOWS_SCRIPT],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise ProvisionError(
            "Could not close Finder windows.",
            code=ExitCode.FAILURE,
            hint=(result.stderr or "").strip()[:200],
        )
    logger.debug("Closed Finder windows")
