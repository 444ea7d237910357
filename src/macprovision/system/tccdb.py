"""TCC privacy database updates."""

from __future__ import annotations

import logging as py_logging
import subprocess
from pathlib import Path
from typing import Literal

from macprovision.errors import ExitCode, PreconditionError, ProvisionError

logger = py_logging.getLogger(__name__)

TCC_RELATIVE_PATH = Path("Library/Application Support/com.apple.TCC/TCC.db")
SYSTEM_TCC_DB = Path("/") / TCC_RELATIVE_PATH

Scope = Literal["system", "user"]


def tccdb_path(scope: Scope, home: Path | None = None) -> Path:
    if scope == "system":
        return SYSTEM_TCC_DB
    return (home or Path.home()) / TCC_RELATIVE_PATH


def build_tccdb_command(values: str, scope: Scope, home: Path | None = None) -> list[str]:
    query = f"INSERT OR IGNORE INTO access VALUES({values});"
    command = ["sqlite3", str(tccdb_path(scope, home)), query]
    if scope == "system":
        return ["sudo", *command]
    return command


def configure_tccdb(
    values: str,
    *,
    scope: Scope = "system",
    home: Path | None = None,
    runner: callable = subprocess.run,
) -> None:
    """Insert one access row; existing rows are left untouched."""
    if not values.strip():
        raise PreconditionError("TCC access values are required.", code=ExitCode.FAILURE)
    command = build_tccdb_command(values, scope, home)
    logger.debug("Updating %s TCC database", scope)
    result = runner(command, capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise ProvisionError(
            f"Could not update the {scope} TCC database.",
            code=ExitCode.FAILURE,
            hint=(result.stderr or "").strip()[:200],
        )
    logger.info("Updated %s TCC database", scope)
