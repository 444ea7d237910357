"""File checksum verification."""

from __future__ import annotations

import hashlib
import logging as py_logging
from pathlib import Path

from macprovision.errors import ExitCode, PreconditionError, ProvisionError

logger = py_logging.getLogger(__name__)

SHA_TYPES = ("1", "224", "256", "384", "512")
_CHUNK_SIZE = 1024 * 1024


def file_hash(path: Path, sha_type: str = "256") -> str:
    if sha_type not in SHA_TYPES:
        raise ProvisionError(
            f"Unsupported sha type: {sha_type}",
            code=ExitCode.INVALID_ARGS,
            hint=f"Use one of: {', '.join(SHA_TYPES)}.",
        )
    digest = hashlib.new(f"sha{sha_type}")
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def use_checksum_comparison(file_path: str | Path, checksum: str, sha_type: str = "256") -> None:
    path = Path(file_path)
    logger.info("Performing checksum verification")

    if not path.is_file():
        raise PreconditionError(f"File not found: {path}", code=ExitCode.FAILURE)

    local_hash = file_hash(path, sha_type)
    expected = checksum.strip().lower()
    if local_hash != expected:
        raise PreconditionError(
            f"Checksum verification failed. Expected hash: {checksum}; Actual hash: {local_hash}",
            code=ExitCode.FAILURE,
        )
    logger.info("Checksum verification passed")
