"""Artifact downloads with a fixed retry budget."""

from __future__ import annotations

import logging as py_logging
import tempfile
import time
from collections.abc import Callable
from http.client import HTTPException
from pathlib import Path
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import unquote, urlparse
from urllib.request import Request, urlopen

from macprovision.errors import ExitCode, PreconditionError
from macprovision.retry import DOWNLOAD_POLICY, RecoverableError, RetryPolicy, run_with_retry

logger = py_logging.getLogger(__name__)

USER_AGENT = "macprovision"
DEFAULT_TIMEOUT_SECONDS = 60.0
_CHUNK_SIZE = 64 * 1024


class Fetcher(Protocol):
    def __call__(self, url: str, destination: Path) -> int: ...


def _validate_download_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise PreconditionError(
            f"Unsupported download URL: {url}",
            code=ExitCode.FAILURE,
            hint="Only http and https URLs can be downloaded.",
        )


def url_basename(url: str) -> str:
    name = unquote(Path(urlparse(url).path).name)
    if not name:
        raise PreconditionError(
            f"Cannot derive a file name from {url}",
            code=ExitCode.FAILURE,
            hint="Pass an explicit destination path.",
        )
    return name


def default_destination(url: str, download_dir: str | Path | None = None) -> Path:
    """Return a per-call path: ``download_dir`` if given, else a fresh temp dir."""
    if download_dir:
        directory = Path(download_dir).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
    else:
        directory = Path(tempfile.mkdtemp(prefix="macprovision-"))
    return directory / url_basename(url)


def _expected_length(response) -> int | None:
    header = response.headers.get("Content-Length")
    if header is None:
        return None
    try:
        return int(header)
    except ValueError:
        return None


def make_fetcher(timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Fetcher:
    def fetch(url: str, destination: Path) -> int:
        request = Request(url, headers={"User-Agent": USER_AGENT}, method="GET")
        try:
            with urlopen(request, timeout=timeout) as response:  # nosec B310
                status = int(getattr(response, "status", response.getcode()))
                expected = _expected_length(response)
                written = 0
                with destination.open("wb") as handle:
                    for chunk in iter(lambda: response.read(_CHUNK_SIZE), b""):
                        handle.write(chunk)
                        written += len(chunk)
        except HTTPError as exc:
            return exc.code
        except (URLError, HTTPException, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            raise RecoverableError(str(reason) or type(exc).__name__) from exc
        if expected is not None and written != expected:
            raise RecoverableError(f"Transfer closed with {written} of {expected} bytes received")
        return status

    return fetch


def download_with_retry(
    url: str,
    destination: str | Path | None = None,
    *,
    policy: RetryPolicy = DOWNLOAD_POLICY,
    fetcher: Fetcher | None = None,
    download_dir: str | Path | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Path:
    _validate_download_url(url)
    target = Path(destination).expanduser() if destination else default_destination(url, download_dir)
    target.parent.mkdir(parents=True, exist_ok=True)
    do_fetch = fetcher or make_fetcher()

    logger.info("Downloading package from %s to %s...", url, target)

    def attempt() -> Path:
        attempt_started = clock()
        try:
            status = do_fetch(url, target)
        except RecoverableError as exc:
            logger.warning(
                "Package download failed in %s seconds: %s",
                int(clock() - attempt_started),
                exc,
            )
            raise
        attempt_seconds = int(clock() - attempt_started)
        if status != 200:
            logger.warning(
                "Received HTTP status code %s after %s seconds",
                status,
                attempt_seconds,
            )
            raise RecoverableError(f"HTTP {status}")
        logger.info("Package downloaded in %s seconds", attempt_seconds)
        return target

    return run_with_retry(
        attempt,
        policy=policy,
        name="Package download",
        sleep=sleep,
        clock=clock,
    )
