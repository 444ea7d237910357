"""Resolve release asset download URLs through the GitHub releases API."""

from __future__ import annotations

import json
import logging as py_logging
import re
import time
from collections.abc import Callable
from http.client import HTTPException
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlparse
from urllib.request import Request, urlopen

from macprovision.errors import ExitCode, PreconditionError
from macprovision.retry import GITHUB_POLICY, FatalError, RecoverableError, RetryPolicy, run_with_retry
from macprovision.toolset import version_sort_key

logger = py_logging.getLogger(__name__)

SEARCH_IN_COUNT = 100
DEFAULT_TIMEOUT_SECONDS = 60.0
_SUFFIXED_TAG = re.compile(r"-[a-z]")

HttpResponse = tuple[int, str, dict[str, str]]
AssetFilter = str | Callable[[str], bool]


class HttpRequester(Protocol):
    def __call__(self, url: str, headers: dict[str, str]) -> HttpResponse: ...


def _validate_github_api_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme != "https" or parsed.netloc != "api.github.com":
        raise PreconditionError(
            "Invalid GitHub API address.",
            code=ExitCode.FAILURE,
            hint="Only https://api.github.com is supported.",
        )


def make_requester(timeout: float = DEFAULT_TIMEOUT_SECONDS) -> HttpRequester:
    def request_url(url: str, headers: dict[str, str]) -> HttpResponse:
        _validate_github_api_url(url)
        request = Request(url, headers=headers, method="GET")
        try:
            with urlopen(request, timeout=timeout) as response:  # nosec B310
                status = int(getattr(response, "status", response.getcode()))
                body = response.read().decode("utf-8")
                response_headers = {key.lower(): value for key, value in response.headers.items()}
                return status, body, response_headers
        except HTTPError as exc:
            payload = ""
            if exc.fp is not None:
                payload = exc.read().decode("utf-8", errors="replace")
            response_headers = {key.lower(): value for key, value in (exc.headers.items() if exc.headers else [])}
            return exc.code, payload, response_headers
        except (URLError, HTTPException, OSError) as exc:
            raise RecoverableError(str(getattr(exc, "reason", exc)) or type(exc).__name__) from exc

    return request_url


_default_requester = make_requester()


def _next_page_url(link_header: str) -> str | None:
    if not link_header.strip():
        return None
    for chunk in link_header.split(","):
        section = chunk.strip()
        if 'rel="next"' not in section:
            continue
        if section.startswith("<") and ">" in section:
            return section[1 : section.index(">")]
    return None


def _extract_message(payload: str) -> str:
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return ""
    if isinstance(parsed, dict):
        message = parsed.get("message")
        if isinstance(message, str):
            return message
    return ""


def fetch_releases(
    repo: str,
    *,
    token: str = "",
    policy: RetryPolicy = GITHUB_POLICY,
    requester: HttpRequester | None = None,
    sleep: Callable[[float], None] = time.sleep,
    max_pages: int = 1,
) -> list[dict[str, object]]:
    """Return raw release objects, newest first, ``SEARCH_IN_COUNT`` per page."""
    repo_name = repo.strip().strip("/")
    if not repo_name or "/" not in repo_name:
        raise PreconditionError(
            f"Invalid repository: {repo}",
            code=ExitCode.FAILURE,
            hint="Use the org/repo format.",
        )

    do_request = requester or _default_requester
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": "macprovision",
    }
    token_value = token.strip()
    if token_value:
        headers["Authorization"] = f"token {token_value}"

    encoded_repo = quote(repo_name, safe="/")
    page_url: str | None = f"https://api.github.com/repos/{encoded_repo}/releases?per_page={SEARCH_IN_COUNT}"
    releases: list[dict[str, object]] = []
    pages = 0

    while page_url and pages < max_pages:
        current_url = page_url

        def request_page() -> tuple[str, dict[str, str]]:
            status, payload, response_headers = do_request(current_url, headers)
            if status != 200:
                message = _extract_message(payload)
                logger.warning("GitHub releases request returned HTTP %s %s", status, message)
                raise RecoverableError(f"HTTP {status} {message}".strip())
            return payload, response_headers

        payload, response_headers = run_with_retry(
            request_page,
            policy=policy,
            name=f"get_github_package_download_url {repo_name}",
            sleep=sleep,
        )
        pages += 1

        try:
            entries = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise FatalError("GitHub releases payload was not valid JSON") from exc
        if not isinstance(entries, list):
            raise FatalError("GitHub API returned an unexpected releases payload")

        releases.extend(entry for entry in entries if isinstance(entry, dict))
        header_map = {key.lower(): value for key, value in response_headers.items()}
        page_url = _next_page_url(header_map.get("link", ""))

    logger.debug("Fetched %s releases for %s", len(releases), repo_name)
    return releases


def _assets(release: dict[str, object]) -> list[dict[str, object]]:
    assets = release.get("assets")
    if not isinstance(assets, list):
        return []
    return [asset for asset in assets if isinstance(asset, dict)]


def select_tag(releases: list[dict[str, object]], version: str = "latest") -> str:
    """Pick the highest stable tag, optionally narrowed to ``version``.

    Prereleases and tags carrying a ``-<letter>`` suffix (``-rc``, ``-beta``)
    are skipped. ``latest`` additionally requires at least one asset.
    """
    tags: set[str] = set()
    version_pattern = None if version == "latest" else re.compile(rf"\w*{version}")
    for release in releases:
        if release.get("prerelease") is not False:
            continue
        tag = release.get("tag_name")
        if not isinstance(tag, str) or not tag:
            continue
        if version_pattern is None and not _assets(release):
            continue
        tags.add(tag)

    candidates = [tag for tag in sorted(tags, key=version_sort_key) if not _SUFFIXED_TAG.search(tag)]
    if version_pattern is not None:
        candidates = [tag for tag in candidates if version_pattern.search(tag)]
    return candidates[-1] if candidates else ""


def _as_predicate(asset_filter: AssetFilter) -> Callable[[str], bool]:
    if callable(asset_filter):
        return asset_filter
    pattern = re.compile(asset_filter)
    return lambda url: pattern.search(url) is not None


def select_asset_url(releases: list[dict[str, object]], tag: str, asset_filter: AssetFilter) -> str:
    if not tag:
        return ""
    matches = _as_predicate(asset_filter)
    for release in releases:
        if release.get("tag_name") != tag:
            continue
        for asset in _assets(release):
            url = asset.get("browser_download_url")
            if isinstance(url, str) and matches(url):
                return url
    return ""


def get_github_package_download_url(
    repo: str,
    asset_filter: AssetFilter,
    version: str = "latest",
    *,
    token: str = "",
    policy: RetryPolicy = GITHUB_POLICY,
    requester: HttpRequester | None = None,
    sleep: Callable[[float], None] = time.sleep,
    max_pages: int = 1,
) -> str:
    releases = fetch_releases(
        repo,
        token=token,
        policy=policy,
        requester=requester,
        sleep=sleep,
        max_pages=max_pages,
    )
    tag = select_tag(releases, version)
    url = select_asset_url(releases, tag, asset_filter)
    if not url:
        filter_label = asset_filter if isinstance(asset_filter, str) else getattr(asset_filter, "__name__", "custom")
        raise PreconditionError(
            f"Failed to parse a download url for the '{tag}' tag using '{filter_label}' filter",
            code=ExitCode.FAILURE,
            hint="Check the version and asset filter against the repository releases.",
        )
    logger.info("Resolved %s release %s asset %s", repo, tag, url)
    return url
