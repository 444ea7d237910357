"""Public CLI contract and entrypoint.

Results are printed on stdout; progress and diagnostics go to stderr.
"""

from __future__ import annotations

import argparse
import logging as py_logging
import re
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from .brew.install import brew_cask_install_ignoring_sha256, brew_smart_install
from .config import AppConfig, load_config
from .errors import ExitCode, ProvisionError, user_facing_error
from .logging import LOG_LEVELS, configure_logging, default_log_path, normalize_level
from .net.download import download_with_retry, make_fetcher
from .net.github_releases import get_github_package_download_url, make_requester
from .retry import FatalError
from .runtime.platform_variant import detect_platform, is_veertu
from .system.checksum import SHA_TYPES, use_checksum_comparison
from .system.finder import close_finder_windows
from .system.tccdb import configure_tccdb
from .toolset import get_toolset_path, get_toolset_value, version_lte

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_PLATFORM_FIELDS = ("label", "os", "arch", "brew-keyword")


def _log_level_type(value: str) -> str:
    normalized = normalize_level(value)
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _regex_type(value: str) -> str:
    try:
        re.compile(value)
    except re.error as exc:
        raise argparse.ArgumentTypeError(f"invalid regular expression: {exc}") from exc
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="macprovision")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)
    commands = parser.add_subparsers(dest="command", required=True)

    download = commands.add_parser("download", help="Download a URL with retries")
    download.add_argument("url")
    download.add_argument("--dest", type=Path, default=None)

    release = commands.add_parser("release-url", help="Resolve a GitHub release asset URL")
    release.add_argument("repo", help="org/repo")
    release.add_argument("--filter", type=_regex_type, required=True, dest="asset_filter")
    release.add_argument("--version", type=_regex_type, default="latest")
    release.add_argument("--token", default=None)

    brew = commands.add_parser("brew-install", help="Install a formula with retries")
    brew.add_argument("tool")

    cask = commands.add_parser("brew-cask-install", help="Install a cask skipping its sha256")
    cask.add_argument("tool")

    checksum = commands.add_parser("checksum", help="Verify a file checksum")
    checksum.add_argument("path", type=Path)
    checksum.add_argument("checksum")
    checksum.add_argument("--sha-type", choices=SHA_TYPES, default="256")

    platform_cmd = commands.add_parser("platform", help="Print the detected macOS variant")
    platform_cmd.add_argument("--field", choices=_PLATFORM_FIELDS, default="label")

    commands.add_parser("is-veertu", help="Exit 0 when running on a Veertu VM")

    tcc = commands.add_parser("tcc", help="Insert a row into the TCC access table")
    tcc.add_argument("values")
    tcc.add_argument("--scope", choices=("system", "user"), default="system")

    commands.add_parser("close-finder", help="Close all Finder windows")

    toolset = commands.add_parser("toolset", help="Query toolset.json with jq")
    toolset.add_argument("query")

    lte = commands.add_parser("version-lte", help="Exit 0 when FIRST <= SECOND")
    lte.add_argument("first")
    lte.add_argument("second")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def _emit(value: object) -> None:
    print(value, file=sys.stdout)


def _cmd_download(namespace: argparse.Namespace, config: AppConfig) -> int:
    path = download_with_retry(
        namespace.url,
        namespace.dest,
        policy=config.download_policy(),
        fetcher=make_fetcher(config.http_timeout_seconds),
        download_dir=config.download_dir or None,
    )
    _emit(path)
    return int(ExitCode.SUCCESS)


def _cmd_release_url(namespace: argparse.Namespace, config: AppConfig) -> int:
    token = namespace.token if namespace.token is not None else config.github_token
    url = get_github_package_download_url(
        namespace.repo,
        namespace.asset_filter,
        namespace.version,
        token=token,
        policy=config.github_policy(),
        requester=make_requester(config.http_timeout_seconds),
    )
    _emit(url)
    return int(ExitCode.SUCCESS)


def _cmd_brew_install(namespace: argparse.Namespace, config: AppConfig) -> int:
    brew_smart_install(namespace.tool, policy=config.brew_policy())
    return int(ExitCode.SUCCESS)


def _cmd_brew_cask_install(namespace: argparse.Namespace, config: AppConfig) -> int:
    del config
    brew_cask_install_ignoring_sha256(namespace.tool)
    return int(ExitCode.SUCCESS)


def _cmd_checksum(namespace: argparse.Namespace, config: AppConfig) -> int:
    del config
    use_checksum_comparison(namespace.path, namespace.checksum, namespace.sha_type)
    return int(ExitCode.SUCCESS)


def _cmd_platform(namespace: argparse.Namespace, config: AppConfig) -> int:
    del config
    variant = detect_platform()
    if namespace.field == "os":
        _emit(variant.release.name.lower())
    elif namespace.field == "arch":
        _emit(variant.arch.value)
    elif namespace.field == "brew-keyword":
        _emit(variant.brew_os_keyword or "null")
    else:
        _emit(variant.label)
    return int(ExitCode.SUCCESS)


def _cmd_is_veertu(namespace: argparse.Namespace, config: AppConfig) -> int:
    del namespace, config
    return int(ExitCode.SUCCESS) if is_veertu() else int(ExitCode.FAILURE)


def _cmd_tcc(namespace: argparse.Namespace, config: AppConfig) -> int:
    del config
    configure_tccdb(namespace.values, scope=namespace.scope)
    return int(ExitCode.SUCCESS)


def _cmd_close_finder(namespace: argparse.Namespace, config: AppConfig) -> int:
    del namespace, config
    close_finder_windows()
    return int(ExitCode.SUCCESS)


def _cmd_toolset(namespace: argparse.Namespace, config: AppConfig) -> int:
    path = get_toolset_path(override=config.toolset_path)
    _emit(get_toolset_value(namespace.query, path=path))
    return int(ExitCode.SUCCESS)


def _cmd_version_lte(namespace: argparse.Namespace, config: AppConfig) -> int:
    del config
    return int(ExitCode.SUCCESS) if version_lte(namespace.first, namespace.second) else int(ExitCode.FAILURE)


_COMMANDS: dict[str, Callable[[argparse.Namespace, AppConfig], int]] = {
    "download": _cmd_download,
    "release-url": _cmd_release_url,
    "brew-install": _cmd_brew_install,
    "brew-cask-install": _cmd_brew_cask_install,
    "checksum": _cmd_checksum,
    "platform": _cmd_platform,
    "is-veertu": _cmd_is_veertu,
    "tcc": _cmd_tcc,
    "close-finder": _cmd_close_finder,
    "toolset": _cmd_toolset,
    "version-lte": _cmd_version_lte,
}


def run_command(namespace: argparse.Namespace, config: AppConfig) -> int:
    return _COMMANDS[namespace.command](namespace, config)


def main(argv: Sequence[str] | None = None) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    config = load_config(namespace.config)
    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    level = namespace.log_level or config.log_level
    if level not in LOG_LEVELS:
        level = "INFO"
    logger = configure_logging(level=level, log_file=log_path)

    try:
        logger.debug("Running command %s", namespace.command)
        return run_command(namespace, config)
    except ProvisionError as exc:
        logger.error(
            "Handled ProvisionError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except FatalError as exc:
        logger.error("Aborted: %s", exc)
        print(user_facing_error(str(exc)), file=sys.stderr)
        return int(ExitCode.FAILURE)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.FAILURE)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
