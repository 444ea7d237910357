"""XDG config loading."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from macprovision.logging import LOG_LEVELS, normalize_level
from macprovision.retry import RetryPolicy

DEFAULT_CONFIG_PATH = Path("~/.config/macprovision/config.toml").expanduser()
GITHUB_TOKEN_ENV = "MACPROVISION_GH_TOKEN"

_ATTEMPT_FIELDS = ("download_attempts", "brew_attempts", "github_attempts")
_SECONDS_FIELDS = (
    "download_wait_seconds",
    "brew_wait_seconds",
    "github_wait_seconds",
    "http_timeout_seconds",
)
_PATH_FIELDS = ("download_dir", "toolset_path")


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    download_attempts: int = Field(default=20, ge=1)
    download_wait_seconds: float = Field(default=30, ge=0)
    brew_attempts: int = Field(default=10, ge=1)
    brew_wait_seconds: float = Field(default=60, ge=0)
    github_attempts: int = Field(default=10, ge=1)
    github_wait_seconds: float = Field(default=60, ge=0)
    http_timeout_seconds: float = Field(default=60, gt=0)
    download_dir: str = ""
    toolset_path: str = ""
    github_token: str = ""
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = normalize_level(value)
        if normalized not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}")
        return normalized

    def download_policy(self) -> RetryPolicy:
        return RetryPolicy(self.download_attempts, self.download_wait_seconds)

    def brew_policy(self) -> RetryPolicy:
        return RetryPolicy(self.brew_attempts, self.brew_wait_seconds)

    def github_policy(self) -> RetryPolicy:
        return RetryPolicy(self.github_attempts, self.github_wait_seconds)


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    for name in _ATTEMPT_FIELDS:
        value = raw.get(name)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
            setattr(cfg, name, value)

    for name in _SECONDS_FIELDS:
        value = raw.get(name)
        if _is_number(value) and value >= 0:
            if name == "http_timeout_seconds" and value == 0:
                continue
            setattr(cfg, name, value)

    for name in _PATH_FIELDS:
        value = raw.get(name)
        if isinstance(value, str):
            setattr(cfg, name, value.strip())

    github_token = raw.get("github_token", cfg.github_token)
    if isinstance(github_token, str):
        cfg.github_token = github_token.strip()
    env_token = os.getenv(GITHUB_TOKEN_ENV, "").strip()
    if env_token:
        cfg.github_token = env_token

    log_level = raw.get("log_level", cfg.log_level)
    if isinstance(log_level, str) and normalize_level(log_level) in LOG_LEVELS:
        cfg.log_level = log_level

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return _sanitize({})
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return _sanitize({})
    return _sanitize(raw)
