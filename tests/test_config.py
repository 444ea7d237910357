from __future__ import annotations

from pathlib import Path

import pytest

from macprovision.config import GITHUB_TOKEN_ENV, AppConfig, load_config


@pytest.fixture(autouse=True)
def _no_env_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(GITHUB_TOKEN_ENV, raising=False)


def test_load_defaults_when_config_missing(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "config.toml")
    assert cfg.download_attempts == 20
    assert cfg.download_wait_seconds == 30
    assert cfg.brew_attempts == 10
    assert cfg.brew_wait_seconds == 60
    assert cfg.github_attempts == 10
    assert cfg.github_wait_seconds == 60
    assert cfg.github_token == ""
    assert cfg.log_level == "INFO"


def test_load_reads_values(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        "\n".join(
            [
                "download_attempts = 5",
                "download_wait_seconds = 2.5",
                "brew_attempts = 3",
                'download_dir = " /var/cache/pkgs "',
                'toolset_path = "/opt/toolset.json"',
                'github_token = "ghp_file"',
                'log_level = "warning"',
            ]
        ),
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.download_policy().max_attempts == 5
    assert cfg.download_policy().wait_seconds == 2.5
    assert cfg.brew_policy().max_attempts == 3
    assert cfg.download_dir == "/var/cache/pkgs"
    assert cfg.toolset_path == "/opt/toolset.json"
    assert cfg.github_token == "ghp_file"
    assert cfg.log_level == "WARN"


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        "\n".join(
            [
                "download_attempts = 0",
                "brew_attempts = true",
                "github_wait_seconds = -1",
                "http_timeout_seconds = 0",
                "log_level = 'LOUD'",
                "download_dir = 7",
            ]
        ),
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.download_attempts == 20
    assert cfg.brew_attempts == 10
    assert cfg.github_wait_seconds == 60
    assert cfg.http_timeout_seconds == 60
    assert cfg.log_level == "INFO"
    assert cfg.download_dir == ""


def test_broken_toml_returns_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("download_attempts = [", encoding="utf-8")
    assert load_config(path) == AppConfig()


def test_env_token_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.toml"
    path.write_text('github_token = "ghp_file"\n', encoding="utf-8")
    monkeypatch.setenv(GITHUB_TOKEN_ENV, " ghp_env ")
    assert load_config(path).github_token == "ghp_env"


def test_model_rejects_invalid_assignment() -> None:
    cfg = AppConfig()
    with pytest.raises(ValueError):
        cfg.download_attempts = 0
