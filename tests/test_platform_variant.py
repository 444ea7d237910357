from __future__ import annotations

from pathlib import Path

import pytest

from macprovision.runtime import platform_variant
from macprovision.runtime.platform_variant import (
    Architecture,
    MacOSRelease,
    PlatformVariant,
    detect_platform,
    is_veertu,
)


@pytest.mark.parametrize(
    ("ostype", "release", "keyword"),
    [
        ("darwin20", MacOSRelease.BIG_SUR, "big_sur"),
        ("darwin21", MacOSRelease.MONTEREY, "monterey"),
        ("darwin22", MacOSRelease.VENTURA, "ventura"),
        ("darwin23", MacOSRelease.SONOMA, "sonoma"),
        ("darwin23.0", MacOSRelease.SONOMA, "sonoma"),
        ("darwin19", MacOSRelease.UNKNOWN, None),
        ("linux-gnu", MacOSRelease.UNKNOWN, None),
    ],
)
def test_release_matrix(ostype: str, release: MacOSRelease, keyword: str | None) -> None:
    variant = detect_platform(ostype=ostype, machine="arm64")
    assert variant.release is release
    assert variant.brew_os_keyword == keyword


@pytest.mark.parametrize(
    ("machine", "arch"),
    [("arm64", Architecture.ARM64), ("x86_64", Architecture.X64), ("i386", Architecture.X64)],
)
def test_architecture_matrix(machine: str, arch: Architecture) -> None:
    assert detect_platform(ostype="darwin22", machine=machine).arch is arch


def test_label_combines_release_and_arch() -> None:
    assert PlatformVariant(MacOSRelease.SONOMA, Architecture.ARM64).label == "sonoma-arm64"
    assert PlatformVariant(MacOSRelease.BIG_SUR, Architecture.X64).label == "bigsur-x64"


def test_ostype_environment_is_preferred(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OSTYPE", "darwin21")
    monkeypatch.setattr(platform_variant.platform, "machine", lambda: "x86_64")
    assert detect_platform() == PlatformVariant(MacOSRelease.MONTEREY, Architecture.X64)


def test_kernel_release_is_used_without_ostype(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OSTYPE", raising=False)
    monkeypatch.setattr(platform_variant.platform, "system", lambda: "Darwin")
    monkeypatch.setattr(platform_variant.platform, "release", lambda: "23.4.0")
    assert detect_platform(machine="arm64").release is MacOSRelease.SONOMA


def test_non_darwin_host_is_unknown(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OSTYPE", raising=False)
    monkeypatch.setattr(platform_variant.platform, "system", lambda: "Linux")
    assert detect_platform(machine="x86_64").release is MacOSRelease.UNKNOWN


def test_is_veertu_checks_support_directory(tmp_path: Path) -> None:
    assert is_veertu(tmp_path / "Veertu") is False
    (tmp_path / "Veertu").mkdir()
    assert is_veertu(tmp_path / "Veertu") is True
