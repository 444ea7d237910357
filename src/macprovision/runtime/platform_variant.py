"""macOS release and CPU architecture detection."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

VEERTU_SUPPORT_DIR = Path("/Library/Application Support/Veertu")


class MacOSRelease(Enum):
    BIG_SUR = "darwin20"
    MONTEREY = "darwin21"
    VENTURA = "darwin22"
    SONOMA = "darwin23"
    UNKNOWN = "unknown"


class Architecture(Enum):
    ARM64 = "arm64"
    X64 = "x64"


_BREW_KEYWORDS = {
    MacOSRelease.BIG_SUR: "big_sur",
    MacOSRelease.MONTEREY: "monterey",
    MacOSRelease.VENTURA: "ventura",
    MacOSRelease.SONOMA: "sonoma",
}


@dataclass(frozen=True)
class PlatformVariant:
    release: MacOSRelease
    arch: Architecture

    @property
    def brew_os_keyword(self) -> str | None:
        """Bottle tag Homebrew uses for this release, None when unknown."""
        return _BREW_KEYWORDS.get(self.release)

    @property
    def label(self) -> str:
        name = self.release.name.lower().replace("_", "")
        return f"{name}-{self.arch.value}"


def _current_ostype() -> str:
    ostype = os.environ.get("OSTYPE", "").strip()
    if ostype:
        return ostype
    if platform.system() != "Darwin":
        return ""
    major = platform.release().split(".", 1)[0]
    return f"darwin{major}" if major.isdigit() else ""


def parse_release(ostype: str) -> MacOSRelease:
    value = ostype.strip().lower()
    for release in MacOSRelease:
        if release.value == value:
            return release
    # bash reports e.g. darwin23.0 on some shells
    major = value.split(".", 1)[0]
    for release in MacOSRelease:
        if release.value == major:
            return release
    return MacOSRelease.UNKNOWN


def parse_arch(machine: str) -> Architecture:
    if machine.strip().lower() == "arm64":
        return Architecture.ARM64
    return Architecture.X64


def detect_platform(
    *,
    ostype: str | None = None,
    machine: str | None = None,
) -> PlatformVariant:
    release = parse_release(_current_ostype() if ostype is None else ostype)
    arch = parse_arch(platform.machine() if machine is None else machine)
    return PlatformVariant(release=release, arch=arch)


def is_veertu(support_dir: Path = VEERTU_SUPPORT_DIR) -> bool:
    return support_dir.is_dir()
