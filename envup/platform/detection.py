"""Platform and interactive shell detection.

Detection is done lazily and cached. The interactive shell decides which
startup files receive persisted PATH lines and whether zsh-specific checks
run.
"""

from __future__ import annotations

import os as _os
import platform as _platform
import sys as _sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, auto
from functools import lru_cache

__all__ = [
    "Arch",
    "Platform",
    "PlatformInfo",
    "ShellKind",
    "detect",
    "detect_arch",
    "detect_platform",
    "detect_shell",
    "is_macos",
]


class Platform(Enum):
    """Operating system platform."""

    LINUX = auto()
    MACOS = auto()
    UNKNOWN = auto()

    def __str__(self) -> str:
        return self.name.lower()


class Arch(Enum):
    """CPU architecture."""

    X64 = auto()
    ARM64 = auto()
    UNKNOWN = auto()

    def __str__(self) -> str:
        return self.name.lower()


class ShellKind(Enum):
    """Interactive shell family."""

    ZSH = auto()
    BASH = auto()
    OTHER = auto()

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class PlatformInfo:
    """Immutable snapshot of the host. Use `detect()` to build one."""

    platform: Platform
    arch: Arch
    shell: ShellKind

    @property
    def is_macos(self) -> bool:
        return self.platform == Platform.MACOS

    @property
    def is_zsh(self) -> bool:
        return self.shell == ShellKind.ZSH

    def __str__(self) -> str:
        return f"{self.platform}-{self.arch} ({self.shell})"


@lru_cache(maxsize=1)
def detect_platform() -> Platform:
    """Detect the current operating system (cached)."""
    system = _sys.platform.lower()
    if system.startswith("linux"):
        return Platform.LINUX
    if system.startswith("darwin"):
        return Platform.MACOS
    return Platform.UNKNOWN


@lru_cache(maxsize=1)
def detect_arch() -> Arch:
    """Detect the current CPU architecture (cached)."""
    machine = _platform.machine().lower()
    if machine in ("x86_64", "amd64"):
        return Arch.X64
    if machine in ("aarch64", "arm64"):
        return Arch.ARM64
    return Arch.UNKNOWN


def detect_shell(environ: Mapping[str, str] | None = None) -> ShellKind:
    """Classify the user's login shell from $SHELL."""
    env = _os.environ if environ is None else environ
    name = env.get("SHELL", "").rstrip("/").rsplit("/", 1)[-1]
    if name == "zsh":
        return ShellKind.ZSH
    if name == "bash":
        return ShellKind.BASH
    return ShellKind.OTHER


def detect(environ: Mapping[str, str] | None = None) -> PlatformInfo:
    """Detect platform, architecture and shell."""
    return PlatformInfo(
        platform=detect_platform(),
        arch=detect_arch(),
        shell=detect_shell(environ),
    )


def is_macos() -> bool:
    return detect_platform() == Platform.MACOS
