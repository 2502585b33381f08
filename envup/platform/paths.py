"""Well-known user-level locations.

Everything the engine writes lives under the user's home directory: shell
startup files, `~/.local/bin`, the nvm directory and the envup config
directory. Functions take an explicit `home` so tests can point them at a
temporary directory.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from .detection import ShellKind

__all__ = [
    "APP_NAME",
    "STARTUP_FILES",
    "home",
    "local_bin",
    "nvm_dir",
    "persistence_files",
    "startup_files",
    "user_config_dir",
]

APP_NAME = "envup"

# Every startup file a stale alias may hide in, in the order shells read them.
STARTUP_FILES = (
    ".zshrc",
    ".zprofile",
    ".zshenv",
    ".bashrc",
    ".bash_profile",
    ".profile",
)


def home(environ: Mapping[str, str] | None = None) -> Path:
    """Return the user's home directory ($HOME first, for containers/CI)."""
    env = os.environ if environ is None else environ
    home_env = env.get("HOME")
    if home_env:
        return Path(home_env)
    return Path.home()


def user_config_dir(home_dir: Path, environ: Mapping[str, str] | None = None) -> Path:
    """Return `$XDG_CONFIG_HOME/envup` or `~/.config/envup`."""
    env = os.environ if environ is None else environ
    xdg_config = env.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME
    return home_dir / ".config" / APP_NAME


def local_bin(home_dir: Path) -> Path:
    """`~/.local/bin`: pipx, uv and the envup shims install here."""
    return home_dir / ".local" / "bin"


def nvm_dir(home_dir: Path, environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    configured = env.get("NVM_DIR")
    if configured:
        return Path(configured)
    return home_dir / ".nvm"


def startup_files(home_dir: Path) -> list[Path]:
    """All shell startup files the alias scrubber inspects."""
    return [home_dir / name for name in STARTUP_FILES]


def persistence_files(home_dir: Path, shell: ShellKind) -> list[Path]:
    """Startup file(s) that receive persisted PATH lines for a shell."""
    if shell == ShellKind.ZSH:
        return [home_dir / ".zprofile"]
    return [home_dir / ".bash_profile"]
