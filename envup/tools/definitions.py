"""The tools envup knows how to probe, install and upgrade.

`build_tools()` returns a `ToolSet` for one host: install commands depend on
the home directory (nvm location) and platform (Homebrew on macOS).
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path

from envup.platform.detection import Platform

from .base import Command, Tool

__all__ = [
    "CLAUDE_NPM_PACKAGE",
    "NVM_INSTALL_URL",
    "PIP_PACKAGE",
    "REPO_URL",
    "ToolSet",
    "UV_INSTALL_URL",
    "build_tools",
    "nvm_command",
]

REPO_URL = "https://github.com/SuperClaude-Org/SuperClaude_Framework.git"
PIP_PACKAGE = "SuperClaude"
CLAUDE_NPM_PACKAGE = "@anthropic-ai/claude-code@latest"
NVM_INSTALL_URL = "https://raw.githubusercontent.com/nvm-sh/nvm/v0.39.7/install.sh"
UV_INSTALL_URL = "https://astral.sh/uv/install.sh"


def nvm_command(nvm_dir: Path, *args: str) -> Command:
    """Run an nvm subcommand. nvm is a shell function, so it needs bash."""
    script = (
        f"export NVM_DIR={shlex.quote(str(nvm_dir))}; "
        f'. "$NVM_DIR/nvm.sh" && nvm {shlex.join(args)}'
    )
    return ("bash", "-c", script)


@dataclass(frozen=True, slots=True)
class ToolSet:
    python: Tool
    pipx: Tool
    uv: Tool
    uvx: Tool
    realpath: Tool
    curl: Tool
    brew: Tool
    nvm: Tool
    node: Tool
    npm: Tool
    claude: Tool
    superclaude: Tool
    zsh: Tool

    def status_tools(self) -> list[Tool]:
        """Tools listed by the status summary, in display order."""
        return [
            self.claude,
            self.superclaude,
            self.uvx,
            self.uv,
            self.realpath,
            self.pipx,
            self.node,
            self.npm,
        ]


def build_tools(nvm_dir: Path, platform: Platform, *, python: str = "python3") -> ToolSet:
    uv_install: tuple[Command, ...] = (("sh", "-c", f"curl -LsSf {UV_INSTALL_URL} | sh"),)
    if platform == Platform.MACOS:
        uv_install = (("brew", "install", "uv"), *uv_install)

    claude_npm: tuple[Command, ...] = (
        ("npm", "-g", "install", CLAUDE_NPM_PACKAGE),
        ("npm", "-g", "update", CLAUDE_NPM_PACKAGE),
    )

    return ToolSet(
        python=Tool(
            id="python",
            name="Python 3",
            executables=("python3", "python"),
            version_args=("-V",),
            hint="Install Python 3 with your system package manager and re-run",
        ),
        pipx=Tool(
            id="pipx",
            name="pipx",
            executables=("pipx",),
            install=((python, "-m", "pip", "install", "--user", "-q", "pipx"),),
            hint=f"{python} -m pip install --user pipx",
        ),
        uv=Tool(
            id="uv",
            name="uv",
            executables=("uv",),
            install=uv_install,
            hint=f"curl -LsSf {UV_INSTALL_URL} | sh",
        ),
        uvx=Tool(
            id="uvx",
            name="uvx",
            executables=("uvx",),
            install=uv_install,
            hint=f"curl -LsSf {UV_INSTALL_URL} | sh",
        ),
        realpath=Tool(
            id="realpath",
            name="realpath",
            executables=("realpath",),
            version_args=None,
        ),
        curl=Tool(id="curl", name="curl", executables=("curl",)),
        brew=Tool(id="brew", name="Homebrew", executables=("brew",)),
        nvm=Tool(
            id="nvm",
            name="nvm",
            marker=nvm_dir / "nvm.sh",
            version_command=nvm_command(nvm_dir, "--version"),
            install=(("bash", "-c", f"curl -o- {NVM_INSTALL_URL} | bash"),),
            hint=f"curl -o- {NVM_INSTALL_URL} | bash",
        ),
        node=Tool(id="node", name="Node.js", executables=("node",)),
        npm=Tool(id="npm", name="npm", executables=("npm",)),
        claude=Tool(
            id="claude",
            name="Claude CLI",
            executables=("claude",),
            install=claude_npm,
            upgrade=claude_npm,
            hint=f"npm -g install {CLAUDE_NPM_PACKAGE}",
        ),
        superclaude=Tool(
            id="superclaude",
            name="SuperClaude",
            executables=("SuperClaude", "superclaude"),
            install=(("pipx", "install", "--force", f"git+{REPO_URL}"),),
            upgrade=(("pipx", "upgrade", PIP_PACKAGE), ("pipx", "install", "--force", PIP_PACKAGE)),
            hint=f"pipx install --force git+{REPO_URL}",
        ),
        zsh=Tool(id="zsh", name="zsh", executables=("zsh",)),
    )
