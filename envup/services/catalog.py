"""The fixed catalog of MCP servers registered with the Claude CLI.

Every server here is launched through a package-resolution tool (npm or
uvx) that looks at its working directory. Started from inside a
multi-package project, such a tool can find several same-named packages up
the tree and refuse to run. Each entry therefore pins its working directory
to the user's home, and that directory is baked into the launch command
itself, so the registered command is the same wherever `envup` runs.

Argument grammar differs per launch mechanism and must be reproduced
exactly (see `render_launch`):

    npm-exec  npm exec --yes --prefix <home> -- <package> [args...]
              The `--` is required; without it npm parses the package's
              own flags.
    uvx       uvx --directory <home> --from <source> <tool> [args...]
              No `--`; the launched tool would read its `--context` flag
              as a positional argument.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from envup.tools.base import Command, Tool
from envup.tools.definitions import ToolSet

__all__ = [
    "LaunchMechanism",
    "LaunchSpec",
    "RegistryEntry",
    "default_catalog",
    "render_launch",
]


class LaunchMechanism(StrEnum):
    NPM_EXEC = "npm-exec"
    UVX = "uvx"


@dataclass(frozen=True, slots=True)
class LaunchSpec:
    """How a server is started, before the working directory is applied.

    Attributes:
        mechanism: Package-resolution tool used to start the server
        target: npm package spec, or the tool name for uvx
        source: Where uvx installs the tool from (`--from`)
        args: Arguments passed through to the server
    """

    mechanism: LaunchMechanism
    target: str
    source: str | None = None
    args: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """One named server in the registry.

    Attributes:
        name: Unique key in the registry
        launch: Launch command
        working_directory: Directory the server must start from, whatever
            directory registration ran in
        required_capability: Tool that must be present, else the entry is
            skipped with a warning
        env_keys: Environment variables forwarded to the server when set
    """

    name: str
    launch: LaunchSpec
    working_directory: Path | None = None
    required_capability: Tool | None = None
    env_keys: tuple[str, ...] = ()


def render_launch(entry: RegistryEntry) -> Command:
    """Concrete argv the registry client will store for entry."""
    spec = entry.launch
    wd = entry.working_directory
    match spec.mechanism:
        case LaunchMechanism.NPM_EXEC:
            argv = ["npm", "exec", "--yes"]
            if wd is not None:
                argv += ["--prefix", str(wd)]
            return (*argv, "--", spec.target, *spec.args)
        case LaunchMechanism.UVX:
            argv = ["uvx"]
            if wd is not None:
                argv += ["--directory", str(wd)]
            if spec.source is not None:
                argv += ["--from", spec.source]
            return (*argv, spec.target, *spec.args)


def default_catalog(home: Path, tools: ToolSet) -> list[RegistryEntry]:
    """The servers SuperClaude expects, pinned to home."""

    def npm(name: str, package: str, *env_keys: str) -> RegistryEntry:
        return RegistryEntry(
            name=name,
            launch=LaunchSpec(LaunchMechanism.NPM_EXEC, package),
            working_directory=home,
            required_capability=tools.npm,
            env_keys=env_keys,
        )

    return [
        npm("sequential-thinking", "@modelcontextprotocol/server-sequential-thinking"),
        npm("context7", "@upstash/context7-mcp"),
        npm("magic", "@21st-dev/magic", "TWENTYFIRST_API_KEY"),
        npm("playwright", "@playwright/mcp@latest"),
        npm("morphllm-fast-apply", "@morph-llm/morph-fast-apply", "MORPH_API_KEY"),
        RegistryEntry(
            name="serena",
            launch=LaunchSpec(
                LaunchMechanism.UVX,
                "serena",
                source="git+https://github.com/oraios/serena",
                args=("start-mcp-server", "--context", "ide-assistant"),
            ),
            working_directory=home,
            required_capability=tools.uvx,
        ),
    ]
