"""Tool descriptors.

A `Tool` is a stateless description of an external capability: how to
tell whether it is present, how to ask its version, and how to install or
upgrade it. Tools own nothing; the engine reads and changes the host's
installed software only through these commands.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

__all__ = ["Command", "Tool"]

Command = tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Tool:
    """Immutable tool metadata.

    Attributes:
        id: Unique identifier (e.g. "pipx", "uvx")
        name: Human-readable name
        executables: Names checked on the search path; first hit wins
        version_args: Arguments appended to the located executable to print
            its version (None if the tool has no version query)
        install: Install commands, tried in order until one succeeds
        upgrade: Upgrade commands, tried in order until one succeeds
        marker: File whose existence means "present" (tools that are shell
            functions, like nvm, have no executable)
        version_command: Full version query for marker-based tools
        hint: Manual remedy shown when the tool cannot be provided
    """

    id: str
    name: str
    executables: tuple[str, ...] = ()
    version_args: tuple[str, ...] | None = ("--version",)
    install: tuple[Command, ...] = ()
    upgrade: tuple[Command, ...] = ()
    marker: Path | None = None
    version_command: Command | None = None
    hint: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Tool id cannot be empty")
        if not self.executables and self.marker is None:
            raise ValueError(f"Tool {self.id!r} needs executables or a marker file")

    def __str__(self) -> str:
        return self.id
