"""Capability probe: is a tool present, and at what version?

Probing never mutates state and never raises for a missing tool; absence
is the normal "needs action" answer. Executables are resolved against the
`PathRegistry`, so a tool installed earlier in the same run is visible
without restarting the shell.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from envup.core.result import Ok
from envup.platform.path_registry import PathRegistry
from envup.platform.process import CommandRunner

from .base import Tool

__all__ = [
    "Absent",
    "CapabilityProbe",
    "Present",
    "ProbeResult",
    "first_line",
    "leading_major",
]


@dataclass(frozen=True, slots=True)
class Absent:
    tool_id: str


@dataclass(frozen=True, slots=True)
class Present:
    tool_id: str
    location: str
    version: str | None = None

    @property
    def version_text(self) -> str:
        return self.version or "unknown"


type ProbeResult = Present | Absent


def first_line(text: str) -> str:
    """Extract first non-empty line from text."""
    for line in text.strip().splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


_LEADING_INT_RE = re.compile(r"(\d+)")


def leading_major(version: str) -> int | None:
    """Leading integer component of a version string ("v20.11.1" -> 20)."""
    match = _LEADING_INT_RE.search(version)
    if match is None:
        return None
    return int(match.group(1))


class CapabilityProbe:
    """Read-only presence/version checks for external tools."""

    def __init__(self, *, paths: PathRegistry, runner: CommandRunner, cwd: Path) -> None:
        self._paths = paths
        self._runner = runner
        self._cwd = cwd

    def locate(self, tool: Tool) -> str | None:
        """Return where the tool lives, or None if absent."""
        if tool.marker is not None:
            try:
                return str(tool.marker) if tool.marker.is_file() else None
            except OSError:
                return None
        for name in tool.executables:
            found = self._paths.which(name)
            if found:
                return found
        return None

    def is_present(self, tool: Tool) -> bool:
        return self.locate(tool) is not None

    def probe(self, tool: Tool) -> ProbeResult:
        location = self.locate(tool)
        if location is None:
            return Absent(tool.id)
        return Present(tool.id, location, self._query_version(tool, location))

    def version(self, tool: Tool) -> str | None:
        result = self.probe(tool)
        return result.version if isinstance(result, Present) else None

    def _query_version(self, tool: Tool, location: str) -> str | None:
        if tool.version_command is not None:
            cmd = list(tool.version_command)
        elif tool.version_args is not None and tool.marker is None:
            cmd = [location, *tool.version_args]
        else:
            return None

        result = self._runner.run(cmd, cwd=self._cwd)
        if isinstance(result, Ok):
            return first_line(result.value) or None
        return None
