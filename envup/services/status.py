"""Final-state summary and the two-location registration diagnostic."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from envup.core.result import Err, Ok, Result
from envup.output.console import ConsoleProtocol, Style
from envup.platform.process import ProcessError
from envup.tools.base import Tool
from envup.tools.probe import CapabilityProbe, Present

from .registration import RegistryClient

__all__ = [
    "RegistrationDiff",
    "StatusReporter",
    "ToolStatus",
    "registered_names",
]


@dataclass(frozen=True, slots=True)
class ToolStatus:
    label: str
    location: str | None = None
    version: str | None = None

    @property
    def present(self) -> bool:
        return self.location is not None

    def line(self) -> str:
        if self.location is None:
            return f"{self.label} not on PATH"
        if self.version is None:
            return f"{self.label}: {self.location}"
        return f"{self.label}: {self.version} @ {self.location}"


def registered_names(lines: Sequence[str]) -> list[str]:
    """Entry names from `claude mcp list` output.

    Entries look like `name: <command> - <health>`; header and
    progress lines carry no `: ` and are ignored.
    """
    names: list[str] = []
    for line in lines:
        head, sep, _rest = line.partition(": ")
        name = head.strip()
        if sep and name and " " not in name:
            names.append(name)
    return names


@dataclass(frozen=True, slots=True)
class RegistrationDiff:
    location_a: Path
    location_b: Path
    lines_a: list[str]
    lines_b: list[str]

    @property
    def only_a(self) -> list[str]:
        b = set(registered_names(self.lines_b))
        return [n for n in registered_names(self.lines_a) if n not in b]

    @property
    def only_b(self) -> list[str]:
        a = set(registered_names(self.lines_a))
        return [n for n in registered_names(self.lines_b) if n not in a]

    @property
    def drifted(self) -> bool:
        return bool(self.only_a or self.only_b)


class StatusReporter:
    def __init__(
        self,
        *,
        probe: CapabilityProbe,
        client: RegistryClient,
        console: ConsoleProtocol,
    ) -> None:
        self._probe = probe
        self._client = client
        self._console = console

    def collect(self, tools: Sequence[Tool]) -> list[ToolStatus]:
        """One status per executable name, in the order given.

        A tool with several executable names (SuperClaude) gets one line
        for each, since either may be the one a shell resolves.
        """
        statuses: list[ToolStatus] = []
        for tool in tools:
            names = tool.executables or (tool.id,)
            for name in names:
                single = Tool(
                    id=tool.id,
                    name=tool.name,
                    executables=(name,),
                    version_args=tool.version_args,
                )
                result = self._probe.probe(single)
                if isinstance(result, Present):
                    statuses.append(ToolStatus(name, result.location, result.version))
                else:
                    statuses.append(ToolStatus(name))
        return statuses

    def summary(self, tools: Sequence[Tool]) -> list[str]:
        return [s.line() for s in self.collect(tools)]

    def render(self, tools: Sequence[Tool]) -> list[ToolStatus]:
        statuses = self.collect(tools)
        self._console.header("Status")
        for s in statuses:
            self._console.print(s.line(), Style.DEFAULT if s.present else Style.WARNING)
        return statuses

    def diff_registrations(
        self, location_a: Path, location_b: Path
    ) -> Result[RegistrationDiff, ProcessError]:
        """List registrations from two working directories, unmodified."""
        a = self._client.list(cwd=location_a)
        if isinstance(a, Err):
            return a
        b = self._client.list(cwd=location_b)
        if isinstance(b, Err):
            return b
        return Ok(RegistrationDiff(location_a, location_b, a.value, b.value))
