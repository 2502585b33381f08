"""Registration of catalog entries with the Claude CLI's MCP registry.

`RegistryClient` is a thin wrapper over `claude mcp ...`; everything it
runs goes through the `CommandRunner`, so tests script it with a
`MockRunner`. `RegistrationManager.register_all` walks the catalog once,
recording one outcome per entry. A failing entry never stops the batch.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from envup.core.config import Scope
from envup.core.result import Err, Result
from envup.output.console import ConsoleProtocol
from envup.platform.process import CommandRunner, ProcessError
from envup.tools.base import Command
from envup.tools.probe import CapabilityProbe

from .catalog import RegistryEntry, render_launch
from .project_config import (
    ConfigDocError,
    project_config_path,
    read_document,
    server_names,
    user_config_path,
)

__all__ = [
    "EntryOutcome",
    "EntryStatus",
    "RegistrationManager",
    "RegistrationReport",
    "RegistryClient",
]


class RegistryClient:
    """The `claude mcp` subcommands envup relies on."""

    def __init__(self, *, runner: CommandRunner, executable: str = "claude") -> None:
        self._runner = runner
        self._exe = executable

    def add_command(
        self,
        name: str,
        scope: Scope,
        launch: Command,
        env: Mapping[str, str] | None = None,
    ) -> Command:
        """argv for `claude mcp add`; the launch command follows `--`."""
        argv = [self._exe, "mcp", "add", "--scope", str(scope)]
        for key, value in (env or {}).items():
            argv += ["-e", f"{key}={value}"]
        return (*argv, name, "--", *launch)

    def add(
        self,
        name: str,
        scope: Scope,
        launch: Command,
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> Result[str, ProcessError]:
        return self._runner.run(self.add_command(name, scope, launch, env), cwd=cwd)

    def remove(self, name: str, scope: Scope, *, cwd: Path) -> Result[str, ProcessError]:
        return self._runner.run(
            [self._exe, "mcp", "remove", "--scope", str(scope), name], cwd=cwd
        )

    def list(self, *, cwd: Path) -> Result[list[str], ProcessError]:
        """Raw `claude mcp list` output lines as seen from cwd."""
        result = self._runner.run([self._exe, "mcp", "list"], cwd=cwd)
        return result.map(lambda out: [line for line in out.splitlines() if line.strip()])


class EntryStatus(Enum):
    REGISTERED = "registered"
    SKIPPED = "skipped"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class EntryOutcome:
    name: str
    status: EntryStatus
    reason: str = ""
    command: Command = ()

    def describe(self) -> str:
        if self.reason:
            return f"{self.name}: {self.status} ({self.reason})"
        return f"{self.name}: {self.status}"


def _empty_outcomes() -> list[EntryOutcome]:
    return []


def _empty_warnings() -> list[str]:
    return []


@dataclass
class RegistrationReport:
    """Per-entry outcomes of one `register_all` call."""

    outcomes: list[EntryOutcome] = field(default_factory=_empty_outcomes)
    warnings: list[str] = field(default_factory=_empty_warnings)

    def _named(self, status: EntryStatus) -> list[str]:
        return [o.name for o in self.outcomes if o.status == status]

    @property
    def registered(self) -> list[str]:
        return self._named(EntryStatus.REGISTERED)

    @property
    def skipped(self) -> list[str]:
        return self._named(EntryStatus.SKIPPED)

    @property
    def failed(self) -> list[str]:
        return self._named(EntryStatus.FAILED)

    def outcome(self, name: str) -> EntryOutcome | None:
        for o in self.outcomes:
            if o.name == name:
                return o
        return None

    def summary(self) -> str:
        return (
            f"{len(self.registered)} registered, "
            f"{len(self.skipped)} skipped, {len(self.failed)} failed"
        )


class RegistrationManager:
    """Registers a catalog of entries, one outcome per entry.

    Registration commands run in the home directory for user scope and in
    the project directory for project scope. The launch command each entry
    stores never depends on either: an entry's own working directory is
    rendered into it.

    An entry is replaced (removed, then added) only when the document of the
    target scope already lists it; `claude mcp get` would also report names
    registered in other scopes.
    """

    def __init__(
        self,
        *,
        client: RegistryClient,
        probe: CapabilityProbe,
        console: ConsoleProtocol,
        home: Path,
        project_dir: Path,
        environ: Mapping[str, str],
    ) -> None:
        self._client = client
        self._probe = probe
        self._console = console
        self._home = home
        self._project_dir = project_dir
        self._environ = environ

    def registration_cwd(self, scope: Scope) -> Path:
        return self._home if scope == Scope.USER else self._project_dir

    def scope_document(self, scope: Scope) -> Path:
        """The registry document that holds scope's entries."""
        if scope == Scope.USER:
            return user_config_path(self._home)
        return project_config_path(self._project_dir)

    def registered_in(self, scope: Scope) -> Result[list[str], ConfigDocError]:
        """Names already registered in scope itself, not visible from other scopes."""
        return read_document(self.scope_document(scope)).map(server_names)

    def forwarded_env(self, entry: RegistryEntry) -> tuple[dict[str, str], list[str]]:
        """Set variables to pass with `-e`, and the names of missing ones."""
        env: dict[str, str] = {}
        missing: list[str] = []
        for key in entry.env_keys:
            value = self._environ.get(key, "")
            if value:
                env[key] = value
            else:
                missing.append(key)
        return env, missing

    def command_for(self, entry: RegistryEntry, scope: Scope) -> Command:
        env, _missing = self.forwarded_env(entry)
        return self._client.add_command(entry.name, scope, render_launch(entry), env)

    def register_all(self, entries: Sequence[RegistryEntry], scope: Scope) -> RegistrationReport:
        report = RegistrationReport()
        cwd = self.registration_cwd(scope)
        existing = self.registered_in(scope)
        for entry in entries:
            outcome = self._register(entry, scope, cwd, existing, report)
            report.outcomes.append(outcome)
            # Skips and missing keys are left to the caller via report.warnings.
            match outcome.status:
                case EntryStatus.REGISTERED:
                    self._console.success(f"{entry.name} registered ({scope} scope)")
                case EntryStatus.FAILED:
                    self._console.error(outcome.describe())
                case EntryStatus.SKIPPED:
                    pass
        return report

    def _register(
        self,
        entry: RegistryEntry,
        scope: Scope,
        cwd: Path,
        existing: Result[list[str], ConfigDocError],
        report: RegistrationReport,
    ) -> EntryOutcome:
        capability = entry.required_capability
        if capability is not None and not self._probe.is_present(capability):
            reason = f"missing capability {capability.id}"
            report.warnings.append(f"{entry.name} skipped: {reason}")
            return EntryOutcome(entry.name, EntryStatus.SKIPPED, reason)

        env, missing = self.forwarded_env(entry)
        for key in missing:
            report.warnings.append(f"{entry.name}: {key} is not set; registered without it")

        if isinstance(existing, Err):
            return EntryOutcome(entry.name, EntryStatus.FAILED, existing.error.message)
        # A name registered only in another scope is left alone.
        if entry.name in existing.value:
            removed = self._client.remove(entry.name, scope, cwd=cwd)
            if isinstance(removed, Err):
                return EntryOutcome(
                    entry.name,
                    EntryStatus.FAILED,
                    f"could not replace existing entry: {removed.error}",
                )

        launch = render_launch(entry)
        # Key values never reach the console or the report.
        command = self._client.add_command(entry.name, scope, launch, dict.fromkeys(env, "***"))
        self._console.command(command)
        added = self._client.add(entry.name, scope, launch, cwd=cwd, env=env)
        if isinstance(added, Err):
            detail = added.error.stderr.strip().splitlines()
            reason = detail[-1] if detail else str(added.error)
            return EntryOutcome(entry.name, EntryStatus.FAILED, reason, command)
        return EntryOutcome(entry.name, EntryStatus.REGISTERED, command=command)
