"""The provisioning pipeline, one method per step.

Ordering is the only dependency mechanism; each step lists what it reads
from earlier steps (`needs`) and what it leaves behind (`provides`). A step
whose input comes from a non-fatal step re-checks that input itself.

    prerequisites  python                -> python
    user-bins      python                -> user-bin dirs searchable
    pipx           user-bins             -> pipx
    uv             user-bins             -> uv, uvx
    realpath       user-bins             -> realpath
    node           curl                  -> node, npm, npx
    scrub-aliases                        -> no `alias claude=` lines
    claude         npm                   -> claude, shims in user bins
    superclaude    pipx                  -> SuperClaude
    wizard         SuperClaude           -> SuperClaude command set
    purge-project                        -> no project .mcp.json
    register-mcp   claude, npm, uvx      -> catalog registrations
    repair-project .claude.json          -> project .mcp.json complete
    validate-mcp   claude                -> drift warnings
    mcp-health     claude                -> health warnings
    compaudit      zsh                   -> advisory warnings
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from envup.core.config import ClaudeInstallMethod, EnvupConfig, Source
from envup.core.result import Err, Ok
from envup.output.console import ConsoleProtocol, Style
from envup.platform.detection import PlatformInfo
from envup.platform.files import Clock, atomic_write_text, ensure_symlink, points_to
from envup.platform.path_registry import PathRegistry, PersistenceTarget, activation_line
from envup.platform.paths import local_bin, persistence_files, startup_files
from envup.platform.process import CommandRunner, ProcessError
from envup.tools.base import Command, Tool
from envup.tools.definitions import PIP_PACKAGE, ToolSet
from envup.tools.probe import CapabilityProbe, first_line, leading_major

from .catalog import RegistryEntry, default_catalog
from .executor import ActionOutcome, ActionResult, ProvisioningStep, StepError
from .project_config import (
    project_config_path,
    purge,
    read_document,
    repair_merge,
    server_names,
    user_config_path,
)
from .registration import RegistrationManager, RegistryClient
from .scrubber import AliasMatcher, ConfigScrubber
from .status import StatusReporter
from .version_resolver import NvmManager, VersionPreference, VersionResolver

__all__ = [
    "PipelineSteps",
    "ProvisionContext",
    "REALPATH_SHIM",
]

REALPATH_SHIM = """#!/bin/sh
# realpath shim installed by envup: resolves a single path argument.
exec {python} -c '
import os, sys
print(os.path.realpath(sys.argv[1]) if len(sys.argv) > 1 else os.getcwd())
' "$@"
"""

COMPAUDIT_SCRIPT = "autoload -Uz compaudit && compaudit"


@dataclass
class ProvisionContext:
    """Everything the steps share for one run."""

    config: EnvupConfig
    console: ConsoleProtocol
    platform: PlatformInfo
    paths: PathRegistry
    runner: CommandRunner
    probe: CapabilityProbe
    tools: ToolSet
    home: Path
    cwd: Path
    environ: Mapping[str, str]
    nvm_dir: Path
    confirm: Callable[[str], bool] | None = None
    clock: Clock = datetime.now
    catalog: Sequence[RegistryEntry] | None = None

    def registry_client(self) -> RegistryClient:
        return RegistryClient(runner=self.runner)

    def entries(self) -> Sequence[RegistryEntry]:
        if self.catalog is None:
            self.catalog = default_catalog(self.home, self.tools)
        return self.catalog


def _no_strings() -> list[str]:
    return []


@dataclass
class _RunState:
    """Values steps hand to later steps within one run."""

    user_base: Path | None = None
    declined_purge: list[str] = field(default_factory=_no_strings)
    failed_registrations: list[str] = field(default_factory=_no_strings)
    validated: bool = False


class PipelineSteps:
    def __init__(self, ctx: ProvisionContext) -> None:
        self._ctx = ctx
        self._state = _RunState()

    def ordered(self) -> list[ProvisioningStep]:
        return [
            self.prerequisites(),
            self.user_bins(),
            self.pipx(),
            self.uv(),
            self.realpath(),
            self.node(),
            self.scrub_aliases(),
            self.claude(),
            self.superclaude(),
            self.wizard(),
            self.purge_project(),
            self.register_mcp(),
            self.repair_project(),
            self.validate_mcp(),
            self.mcp_health(),
            self.compaudit(),
        ]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _present(self, tool: Tool) -> bool:
        return self._ctx.probe.is_present(tool)

    def _run_first(self, commands: Sequence[Command]) -> ProcessError | None:
        """Run commands in order until one succeeds; the last error otherwise."""
        error: ProcessError | None = None
        for cmd in commands:
            self._ctx.console.command(cmd)
            result = self._ctx.runner.run_live(cmd, cwd=self._ctx.home)
            if isinstance(result, Ok):
                return None
            error = result.error
        return error

    def _python(self) -> str:
        return self._ctx.probe.locate(self._ctx.tools.python) or "python3"

    def _user_base(self) -> Path:
        if self._state.user_base is None:
            base: Path | None = None
            result = self._ctx.runner.run(
                [self._python(), "-m", "site", "--user-base"], cwd=self._ctx.home
            )
            if isinstance(result, Ok):
                text = first_line(result.value)
                if text.startswith("/"):
                    base = Path(text)
            self._state.user_base = base or self._ctx.home / ".local"
        return self._state.user_base

    def _user_bins(self) -> list[Path]:
        dirs = [self._user_base() / "bin", local_bin(self._ctx.home)]
        return list(dict.fromkeys(dirs))

    def _targets(self) -> list[PersistenceTarget]:
        return [
            PersistenceTarget(p, self._ctx.home)
            for p in persistence_files(self._ctx.home, self._ctx.platform.shell)
        ]

    # -------------------------------------------------------------------------
    # Base tooling
    # -------------------------------------------------------------------------

    def prerequisites(self) -> ProvisioningStep:
        tools = self._ctx.tools

        def action() -> ActionResult:
            if not self._present(tools.python):
                return Err(StepError("Python 3 is required", hint=tools.python.hint))
            warnings: tuple[str, ...] = ()
            if not self._present(tools.curl):
                warnings = ("curl not found; the nvm and uv installers need it",)
            version = self._ctx.probe.version(tools.python) or "Python"
            return Ok(ActionOutcome(f"using {version}", warnings))

        return ProvisioningStep(
            name="prerequisites",
            check=lambda: self._present(tools.python) and self._present(tools.curl),
            action=action,
            verify=lambda: self._present(tools.python),
            fatal=True,
            description="check for Python 3 and curl",
            provides=("python",),
        )

    def user_bins(self) -> ProvisioningStep:
        ctx = self._ctx

        def satisfied() -> bool:
            dirs = self._user_bins()
            if not all(d in ctx.paths for d in dirs):
                return False
            if not ctx.config.persist_path:
                return True
            try:
                return all(
                    t.has_line(activation_line(d, ctx.home))
                    for d in dirs
                    for t in self._targets()
                )
            except OSError:
                # Unreadable profile; the action reports the error.
                return False

        def action() -> ActionResult:
            added = [d for d in self._user_bins() if ctx.paths.ensure_searchable(d)]
            for d in added:
                ctx.console.info(f"added {d} to PATH for this session")
            if not ctx.config.persist_path:
                return Ok(ActionOutcome("user bins searchable"))
            modified: set[Path] = set()
            try:
                for d in self._user_bins():
                    modified.update(ctx.paths.persist(d, self._targets()))
            except OSError as e:
                return Err(StepError(f"could not persist PATH: {e}"))
            names = ", ".join(sorted(str(p) for p in modified)) or "startup files"
            return Ok(ActionOutcome(f"PATH persisted in {names}"))

        return ProvisioningStep(
            name="user-bins",
            check=satisfied,
            action=action,
            description="make the user bin directories searchable",
            needs=("python",),
            provides=("user-bins",),
        )

    def pipx(self) -> ProvisioningStep:
        ctx = self._ctx
        pipx = ctx.tools.pipx

        def action() -> ActionResult:
            cmds = [(self._python(), *cmd[1:]) for cmd in pipx.install]
            error = self._run_first(cmds)
            if error is not None:
                return Err(StepError(f"pipx install failed: {error}", hint=pipx.hint))
            warnings: tuple[str, ...] = ()
            ensure = ctx.runner.run(["pipx", "ensurepath"], cwd=ctx.home)
            if isinstance(ensure, Err):
                warnings = ("pipx ensurepath failed; open a new shell if pipx is not found",)
            return Ok(ActionOutcome("pipx ready", warnings))

        return ProvisioningStep(
            name="pipx",
            check=lambda: self._present(pipx),
            action=action,
            fatal=True,
            description="install pipx into the user site",
            needs=("python", "user-bins"),
            provides=("pipx",),
        )

    def uv(self) -> ProvisioningStep:
        ctx = self._ctx
        uvx = ctx.tools.uvx

        def action() -> ActionResult:
            cmds = [
                cmd
                for cmd in uvx.install
                if cmd[0] != "brew" or self._present(ctx.tools.brew)
            ]
            error = self._run_first(cmds)
            ctx.paths.ensure_searchable(local_bin(ctx.home))
            if error is not None:
                return Err(StepError(f"uv install failed: {error}", hint=uvx.hint))
            return Ok(ActionOutcome("uv ready"))

        return ProvisioningStep(
            name="uv",
            check=lambda: self._present(uvx),
            action=action,
            description="install uv/uvx",
            needs=("user-bins",),
            provides=("uv", "uvx"),
        )

    def realpath(self) -> ProvisioningStep:
        ctx = self._ctx
        shim = local_bin(ctx.home) / "realpath"

        def action() -> ActionResult:
            content = REALPATH_SHIM.format(python=shlex.quote(self._python()))
            try:
                current = shim.read_text(encoding="utf-8") if shim.is_file() else None
                if current != content:
                    atomic_write_text(shim, content)
                shim.chmod(0o755)
            except OSError as e:
                return Err(StepError(f"could not write {shim}: {e}"))
            ctx.paths.ensure_searchable(shim.parent)
            return Ok(ActionOutcome(f"realpath shim installed at {shim}"))

        return ProvisioningStep(
            name="realpath",
            check=lambda: self._present(ctx.tools.realpath),
            action=action,
            fatal=True,
            description=f"write a realpath shim to {shim}",
            needs=("user-bins",),
            provides=("realpath",),
        )

    def node(self) -> ProvisioningStep:
        ctx = self._ctx
        pref = VersionPreference(ctx.config.node_major, ctx.config.node_fallback_major)
        manager = NvmManager(runner=ctx.runner, nvm_dir=ctx.nvm_dir, cwd=ctx.home)

        def satisfied() -> bool:
            if ctx.config.skip_node:
                return True
            version = ctx.probe.version(ctx.tools.node)
            return version is not None and leading_major(version) in pref.candidates()

        def action() -> ActionResult:
            nvm = ctx.tools.nvm
            if not self._present(nvm):
                error = self._run_first(nvm.install)
                if error is not None or not self._present(nvm):
                    return Err(StepError("nvm could not be installed", hint=nvm.hint))

            resolved = VersionResolver(manager=manager, console=ctx.console).resolve(pref)
            if isinstance(resolved, Err):
                return Err(StepError(resolved.error.message, resolved.error.hint))
            resolution = resolved.value

            bin_dir = manager.bin_dir(resolution.activated_major)
            if bin_dir is None:
                return Err(
                    StepError(
                        f"Node {resolution.activated_major} installed but its bin directory "
                        "is unknown",
                        hint=f"nvm use {resolution.activated_major}",
                    )
                )
            ctx.paths.ensure_searchable(bin_dir)
            return Ok(
                ActionOutcome(
                    f"Node {resolution.version_string} via nvm", resolution.warnings
                )
            )

        return ProvisioningStep(
            name="node",
            check=satisfied,
            action=action,
            fatal=True,
            description=(
                f"install Node {pref.preferred_major} "
                f"(fallback {pref.fallback_major}) with nvm"
            ),
            needs=("curl",),
            provides=("node", "npm", "npx"),
        )

    # -------------------------------------------------------------------------
    # Applications
    # -------------------------------------------------------------------------

    def scrub_aliases(self) -> ProvisioningStep:
        ctx = self._ctx
        matcher = AliasMatcher("claude")

        def satisfied() -> bool:
            for path in startup_files(ctx.home):
                try:
                    text = path.read_text(encoding="utf-8", errors="replace")
                except OSError:
                    continue
                if any(matcher.matches(line) for line in text.splitlines()):
                    return False
            return True

        def action() -> ActionResult:
            try:
                report = ConfigScrubber(clock=ctx.clock).scrub(startup_files(ctx.home), matcher)
            except OSError as e:
                return Err(StepError(f"could not scrub startup files: {e}"))
            for backup in report.backups:
                ctx.console.print(f"backup: {backup}", Style.DIM)
            return Ok(
                ActionOutcome(
                    f"removed {report.removed_lines} stale {matcher.describe()} "
                    f"line(s) from {report.count} file(s)"
                )
            )

        return ProvisioningStep(
            name="scrub-aliases",
            check=satisfied,
            action=action,
            description="remove stale `alias claude=` lines",
        )

    def _claude_real(self) -> Path | None:
        found = self._ctx.probe.locate(self._ctx.tools.claude)
        if found is None:
            return None
        return Path(found).resolve()

    def _shims_ok(self) -> bool:
        real = self._claude_real()
        if real is None:
            return False
        return all(points_to(d / "claude", real) for d in self._user_bins())

    def claude(self) -> ProvisioningStep:
        ctx = self._ctx
        claude = ctx.tools.claude

        def install() -> tuple[ProcessError | StepError | None, list[str]]:
            warnings: list[str] = []
            method = ctx.config.claude_install
            if method == ClaudeInstallMethod.BREW:
                if ctx.platform.is_macos and self._present(ctx.tools.brew):
                    if self._run_first([("brew", "install", "--cask", "claude-code")]) is None:
                        return None, warnings
                    warnings.append("brew install failed; using npm")
                else:
                    warnings.append("brew unavailable; using npm")
            if not self._present(ctx.tools.npm):
                return (
                    StepError("npm not found (did the node step succeed?)", hint=claude.hint),
                    warnings,
                )
            cmds = claude.upgrade if self._present(claude) else claude.install
            return self._run_first(cmds), warnings

        def action() -> ActionResult:
            error, warnings = install()
            real = self._claude_real()
            if real is None:
                if isinstance(error, StepError):
                    return Err(error)
                return Err(StepError("Claude CLI not found after install", hint=claude.hint))
            if error is not None:
                warnings.append(f"Claude CLI update failed ({error}); keeping {real}")

            try:
                for d in self._user_bins():
                    link = d / "claude"
                    if ensure_symlink(link, real):
                        ctx.console.info(f"linked {link} -> {real}")
            except OSError as e:
                return Err(StepError(f"could not shim the Claude CLI: {e}"))
            version = ctx.probe.version(claude) or "unknown version"
            return Ok(ActionOutcome(f"Claude CLI {version}", tuple(warnings)))

        return ProvisioningStep(
            name="claude",
            check=lambda: False,
            action=action,
            verify=self._shims_ok,
            fatal=True,
            description=f"install or upgrade the Claude CLI ({ctx.config.claude_install})",
            needs=("npm", "user-bins"),
            provides=("claude",),
        )

    def _pipx_has_superclaude(self) -> bool:
        result = self._ctx.runner.run(["pipx", "list", "--short"], cwd=self._ctx.home)
        if isinstance(result, Err):
            return False
        return any(
            line.split()[0].lower() == PIP_PACKAGE.lower()
            for line in result.value.splitlines()
            if line.strip()
        )

    def superclaude(self) -> ProvisioningStep:
        ctx = self._ctx
        sc = ctx.tools.superclaude

        def from_registry() -> ProcessError | None:
            if self._pipx_has_superclaude():
                return self._run_first(sc.upgrade)
            return self._run_first([("pipx", "install", PIP_PACKAGE)])

        def action() -> ActionResult:
            warnings: tuple[str, ...] = ()
            if ctx.config.source == Source.GIT:
                error = self._run_first(sc.install)
                if error is not None:
                    warnings = (f"git install failed; using {PIP_PACKAGE} from the registry",)
                    error = from_registry()
            else:
                error = from_registry()
            if error is not None:
                return Err(StepError(f"SuperClaude install failed: {error}", hint=sc.hint))
            return Ok(ActionOutcome("SuperClaude ready", warnings))

        return ProvisioningStep(
            name="superclaude",
            check=lambda: False,
            action=action,
            verify=lambda: self._present(sc),
            fatal=True,
            description=f"install or upgrade SuperClaude from {ctx.config.source}",
            needs=("pipx",),
            provides=("SuperClaude",),
        )

    def wizard(self) -> ProvisioningStep:
        ctx = self._ctx

        def action() -> ActionResult:
            exe = ctx.probe.locate(ctx.tools.superclaude)
            if exe is None:
                return Err(StepError("SuperClaude CLI not found", hint=ctx.tools.superclaude.hint))
            cmd = (os.path.basename(exe), "install")
            error = self._run_first([cmd])
            if error is not None:
                return Ok(
                    ActionOutcome(
                        "wizard finished",
                        (f"'{shlex.join(cmd)}' returned non-zero (re-run it anytime)",),
                    )
                )
            return Ok(ActionOutcome("SuperClaude command set applied"))

        return ProvisioningStep(
            name="wizard",
            check=lambda: ctx.config.skip_wizard,
            action=action,
            verify=lambda: self._present(ctx.tools.superclaude),
            description="run `SuperClaude install`",
            needs=("SuperClaude",),
        )

    # -------------------------------------------------------------------------
    # Registrations
    # -------------------------------------------------------------------------

    def purge_project(self) -> ProvisioningStep:
        ctx = self._ctx
        path = project_config_path(ctx.cwd)

        def satisfied() -> bool:
            return not ctx.config.purge_project or not path.is_file()

        def action() -> ActionResult:
            result = purge(
                [path], confirm=ctx.confirm, assume_yes=ctx.config.assume_yes, clock=ctx.clock
            )
            if isinstance(result, Err):
                return Err(StepError(result.error.message, result.error.hint))
            for original, backup in result.value.moved:
                ctx.console.print(f"moved {original} -> {backup}", Style.DIM)
            if result.value.declined:
                self._state.declined_purge.append(str(path))
                return Ok(ActionOutcome("purge not confirmed", (f"{path} left in place",)))
            return Ok(ActionOutcome(f"{path} moved to a backup"))

        return ProvisioningStep(
            name="purge-project",
            check=satisfied,
            action=action,
            verify=lambda: satisfied() or bool(self._state.declined_purge),
            description=f"move {path} to a backup",
        )

    def register_mcp(self) -> ProvisioningStep:
        ctx = self._ctx

        def action() -> ActionResult:
            if not self._present(ctx.tools.claude):
                return Err(StepError("Claude CLI missing; cannot register MCP servers"))
            manager = RegistrationManager(
                client=ctx.registry_client(),
                probe=ctx.probe,
                console=ctx.console,
                home=ctx.home,
                project_dir=ctx.cwd,
                environ=ctx.environ,
            )
            report = manager.register_all(ctx.entries(), ctx.config.mcp_scope)
            self._state.failed_registrations = report.failed
            warnings = [*report.warnings]
            warnings += [
                o.describe() for o in report.outcomes if o.name in report.failed
            ]
            return Ok(ActionOutcome(report.summary(), tuple(warnings)))

        return ProvisioningStep(
            name="register-mcp",
            check=lambda: not ctx.config.register_mcp,
            action=action,
            verify=lambda: self._present(ctx.tools.claude) and not self._state.failed_registrations,
            description=f"register {len(ctx.entries())} MCP servers ({ctx.config.mcp_scope} scope)",
            needs=("claude", "npm", "uvx"),
        )

    def _missing_in_project(self) -> list[str]:
        ctx = self._ctx
        project = read_document(project_config_path(ctx.cwd))
        user = read_document(user_config_path(ctx.home))
        if isinstance(project, Err) or isinstance(user, Err) or project.value is None:
            return []
        have = set(server_names(project.value))
        return [n for n in server_names(user.value) if n not in have]

    def repair_project(self) -> ProvisioningStep:
        ctx = self._ctx

        def action() -> ActionResult:
            result = repair_merge(user_config_path(ctx.home), project_config_path(ctx.cwd))
            if isinstance(result, Err):
                return Err(StepError(result.error.message, result.error.hint))
            report = result.value
            if report.note:
                return Ok(ActionOutcome(report.note))
            added = ", ".join(report.added) or "nothing"
            return Ok(ActionOutcome(f"added {added} to {report.path}"))

        return ProvisioningStep(
            name="repair-project",
            check=lambda: not ctx.config.repair_project or not self._missing_in_project(),
            action=action,
            verify=lambda: not self._missing_in_project(),
            description="copy missing user-scope servers into the project .mcp.json",
        )

    def validate_mcp(self) -> ProvisioningStep:
        ctx = self._ctx

        def action() -> ActionResult:
            reporter = StatusReporter(
                probe=ctx.probe, client=ctx.registry_client(), console=ctx.console
            )
            result = reporter.diff_registrations(ctx.home, ctx.cwd)
            if isinstance(result, Err):
                return Err(
                    StepError(f"could not list MCP servers: {result.error}", hint="claude mcp list")
                )
            self._state.validated = True
            diff = result.value
            warnings = [f"{n} visible only from {diff.location_a}" for n in diff.only_a]
            warnings += [f"{n} visible only from {diff.location_b}" for n in diff.only_b]
            if warnings:
                ctx.console.print(
                    "hint: register with --scope user or run `envup mcp repair`", Style.DIM
                )
            return Ok(ActionOutcome("registrations match", tuple(warnings)))

        return ProvisioningStep(
            name="validate-mcp",
            check=lambda: not ctx.config.validate_locations,
            action=action,
            verify=lambda: self._state.validated,
            description=f"compare registrations in {ctx.home} and {ctx.cwd}",
            needs=("claude",),
        )

    def mcp_health(self) -> ProvisioningStep:
        ctx = self._ctx

        def action() -> ActionResult:
            if not self._present(ctx.tools.claude):
                return Ok(ActionOutcome("skipped", ("Claude CLI missing; skipping MCP check",)))
            ctx.console.info("checking MCP server health")
            result = ctx.runner.run_live(["claude", "mcp", "list"], cwd=ctx.home)
            if isinstance(result, Err):
                return Ok(
                    ActionOutcome("MCP check", ("claude mcp list failed (this can be transient)",))
                )
            return Ok(ActionOutcome("MCP servers listed"))

        return ProvisioningStep(
            name="mcp-health",
            check=lambda: False,
            action=action,
            verify=lambda: True,
            description="run `claude mcp list`",
            needs=("claude",),
        )

    def compaudit(self) -> ProvisioningStep:
        ctx = self._ctx

        def action() -> ActionResult:
            result = ctx.runner.run(["zsh", "-c", COMPAUDIT_SCRIPT], cwd=ctx.home)
            output = result.value if isinstance(result, Ok) else result.error.stdout
            lines = [line.strip() for line in output.splitlines()]
            insecure = [line for line in lines if line.startswith("/")]
            if not insecure:
                return Ok(ActionOutcome("no insecure completion directories"))
            for d in insecure:
                ctx.console.print(f"  {d}", Style.DIM)
            ctx.console.print("Suggested (review before running):", Style.DIM)
            ctx.console.print("  compaudit | xargs -I{} chmod g-w '{}'", Style.DIM)
            user = ctx.environ.get("USER", "$USER")
            ctx.console.print(f"  compaudit | xargs -I{{}} chown {user} '{{}}'", Style.DIM)
            return Ok(
                ActionOutcome(
                    "compaudit",
                    (f"zsh reports {len(insecure)} insecure completion director(ies)",),
                )
            )

        return ProvisioningStep(
            name="compaudit",
            check=lambda: not ctx.platform.is_zsh or not self._present(ctx.tools.zsh),
            action=action,
            verify=lambda: True,
            description="report insecure zsh completion directories",
        )
