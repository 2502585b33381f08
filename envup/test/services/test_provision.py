"""End-to-end pipeline scenarios against a scripted host.

The host is a temporary home directory plus a `MockRunner`. Installer
commands are scripted with effects that drop executables where the real
installer would, so probes see the same state a real run would leave.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from envup.core.config import EnvupConfig, Scope
from envup.core.errors import ErrorCode
from envup.output.console import MockConsole
from envup.platform.detection import Arch, Platform, PlatformInfo, ShellKind
from envup.platform.path_registry import PathRegistry
from envup.platform.process import MockRunner
from envup.services.executor import Outcome
from envup.services.provision import ProvisionResult, ProvisionService
from envup.services.steps import ProvisionContext
from envup.tools.definitions import CLAUDE_NPM_PACKAGE, REPO_URL, build_tools, nvm_command
from envup.tools.probe import CapabilityProbe

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _touch_exe(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n", encoding="utf-8")
    path.chmod(0o755)


class Host:
    """A fresh machine: Python and curl on PATH, nothing else."""

    def __init__(self, tmp_path: Path, config: EnvupConfig | None = None) -> None:
        self.home = tmp_path / "home"
        self.home.mkdir()
        self.cwd = self.home / "monorepo" / "packages" / "app"
        self.cwd.mkdir(parents=True)
        self.system_bin = tmp_path / "usr" / "bin"
        self.python = self.system_bin / "python3"
        _touch_exe(self.python)
        _touch_exe(self.system_bin / "curl")

        self.local_bin = self.home / ".local" / "bin"
        self.nvm_dir = self.home / ".nvm"
        self.node_bin = self.nvm_dir / "versions" / "node" / "v20.11.1" / "bin"

        self.console = MockConsole()
        self.runner = MockRunner()
        self.paths = PathRegistry([str(self.system_bin)], home=self.home)
        self.tools = build_tools(self.nvm_dir, Platform.LINUX)
        self.ctx = ProvisionContext(
            config=config or EnvupConfig(),
            console=self.console,
            platform=PlatformInfo(Platform.LINUX, Arch.X64, ShellKind.BASH),
            paths=self.paths,
            runner=self.runner,
            probe=CapabilityProbe(paths=self.paths, runner=self.runner, cwd=self.home),
            tools=self.tools,
            home=self.home,
            cwd=self.cwd,
            environ={"HOME": str(self.home)},
            nvm_dir=self.nvm_dir,
            clock=lambda: NOW,
        )

    def nvm(self, *args: str) -> tuple[str, ...]:
        return nvm_command(self.nvm_dir, *args)

    def script_fresh_machine(self) -> None:
        """Everything installs except uv and Node 22."""
        py = str(self.python)
        r = self.runner
        r.reply([py, "-m", "site", "--user-base"], (0, f"{self.home}/.local\n"))
        r.reply([py, "-m", "pip", "install"])
        r.on_success([py, "-m", "pip", "install"], lambda: _touch_exe(self.local_bin / "pipx"))
        r.reply(["pipx", "ensurepath"])

        r.reply(self.tools.nvm.install[0])
        r.on_success(self.tools.nvm.install[0], lambda: _touch_exe(self.nvm_dir / "nvm.sh"))
        r.reply(self.nvm("install", "22"), (1, ""))
        r.reply(self.nvm("install", "20"))
        r.on_success(self.nvm("install", "20"), self._drop_node)
        r.reply(self.nvm("alias", "default", "20"))
        r.reply(self.nvm("version", "20"), (0, "v20.11.1\n"))
        r.reply(self.nvm("which", "20"), (0, f"{self.node_bin}/node\n"))
        r.reply([str(self.node_bin / "node"), "--version"], (0, "v20.11.1\n"))

        r.reply(["npm", "-g", "install", CLAUDE_NPM_PACKAGE])
        r.on_success(
            ["npm", "-g", "install", CLAUDE_NPM_PACKAGE],
            lambda: _touch_exe(self.node_bin / "claude"),
        )
        r.reply(["pipx", "install", "--force", f"git+{REPO_URL}"])
        r.on_success(
            ["pipx", "install", "--force", f"git+{REPO_URL}"],
            lambda: _touch_exe(self.local_bin / "SuperClaude"),
        )
        r.reply(["SuperClaude", "install"])
        r.reply(["claude", "mcp", "add"])
        r.reply(["claude", "mcp", "list"])

    def _drop_node(self) -> None:
        for name in ("node", "npm", "npx"):
            _touch_exe(self.node_bin / name)

    def run(self, *, dry_run: bool = False) -> ProvisionResult:
        return ProvisionService(self.ctx).run(dry_run=dry_run)


def test_fresh_machine_with_node_fallback(tmp_path: Path) -> None:
    host = Host(tmp_path)
    host.script_fresh_machine()
    (host.home / ".zshrc").write_text("alias claude='npx claude'\nexport A=1\n", encoding="utf-8")

    result = host.run()
    report = result.report

    assert report.exit_code == ErrorCode.OK
    assert report.outcome_of("node") == Outcome.APPLIED
    assert report.outcome_of("uv") == Outcome.DEGRADED
    assert report.outcome_of("claude") == Outcome.APPLIED
    assert report.outcome_of("register-mcp") == Outcome.APPLIED
    assert "Node fell back from 22 to 20" in report.summary_line()
    assert "degraded: uv" in report.summary_line()
    assert "serena skipped: missing capability uvx" in report.warnings

    assert (host.home / ".zshrc").read_text(encoding="utf-8") == "export A=1\n"
    shim = host.local_bin / "claude"
    assert shim.is_symlink()
    assert shim.resolve() == (host.node_bin / "claude").resolve()
    assert "uvx not on PATH" in result.status
    assert host.console.outputs[-1].message == "Re-run `envup up` anytime to stay updated."


def test_registrations_are_made_from_home(tmp_path: Path) -> None:
    host = Host(tmp_path)
    host.script_fresh_machine()

    host.run()

    adds = [c for c in host.runner.calls if c.argv[:3] == ("claude", "mcp", "add")]
    assert len(adds) == 5
    assert all(c.cwd == host.home for c in adds)
    assert all(str(host.home) in c.argv for c in adds)


def test_second_run_changes_nothing(tmp_path: Path) -> None:
    host = Host(tmp_path, replace(EnvupConfig(), persist_path=True))
    host.script_fresh_machine()
    (host.home / ".bashrc").write_text("alias claude=x\n", encoding="utf-8")
    first = host.run()
    profile = host.home / ".bash_profile"
    profile_after_first = profile.read_text(encoding="utf-8")
    shim_content = (host.local_bin / "realpath").read_bytes()
    host.console.clear()

    second = host.run()
    report = second.report

    assert report.exit_code == ErrorCode.OK
    for name in ("user-bins", "realpath", "node", "scrub-aliases"):
        assert report.outcome_of(name) == Outcome.SKIPPED
    assert len(list(host.home.glob(".bashrc.bak.*"))) == 1
    assert (host.local_bin / "realpath").read_bytes() == shim_content
    assert not any(m.startswith("info: linked") for m in host.console.messages)

    lines = [line for line in profile.read_text(encoding="utf-8").splitlines() if line]
    assert lines and len(lines) == len(set(lines))
    assert profile.read_text(encoding="utf-8") == profile_after_first
    entries = host.paths.entries
    assert len(entries) == len(set(entries))
    assert second.status == first.status


def test_unreadable_profile_degrades_path_persistence(tmp_path: Path) -> None:
    host = Host(tmp_path, replace(EnvupConfig(), persist_path=True))
    host.script_fresh_machine()
    (host.home / ".bash_profile").mkdir()

    report = host.run().report

    assert report.exit_code == ErrorCode.OK
    assert report.outcome_of("user-bins") == Outcome.DEGRADED
    assert report.outcome_of("pipx") == Outcome.APPLIED
    assert any(
        m.startswith("warning: user-bins: could not persist PATH") for m in host.console.messages
    )


def test_both_node_majors_failing_halts_the_run(tmp_path: Path) -> None:
    host = Host(tmp_path)
    host.script_fresh_machine()
    host.runner.reply(host.nvm("install", "20"), (1, ""))

    result = host.run()
    report = result.report

    assert report.exit_code == ErrorCode.ENV_ERROR
    assert report.outcome_of("node") == Outcome.FAILED
    assert report.outcome_of("claude") == Outcome.NOT_RUN
    assert report.outcome_of("register-mcp") == Outcome.NOT_RUN
    assert report.summary_line() == (
        "failed at step 'node': could not install Node 22 and 20 with nvm"
    )
    assert not host.runner.called("npm")
    assert "hint: nvm install 20 && nvm alias default 20" in host.console.messages


def test_dry_run_changes_nothing(tmp_path: Path) -> None:
    host = Host(tmp_path)
    host.script_fresh_machine()
    (host.home / ".zshrc").write_text("alias claude=x\n", encoding="utf-8")

    report = host.run(dry_run=True).report

    assert report.outcome_of("node") == Outcome.PLANNED
    assert not any(c.live for c in host.runner.calls)
    assert not host.local_bin.exists()
    assert (host.home / ".zshrc").read_text(encoding="utf-8") == "alias claude=x\n"


def test_project_scope_purges_before_registering(tmp_path: Path) -> None:
    config = replace(
        EnvupConfig(), mcp_scope=Scope.PROJECT, purge_project=True, assume_yes=True
    )
    host = Host(tmp_path, config)
    host.script_fresh_machine()
    stale = host.cwd / ".mcp.json"
    stale.write_text('{"mcpServers": {"old": {}}}', encoding="utf-8")

    report = host.run().report

    assert report.outcome_of("purge-project") == Outcome.APPLIED
    assert not stale.exists()
    assert len(list(host.cwd.glob(".mcp.json.bak.*"))) == 1
    adds = [c for c in host.runner.calls if c.argv[:3] == ("claude", "mcp", "add")]
    assert adds and all(c.cwd == host.cwd for c in adds)
    assert all(c.argv[3:5] == ("--scope", "project") for c in adds)


def test_unconfirmed_purge_leaves_file_and_warns(tmp_path: Path) -> None:
    host = Host(tmp_path, replace(EnvupConfig(), purge_project=True))
    host.script_fresh_machine()
    stale = host.cwd / ".mcp.json"
    stale.write_text("{}", encoding="utf-8")

    report = host.run().report

    assert report.exit_code == ErrorCode.OK
    assert stale.exists()
    assert f"{stale} left in place" in report.warnings
