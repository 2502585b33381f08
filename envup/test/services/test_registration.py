"""Tests for envup.services.catalog and envup.services.registration."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from envup.core.config import Scope
from envup.core.result import Err, Ok
from envup.output.console import MockConsole
from envup.platform.detection import Platform
from envup.platform.path_registry import PathRegistry
from envup.platform.process import MockRunner
from envup.services.catalog import (
    LaunchMechanism,
    LaunchSpec,
    RegistryEntry,
    default_catalog,
    render_launch,
)
from envup.services.project_config import project_config_path, user_config_path
from envup.services.registration import (
    EntryStatus,
    RegistrationManager,
    RegistryClient,
)
from envup.tools.definitions import ToolSet, build_tools
from envup.tools.probe import CapabilityProbe

HOME = Path("/home/user")


def _install(bin_dir: Path, *names: str) -> None:
    bin_dir.mkdir(parents=True, exist_ok=True)
    for name in names:
        exe = bin_dir / name
        exe.write_text("#!/bin/sh\n", encoding="utf-8")
        exe.chmod(0o755)


@pytest.fixture
def tools(tmp_path: Path) -> ToolSet:
    return build_tools(tmp_path / ".nvm", Platform.LINUX)


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bin"
    _install(path, "npm", "claude")
    return path


def _write_servers(path: Path, *names: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    servers = {name: {"command": "npm"} for name in names}
    path.write_text(json.dumps({"mcpServers": servers}), encoding="utf-8")


def _manager(
    runner: MockRunner,
    bin_dir: Path,
    console: MockConsole,
    *,
    project_dir: Path,
    home: Path = HOME,
    environ: dict[str, str] | None = None,
) -> RegistrationManager:
    probe = CapabilityProbe(paths=PathRegistry([str(bin_dir)]), runner=runner, cwd=HOME)
    return RegistrationManager(
        client=RegistryClient(runner=runner),
        probe=probe,
        console=console,
        home=home,
        project_dir=project_dir,
        environ=environ or {},
    )


NPM_HOME = ("npm", "exec", "--yes", "--prefix", "/home/user", "--")

GOLDEN_LAUNCH: dict[str, tuple[str, ...]] = {
    "sequential-thinking": (*NPM_HOME, "@modelcontextprotocol/server-sequential-thinking"),
    "context7": (*NPM_HOME, "@upstash/context7-mcp"),
    "magic": (*NPM_HOME, "@21st-dev/magic"),
    "playwright": (*NPM_HOME, "@playwright/mcp@latest"),
    "morphllm-fast-apply": (*NPM_HOME, "@morph-llm/morph-fast-apply"),
    "serena": (
        *("uvx", "--directory", "/home/user"),
        *("--from", "git+https://github.com/oraios/serena"),
        *("serena", "start-mcp-server", "--context", "ide-assistant"),
    ),
}


def test_golden_table_covers_catalog(tools: ToolSet) -> None:
    assert [e.name for e in default_catalog(HOME, tools)] == list(GOLDEN_LAUNCH)


@pytest.mark.parametrize("name", list(GOLDEN_LAUNCH))
def test_golden_launch_argv(tools: ToolSet, name: str) -> None:
    entry = next(e for e in default_catalog(HOME, tools) if e.name == name)
    assert render_launch(entry) == GOLDEN_LAUNCH[name]


@pytest.mark.parametrize("name", list(GOLDEN_LAUNCH))
@pytest.mark.parametrize("scope", list(Scope))
def test_golden_add_argv(tools: ToolSet, bin_dir: Path, name: str, scope: Scope) -> None:
    manager = _manager(MockRunner(), bin_dir, MockConsole(), project_dir=HOME / "proj")
    entry = next(e for e in default_catalog(HOME, tools) if e.name == name)
    expected = ("claude", "mcp", "add", "--scope", str(scope), name, "--", *GOLDEN_LAUNCH[name])
    assert manager.command_for(entry, scope) == expected


class TestRenderLaunch:
    def test_npm_exec(self, tools: ToolSet) -> None:
        entries = {e.name: e for e in default_catalog(HOME, tools)}
        assert render_launch(entries["context7"]) == (
            "npm",
            "exec",
            "--yes",
            "--prefix",
            "/home/user",
            "--",
            "@upstash/context7-mcp",
        )

    def test_uvx_has_no_separator(self, tools: ToolSet) -> None:
        entries = {e.name: e for e in default_catalog(HOME, tools)}
        assert render_launch(entries["serena"]) == (
            "uvx",
            "--directory",
            "/home/user",
            "--from",
            "git+https://github.com/oraios/serena",
            "serena",
            "start-mcp-server",
            "--context",
            "ide-assistant",
        )

    def test_without_working_directory(self) -> None:
        entry = RegistryEntry("x", LaunchSpec(LaunchMechanism.NPM_EXEC, "pkg", args=("--flag",)))
        assert render_launch(entry) == ("npm", "exec", "--yes", "--", "pkg", "--flag")

    def test_catalog_names_are_unique(self, tools: ToolSet) -> None:
        names = [e.name for e in default_catalog(HOME, tools)]
        assert len(names) == len(set(names))
        assert "serena" in names and "sequential-thinking" in names

    def test_every_entry_pinned_to_home(self, tools: ToolSet) -> None:
        assert all(e.working_directory == HOME for e in default_catalog(HOME, tools))


class TestRegistryClient:
    def test_add_command(self) -> None:
        client = RegistryClient(runner=MockRunner())
        argv = client.add_command("magic", Scope.USER, ("npm", "exec"), {"K": "v"})
        assert argv == (
            *("claude", "mcp", "add", "--scope", "user"),
            *("-e", "K=v"),
            *("magic", "--", "npm", "exec"),
        )

    def test_list_drops_blank_lines(self, tmp_path: Path) -> None:
        runner = MockRunner().reply(["claude", "mcp", "list"], (0, "a: x\n\n  \nb: y\n"))
        result = RegistryClient(runner=runner).list(cwd=tmp_path)
        assert result == Ok(["a: x", "b: y"])


class TestRegistrationManager:
    def test_command_is_identical_from_any_directory(
        self, tools: ToolSet, bin_dir: Path
    ) -> None:
        entries = default_catalog(HOME, tools)
        at_home = _manager(MockRunner(), bin_dir, MockConsole(), project_dir=HOME)
        nested = _manager(
            MockRunner(),
            bin_dir,
            MockConsole(),
            project_dir=HOME / "monorepo" / "packages" / "app",
        )

        for entry in entries:
            for scope in Scope:
                assert at_home.command_for(entry, scope) == nested.command_for(entry, scope)

    def test_registration_cwd_follows_scope(self, bin_dir: Path, tmp_path: Path) -> None:
        manager = _manager(MockRunner(), bin_dir, MockConsole(), project_dir=tmp_path)
        assert manager.registration_cwd(Scope.USER) == HOME
        assert manager.registration_cwd(Scope.PROJECT) == tmp_path

    def test_registers_and_skips_missing_capability(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        runner = MockRunner().reply(["claude", "mcp", "add"])
        console = MockConsole()
        manager = _manager(runner, bin_dir, console, project_dir=tmp_path)

        report = manager.register_all(default_catalog(HOME, tools), Scope.USER)

        serena = report.outcome("serena")
        assert serena is not None and serena.status == EntryStatus.SKIPPED
        assert report.skipped == ["serena"]
        assert "serena skipped: missing capability uvx" in report.warnings
        assert "context7" in report.registered
        assert report.failed == []
        assert report.summary() == "5 registered, 1 skipped, 0 failed"
        assert "OK context7 registered (user scope)" in console.messages
        assert all(c.cwd == HOME for c in runner.calls if c.argv[:3] == ("claude", "mcp", "add"))

    def test_existing_entry_is_replaced(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        _write_servers(project_config_path(tmp_path), "context7")
        runner = MockRunner().reply(["claude", "mcp", "remove"]).reply(["claude", "mcp", "add"])
        manager = _manager(runner, bin_dir, MockConsole(), project_dir=tmp_path)
        entry = next(e for e in default_catalog(HOME, tools) if e.name == "context7")

        report = manager.register_all([entry], Scope.PROJECT)

        assert report.registered == ["context7"]
        assert runner.argvs()[-2] == ("claude", "mcp", "remove", "--scope", "project", "context7")
        assert runner.argvs()[-1][:3] == ("claude", "mcp", "add")
        assert runner.calls[-1].cwd == tmp_path

    def test_user_scope_entry_is_replaced_in_user_scope(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        home = tmp_path / "home"
        _write_servers(user_config_path(home), "playwright")
        runner = MockRunner().reply(["claude", "mcp", "remove"]).reply(["claude", "mcp", "add"])
        manager = _manager(runner, bin_dir, MockConsole(), project_dir=tmp_path, home=home)
        entry = next(e for e in default_catalog(HOME, tools) if e.name == "playwright")

        report = manager.register_all([entry], Scope.USER)

        assert report.registered == ["playwright"]
        assert runner.called("claude", "mcp", "remove", "--scope", "user", "playwright")
        assert runner.calls[0].cwd == home

    def test_project_scope_after_user_scope_adds_without_removing(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        home = tmp_path / "home"
        project = tmp_path / "project"
        project.mkdir()
        catalog = default_catalog(HOME, tools)
        _write_servers(user_config_path(home), *(e.name for e in catalog))
        runner = (
            MockRunner()
            .reply(["claude", "mcp", "get"])
            .reply(["claude", "mcp", "remove", "--scope", "project"], (1, ""))
            .reply(["claude", "mcp", "add"])
        )
        manager = _manager(runner, bin_dir, MockConsole(), project_dir=project, home=home)

        report = manager.register_all(catalog, Scope.PROJECT)

        assert report.failed == []
        assert report.registered == [e.name for e in catalog if e.name != "serena"]
        assert not runner.called("claude", "mcp", "remove")
        adds = [c for c in runner.calls if c.argv[:3] == ("claude", "mcp", "add")]
        assert all(c.argv[3:5] == ("--scope", "project") and c.cwd == project for c in adds)

    def test_failed_remove_fails_entry(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        _write_servers(project_config_path(tmp_path), "playwright")
        runner = (
            MockRunner()
            .reply(["claude", "mcp", "remove"], (1, ""))
            .reply(["claude", "mcp", "add"])
        )
        manager = _manager(runner, bin_dir, MockConsole(), project_dir=tmp_path)
        entry = next(e for e in default_catalog(HOME, tools) if e.name == "playwright")

        report = manager.register_all([entry], Scope.PROJECT)

        assert report.failed == ["playwright"]
        outcome = report.outcome("playwright")
        assert outcome is not None
        assert outcome.reason.startswith("could not replace existing entry")
        assert not runner.called("claude", "mcp", "add")

    def test_unreadable_scope_document_fails_entries(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        project_config_path(tmp_path).write_text("{broken", encoding="utf-8")
        runner = MockRunner().reply(["claude", "mcp", "add"])
        manager = _manager(runner, bin_dir, MockConsole(), project_dir=tmp_path)

        report = manager.register_all(default_catalog(HOME, tools), Scope.PROJECT)

        assert len(report.failed) == 5
        assert report.skipped == ["serena"]
        assert not runner.called("claude", "mcp", "add")

    def test_failed_add_does_not_stop_batch(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        runner = (
            MockRunner()
            .reply(["claude", "mcp", "add"])
            .reply(["claude", "mcp", "add", "--scope", "user", "magic"], (1, ""))
        )
        console = MockConsole()
        manager = _manager(runner, bin_dir, console, project_dir=tmp_path)

        report = manager.register_all(default_catalog(HOME, tools), Scope.USER)

        assert report.failed == ["magic"]
        assert "playwright" in report.registered
        assert "error: magic: failed (scripted failure)" in console.messages
        assert console.has_error()

    def test_api_key_forwarded_but_never_printed(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        runner = MockRunner().reply(["claude", "mcp", "add"])
        console = MockConsole()
        manager = _manager(
            runner,
            bin_dir,
            console,
            project_dir=tmp_path,
            environ={"TWENTYFIRST_API_KEY": "secret-123"},
        )
        entry = next(e for e in default_catalog(HOME, tools) if e.name == "magic")

        report = manager.register_all([entry], Scope.USER)

        assert "-e" in runner.argvs()[-1]
        assert "TWENTYFIRST_API_KEY=secret-123" in runner.argvs()[-1]
        assert "secret-123" not in console.text
        assert "TWENTYFIRST_API_KEY=***" in console.text
        outcome = report.outcome("magic")
        assert outcome is not None
        assert "secret-123" not in " ".join(outcome.command)

    def test_missing_api_key_is_a_warning(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        runner = MockRunner().reply(["claude", "mcp", "add"])
        manager = _manager(runner, bin_dir, MockConsole(), project_dir=tmp_path)
        entry = next(e for e in default_catalog(HOME, tools) if e.name == "morphllm-fast-apply")

        report = manager.register_all([entry], Scope.USER)

        assert report.registered == ["morphllm-fast-apply"]
        assert report.warnings == [
            "morphllm-fast-apply: MORPH_API_KEY is not set; registered without it"
        ]
        assert "-e" not in runner.argvs()[-1]

    def test_unreachable_client_fails_every_entry(
        self, tools: ToolSet, bin_dir: Path, tmp_path: Path
    ) -> None:
        manager = _manager(MockRunner(), bin_dir, MockConsole(), project_dir=tmp_path)

        report = manager.register_all(default_catalog(HOME, tools), Scope.USER)

        assert len(report.failed) == 5
        assert isinstance(RegistryClient(runner=MockRunner()).list(cwd=tmp_path), Err)
