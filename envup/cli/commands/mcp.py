"""MCP registration commands: register, diff, repair, purge."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from envup.cli.commands._helpers import exit_on_error
from envup.cli.context import CLIContext, build_context, interactive_confirm
from envup.core.config import Scope
from envup.core.errors import ErrorCode
from envup.output.console import Style
from envup.services.catalog import default_catalog
from envup.services.project_config import (
    project_config_path,
    purge as purge_documents,
    repair_merge,
    user_config_path,
)
from envup.services.registration import RegistrationManager, RegistryClient
from envup.services.status import StatusReporter

_console = Console(highlight=False)

mcp_app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Register and inspect MCP servers.",
)


def _require_claude(ctx: CLIContext) -> None:
    if not ctx.probe.is_present(ctx.tools.claude):
        ctx.console.error("Claude CLI not found")
        ctx.console.print(f"hint: {ctx.tools.claude.hint}", Style.DIM)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))


def _directory(path: Path | None, default: Path, ctx: CLIContext) -> Path:
    if path is None:
        return default
    resolved = path.expanduser().resolve()
    if not resolved.is_dir():
        ctx.console.error(f"not a directory: {path}")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    return resolved


@mcp_app.command("register")
def register(
    scope: Scope | None = typer.Option(None, "--scope", help="user | project"),
) -> None:
    """Register the MCP server catalog with the Claude CLI."""
    ctx = build_context()
    _require_claude(ctx)
    manager = RegistrationManager(
        client=RegistryClient(runner=ctx.runner),
        probe=ctx.probe,
        console=ctx.console,
        home=ctx.home,
        project_dir=ctx.cwd,
        environ=ctx.environ,
    )
    report = manager.register_all(
        default_catalog(ctx.home, ctx.tools), scope or ctx.config.mcp_scope
    )
    for w in report.warnings:
        ctx.console.warning(w)
    if report.failed:
        ctx.console.error(report.summary())
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))
    ctx.console.success(report.summary())


@mcp_app.command("diff")
def diff(
    location_a: Path | None = typer.Argument(None, help="First directory (default: $HOME)"),
    location_b: Path | None = typer.Argument(None, help="Second directory (default: cwd)"),
) -> None:
    """Compare the servers the Claude CLI sees from two directories."""
    ctx = build_context()
    _require_claude(ctx)
    a = _directory(location_a, ctx.home, ctx)
    b = _directory(location_b, ctx.cwd, ctx)

    reporter = StatusReporter(
        probe=ctx.probe, client=RegistryClient(runner=ctx.runner), console=ctx.console
    )
    result = exit_on_error(reporter.diff_registrations(a, b), ctx.console, ErrorCode.ENV_ERROR)

    if not result.drifted:
        ctx.console.success(f"same registrations from {a} and {b}")
        return

    table = Table(title="Registrations that differ", title_justify="left")
    table.add_column("server", style="bold")
    table.add_column(str(a))
    table.add_column(str(b))
    for name in result.only_a:
        table.add_row(name, "[green]yes[/green]", "[red]no[/red]")
    for name in result.only_b:
        table.add_row(name, "[red]no[/red]", "[green]yes[/green]")
    _console.print(table)

    for name in result.only_a:
        ctx.console.warning(f"{name} visible only from {a}")
    for name in result.only_b:
        ctx.console.warning(f"{name} visible only from {b}")
    ctx.console.print(
        "hint: register with --scope user or run `envup mcp repair`", Style.DIM
    )


@mcp_app.command("repair")
def repair(
    project: Path | None = typer.Option(None, "--project", help="Project directory (default: cwd)"),
) -> None:
    """Copy user-scope servers missing from the project's .mcp.json into it."""
    ctx = build_context()
    project_dir = _directory(project, ctx.cwd, ctx)
    report = exit_on_error(
        repair_merge(user_config_path(ctx.home), project_config_path(project_dir)),
        ctx.console,
    )
    if report.note:
        ctx.console.info(report.note)
        return
    for name in report.kept:
        ctx.console.print(f"kept project definition of {name}", Style.DIM)
    if report.written:
        ctx.console.success(f"added {', '.join(report.added)} to {report.path}")
    else:
        ctx.console.success(f"{report.path} already has every user server")


@mcp_app.command("purge")
def purge(
    project: Path | None = typer.Option(None, "--project", help="Project directory (default: cwd)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Move the project's .mcp.json to a timestamped backup (never deletes)."""
    ctx = build_context()
    project_dir = _directory(project, ctx.cwd, ctx)
    path = project_config_path(project_dir)
    report = exit_on_error(
        purge_documents(
            [path],
            confirm=interactive_confirm(),
            assume_yes=yes or ctx.config.assume_yes,
        ),
        ctx.console,
    )
    if report.moved:
        for original, backup in report.moved:
            ctx.console.success(f"moved {original} -> {backup}")
    elif report.declined:
        ctx.console.warning(f"{path} left in place (not confirmed; use --yes)")
    else:
        ctx.console.info(f"no {path.name} in {project_dir}")
