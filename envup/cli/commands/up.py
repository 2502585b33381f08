from __future__ import annotations

from dataclasses import replace

import typer

from envup.cli.commands._helpers import exit_with_code
from envup.cli.context import build_context, interactive_confirm
from envup.core.config import ClaudeInstallMethod, EnvupConfig, Scope, Source
from envup.core.errors import ErrorCode
from envup.services.provision import ProvisionService


def _apply_options(config: EnvupConfig, **options: object) -> EnvupConfig:
    """Overlay CLI options that were given on top of the loaded config."""
    given = {name: value for name, value in options.items() if value is not None}
    return replace(config, **given)  # pyright: ignore[reportArgumentType]


def up(
    yes: bool | None = typer.Option(
        None, "--yes/--no-yes", "-y", help="Auto-confirm (do not prompt)"
    ),
    persist_path: bool | None = typer.Option(
        None, "--persist-path/--no-persist-path", help="Write PATH fixes to your shell profile"
    ),
    skip_node: bool | None = typer.Option(
        None, "--skip-node/--manage-node", help="Don't manage Node/nvm"
    ),
    source: Source | None = typer.Option(
        None, "--source", help="Where to install SuperClaude from (git | registry)"
    ),
    node_major: int | None = typer.Option(
        None, "--node-major", min=1, help="Preferred Node major version"
    ),
    node_fallback_major: int | None = typer.Option(
        None, "--node-fallback-major", min=1, help="Node major used if the preferred one fails"
    ),
    claude_install: ClaudeInstallMethod | None = typer.Option(
        None, "--claude-install", help="How to install the Claude CLI (auto | npm | brew)"
    ),
    skip_wizard: bool | None = typer.Option(
        None, "--skip-wizard/--run-wizard", help="Skip the `SuperClaude install` wizard"
    ),
    mcp: bool | None = typer.Option(None, "--mcp/--no-mcp", help="Register MCP servers"),
    scope: Scope | None = typer.Option(
        None, "--scope", help="MCP registration scope (user | project)"
    ),
    validate: bool | None = typer.Option(
        None,
        "--validate/--no-validate",
        help="Compare registrations in $HOME and the current directory",
    ),
    purge_project: bool | None = typer.Option(
        None, "--purge-project/--no-purge-project", help="Move the project .mcp.json to a backup"
    ),
    repair_project: bool | None = typer.Option(
        None,
        "--repair-project/--no-repair-project",
        help="Copy missing user servers into the project .mcp.json",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be done"),
) -> None:
    """Provision the toolchain, SuperClaude and its MCP servers.

    Safe to re-run anytime: every step checks the current state first and
    only does the work that is missing.
    """
    ctx = build_context()
    config = _apply_options(
        ctx.config,
        assume_yes=yes,
        persist_path=persist_path,
        skip_node=skip_node,
        source=source,
        node_major=node_major,
        node_fallback_major=node_fallback_major,
        claude_install=claude_install,
        skip_wizard=skip_wizard,
        register_mcp=mcp,
        mcp_scope=scope,
        validate_locations=validate,
        purge_project=purge_project,
        repair_project=repair_project,
    )

    service = ProvisionService(ctx.provision(config, confirm=interactive_confirm()))
    result = service.run(dry_run=dry_run)

    code = result.report.exit_code
    if code != ErrorCode.OK:
        exit_with_code(int(code))
