from __future__ import annotations

import typer

from envup import __version__
from envup.cli.commands.mcp import mcp_app
from envup.cli.commands.scrub import scrub
from envup.cli.commands.status import status
from envup.cli.commands.up import up

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Idempotent bootstrap for the Claude CLI, SuperClaude and their MCP servers.",
)


# Commands
app.command()(up)
app.command()(status)
app.command()(scrub)

# Sub-apps
app.add_typer(mcp_app, name="mcp")


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)


def main() -> None:
    app()
