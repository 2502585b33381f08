from __future__ import annotations

import typer

from envup.cli.context import build_context
from envup.core.errors import ErrorCode
from envup.output.console import Style
from envup.platform.paths import startup_files
from envup.services.scrubber import AliasMatcher, ConfigScrubber


def scrub(
    name: str = typer.Option("claude", "--name", help="Command whose aliases are removed"),
) -> None:
    """Remove stale `alias <name>=...` lines from shell startup files.

    Each modified file is backed up first; files without a match are not
    touched.
    """
    ctx = build_context()
    matcher = AliasMatcher(name)
    try:
        report = ConfigScrubber().scrub(startup_files(ctx.home), matcher)
    except OSError as e:
        ctx.console.error(f"scrub failed: {e}")
        raise typer.Exit(code=int(ErrorCode.IO_ERROR))

    if report.count == 0:
        ctx.console.success(f"no {matcher.describe()} lines found")
        return
    for path, backup in zip(report.modified, report.backups, strict=True):
        ctx.console.print(f"{path} (backup: {backup})", Style.DIM)
    ctx.console.success(
        f"removed {report.removed_lines} line(s) from {report.count} file(s)"
    )
