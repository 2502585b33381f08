"""Status command - where each managed tool resolves, and its version."""

from __future__ import annotations

from envup.cli.context import build_context
from envup.services.registration import RegistryClient
from envup.services.status import StatusReporter


def status() -> None:
    """Show the managed tools: `name: version @ path` or `name not on PATH`."""
    ctx = build_context()
    reporter = StatusReporter(
        probe=ctx.probe,
        client=RegistryClient(runner=ctx.runner),
        console=ctx.console,
    )
    reporter.render(ctx.tools.status_tools())
