"""Provisioning service: runs the pipeline, then reports final state."""

from __future__ import annotations

from dataclasses import dataclass

from envup.output.console import Style

from .executor import ProvisioningStep, RunReport, StepExecutor
from .status import StatusReporter
from .steps import PipelineSteps, ProvisionContext

__all__ = ["ProvisionResult", "ProvisionService"]


@dataclass(frozen=True, slots=True)
class ProvisionResult:
    report: RunReport
    status: list[str]


class ProvisionService:
    def __init__(self, ctx: ProvisionContext) -> None:
        self._ctx = ctx

    def steps(self) -> list[ProvisioningStep]:
        return PipelineSteps(self._ctx).ordered()

    def reporter(self) -> StatusReporter:
        ctx = self._ctx
        return StatusReporter(probe=ctx.probe, client=ctx.registry_client(), console=ctx.console)

    def run(self, *, dry_run: bool = False) -> ProvisionResult:
        """Run every step, render the status summary and the outcome line.

        The exit code is `report.exit_code`: non-zero only when a fatal
        step failed. A dry run evaluates preconditions and runs nothing.
        """
        ctx = self._ctx
        ctx.console.header(f"envup ({ctx.platform})")
        report = StepExecutor(console=ctx.console, dry_run=dry_run).run(self.steps())

        statuses = self.reporter().render(ctx.tools.status_tools())
        ctx.console.newline()

        line = report.summary_line()
        failed = report.failed_step
        if failed is not None:
            ctx.console.error(line)
            if failed.hint:
                ctx.console.print(f"hint: {failed.hint}", Style.DIM)
        elif report.is_degraded:
            ctx.console.warning(line)
        else:
            ctx.console.success(line)

        if not dry_run and failed is None:
            ctx.console.print("Re-run `envup up` anytime to stay updated.", Style.DIM)
        return ProvisionResult(report, [s.line() for s in statuses])
