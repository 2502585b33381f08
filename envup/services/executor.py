"""Step executor: runs an ordered list of idempotent provisioning steps.

Each step is (name, precondition, action, postcondition, fatal):

- precondition satisfied -> `skipped`, the action never runs
- otherwise the action runs, then the postcondition is re-checked
- postcondition satisfied -> `applied`
- still unsatisfied and fatal -> `failed`, the run halts; later steps are
  recorded as `not run`
- still unsatisfied and not fatal -> `degraded`, the run continues

Actions return a Result instead of raising, so a failing package manager
and a failing file write look the same to the executor. The decision is
always taken on the postcondition, never on the action's exit status.
Ordering is the only dependency mechanism: a step that needs something an
earlier step provides must check for it itself.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from envup.core.errors import ErrorCode
from envup.core.result import Err, Ok, Result
from envup.output.console import ConsoleProtocol, Style

__all__ = [
    "ActionOutcome",
    "ActionResult",
    "Outcome",
    "ProvisioningStep",
    "RunReport",
    "StepError",
    "StepExecutor",
    "StepRecord",
]


@dataclass(frozen=True, slots=True)
class StepError:
    """Why an action could not complete, plus the manual remedy."""

    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class ActionOutcome:
    """What a successful action wants reported."""

    detail: str | None = None
    warnings: tuple[str, ...] = ()


type ActionResult = Result[ActionOutcome, StepError]


class Outcome(Enum):
    SKIPPED = "skipped"
    APPLIED = "applied"
    DEGRADED = "degraded"
    FAILED = "failed"
    PLANNED = "planned"
    NOT_RUN = "not run"

    def __str__(self) -> str:
        return self.value


def _no_names() -> tuple[str, ...]:
    return ()


@dataclass(frozen=True, slots=True)
class ProvisioningStep:
    """One idempotent unit of provisioning work.

    Attributes:
        name: Short identifier shown in the report
        check: Precondition; True means already satisfied
        action: Corrective work; must be safe to re-run after a partial run
        verify: Postcondition (defaults to check)
        fatal: Whether an unsatisfied postcondition halts the run
        needs: Names of what this step reads from earlier steps (documentation)
        provides: Names of what this step leaves for later steps (documentation)
    """

    name: str
    check: Callable[[], bool]
    action: Callable[[], ActionResult]
    verify: Callable[[], bool] | None = None
    fatal: bool = False
    description: str = ""
    needs: tuple[str, ...] = field(default_factory=_no_names)
    provides: tuple[str, ...] = field(default_factory=_no_names)

    def postcondition(self) -> bool:
        return (self.verify or self.check)()


@dataclass(frozen=True, slots=True)
class StepRecord:
    name: str
    outcome: Outcome
    message: str = ""
    hint: str | None = None
    warnings: tuple[str, ...] = ()
    fatal: bool = False


def _empty_records() -> list[StepRecord]:
    return []


@dataclass
class RunReport:
    """Per-step outcomes of one executor run."""

    records: list[StepRecord] = field(default_factory=_empty_records)

    @property
    def failed_step(self) -> StepRecord | None:
        for r in self.records:
            if r.outcome == Outcome.FAILED:
                return r
        return None

    @property
    def halted(self) -> bool:
        return self.failed_step is not None

    @property
    def degraded_steps(self) -> list[StepRecord]:
        return [r for r in self.records if r.outcome == Outcome.DEGRADED]

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_steps) or bool(self.warnings)

    @property
    def warnings(self) -> list[str]:
        return [w for r in self.records for w in r.warnings]

    def outcome_of(self, name: str) -> Outcome | None:
        for r in self.records:
            if r.name == name:
                return r.outcome
        return None

    def executed(self) -> list[str]:
        """Names of steps whose action ran."""
        return [
            r.name
            for r in self.records
            if r.outcome in (Outcome.APPLIED, Outcome.DEGRADED, Outcome.FAILED)
        ]

    @property
    def exit_code(self) -> ErrorCode:
        return ErrorCode.ENV_ERROR if self.halted else ErrorCode.OK

    def summary_line(self) -> str:
        failed = self.failed_step
        if failed is not None:
            return f"failed at step '{failed.name}': {failed.message}"
        degraded = [r.name for r in self.degraded_steps]
        warnings = self.warnings
        if degraded or warnings:
            parts: list[str] = []
            if degraded:
                parts.append(f"degraded: {', '.join(degraded)}")
            parts.extend(warnings)
            return "completed with warnings; " + "; ".join(parts)
        return "completed"


class StepExecutor:
    """Runs steps strictly in declaration order, one at a time."""

    def __init__(self, *, console: ConsoleProtocol, dry_run: bool = False) -> None:
        self._console = console
        self._dry_run = dry_run

    def run(self, steps: Sequence[ProvisioningStep]) -> RunReport:
        report = RunReport()
        for index, step in enumerate(steps):
            record = self._run_step(step)
            report.records.append(record)
            if record.outcome == Outcome.FAILED:
                for rest in steps[index + 1 :]:
                    report.records.append(StepRecord(rest.name, Outcome.NOT_RUN, fatal=rest.fatal))
                break
        return report

    def _run_step(self, step: ProvisioningStep) -> StepRecord:
        if step.check():
            self._console.print(f"{step.name}: already satisfied", Style.DIM)
            return StepRecord(step.name, Outcome.SKIPPED, fatal=step.fatal)

        if self._dry_run:
            self._console.print(f"{step.name}: would run {step.description}".rstrip(), Style.INFO)
            return StepRecord(step.name, Outcome.PLANNED, fatal=step.fatal)

        self._console.header(step.name)
        result = step.action()

        warnings: tuple[str, ...] = ()
        detail = ""
        error: StepError | None = None
        match result:
            case Ok(outcome):
                warnings = outcome.warnings
                detail = outcome.detail or ""
            case Err(e):
                error = e

        for w in warnings:
            self._console.warning(w)

        if step.postcondition():
            if error is not None:
                self._console.warning(f"{step.name}: {error.message} (state is correct anyway)")
            self._console.success(detail or step.name)
            return StepRecord(
                step.name, Outcome.APPLIED, detail, warnings=warnings, fatal=step.fatal
            )

        if error is not None:
            message = error.message
        else:
            message = detail or "postcondition not satisfied"
        hint = error.hint if error is not None else None
        if step.fatal:
            self._console.error(f"{step.name}: {message}")
            if hint:
                self._console.print(f"hint: {hint}", Style.DIM)
            return StepRecord(step.name, Outcome.FAILED, message, hint, warnings, fatal=True)

        self._console.warning(f"{step.name}: {message}")
        if hint:
            self._console.print(f"hint: {hint}", Style.DIM)
        return StepRecord(step.name, Outcome.DEGRADED, message, hint, warnings)
