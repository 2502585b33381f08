"""Subprocess execution with Result-based error handling.

Every external tool (package managers, installers, the registry client) is
invoked through a `CommandRunner`. Non-zero exits, missing executables and
timeouts all come back as `Err(ProcessError)`; nothing here raises for an
ordinary command failure.

Usage:
    runner = SubprocessRunner(paths=registry)
    match runner.run(["pipx", "list", "--short"], cwd=home):
        case Ok(stdout):
            ...
        case Err(error):
            console.warning(str(error))
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from envup.core.result import Err, Ok, Result

if TYPE_CHECKING:
    from .path_registry import PathRegistry

__all__ = [
    "CommandRunner",
    "MockRunner",
    "ProcessError",
    "RecordedCall",
    "SubprocessRunner",
    "run",
    "run_silent",
]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        returncode: Exit code, or -1 if the process never ran / timed out.
        stdout: Standard output (may be empty).
        stderr: Standard error (contains error details).
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"

    @property
    def not_found(self) -> bool:
        return self.returncode == -1 and "not found" in self.stderr.lower()


def run(
    cmd: Sequence[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return stdout or error.

    Args:
        cmd: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Environment variables (uses current env if None).
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(stdout) on success, Err(ProcessError) on failure.
    """
    try:
        proc = subprocess.run(
            list(cmd),
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except FileNotFoundError:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=f"{cmd[0]}: command not found",
            )
        )
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )

    return Ok(proc.stdout)


def run_silent(
    cmd: Sequence[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[None, ProcessError]:
    """Execute a command with inherited stdio (installers, wizards).

    Output streams to the terminal; only the exit status is captured.
    """
    try:
        proc = subprocess.run(
            list(cmd),
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except FileNotFoundError:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=f"{cmd[0]}: command not found",
            )
        )
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    if proc.returncode != 0:
        return Err(
            ProcessError(command=tuple(cmd), returncode=proc.returncode, stdout="", stderr="")
        )
    return Ok(None)


class CommandRunner(Protocol):
    """Process layer used by probes, steps and the registry client.

    `run` captures output; `run_live` streams it (long installs, the
    interactive post-install wizard).
    """

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> Result[str, ProcessError]: ...

    def run_live(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> Result[None, ProcessError]: ...


class SubprocessRunner:
    """Default runner. Subprocesses see PATH from the path registry."""

    def __init__(
        self,
        *,
        paths: PathRegistry | None = None,
        timeout: float | None = None,
    ) -> None:
        self._paths = paths
        self._timeout = timeout

    def _env(self, env: Mapping[str, str] | None) -> Mapping[str, str] | None:
        if self._paths is None:
            return env
        return self._paths.environ(env)

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> Result[str, ProcessError]:
        return run(cmd, cwd, self._env(env), timeout=self._timeout)

    def run_live(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> Result[None, ProcessError]:
        return run_silent(cmd, cwd, self._env(env), timeout=self._timeout)


@dataclass(frozen=True, slots=True)
class RecordedCall:
    """One invocation seen by MockRunner."""

    argv: tuple[str, ...]
    cwd: Path
    env: Mapping[str, str] | None = None
    live: bool = False


Reply = tuple[int, str]


def _empty_replies() -> dict[tuple[str, ...], list[Reply]]:
    return {}


def _empty_effects() -> dict[tuple[str, ...], Callable[[], None]]:
    return {}


def _empty_calls() -> list[RecordedCall]:
    return []


@dataclass
class MockRunner:
    """Scripted runner for tests.

    Replies are keyed by argv prefix; the longest matching prefix wins.
    A key scripted with several replies returns them in order and then
    keeps repeating the last one. Unscripted commands behave like a
    missing executable. Effects (keyed the same way) run when a matching
    command succeeds, to simulate what an installer leaves on disk.
    """

    replies: dict[tuple[str, ...], list[Reply]] = field(default_factory=_empty_replies)
    effects: dict[tuple[str, ...], Callable[[], None]] = field(default_factory=_empty_effects)
    calls: list[RecordedCall] = field(default_factory=_empty_calls)

    def reply(self, prefix: Sequence[str], *replies: Reply) -> MockRunner:
        """Script replies for commands starting with prefix."""
        self.replies[tuple(prefix)] = list(replies) or [(0, "")]
        return self

    def on_success(self, prefix: Sequence[str], effect: Callable[[], None]) -> MockRunner:
        self.effects[tuple(prefix)] = effect
        return self

    def _match[V](self, table: Mapping[tuple[str, ...], V], argv: tuple[str, ...]) -> V | None:
        best: tuple[str, ...] | None = None
        for key in table:
            if argv[: len(key)] == key and (best is None or len(key) > len(best)):
                best = key
        return table[best] if best is not None else None

    def _next(self, argv: tuple[str, ...]) -> Reply | None:
        queue = self._match(self.replies, argv)
        if queue is None:
            return None
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    def _dispatch(self, argv: tuple[str, ...]) -> Result[str, ProcessError]:
        reply = self._next(argv)
        if reply is None:
            return Err(ProcessError(argv, -1, "", f"{argv[0]}: command not found"))
        code, stdout = reply
        if code != 0:
            return Err(ProcessError(argv, code, stdout, "scripted failure"))
        effect = self._match(self.effects, argv)
        if effect is not None:
            effect()
        return Ok(stdout)

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> Result[str, ProcessError]:
        argv = tuple(cmd)
        self.calls.append(RecordedCall(argv, cwd, env))
        return self._dispatch(argv)

    def run_live(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> Result[None, ProcessError]:
        argv = tuple(cmd)
        self.calls.append(RecordedCall(argv, cwd, env, live=True))
        return self._dispatch(argv).map(lambda _out: None)

    # Test helpers

    def argvs(self) -> list[tuple[str, ...]]:
        return [c.argv for c in self.calls]

    def called(self, *prefix: str) -> bool:
        return any(c.argv[: len(prefix)] == prefix for c in self.calls)
