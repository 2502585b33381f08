"""Preferred/fallback resolution for a multi-version runtime (Node via nvm).

The preferred major is installed first; if that fails the fallback is
tried. A candidate only counts once it is both installed and set as the
default for new shells, since either half can fail on its own. If the
installed version's leading integer is not the requested major, that is
reported as a warning (soft mismatch), not a failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from envup.core.result import Err, Ok, Result
from envup.output.console import ConsoleProtocol
from envup.platform.process import CommandRunner, ProcessError
from envup.tools.definitions import nvm_command
from envup.tools.probe import first_line, leading_major

__all__ = [
    "NvmManager",
    "Resolution",
    "ResolveError",
    "RuntimeManager",
    "VersionPreference",
    "VersionResolver",
]


@dataclass(frozen=True, slots=True)
class VersionPreference:
    preferred_major: int
    fallback_major: int

    def candidates(self) -> tuple[int, ...]:
        if self.preferred_major == self.fallback_major:
            return (self.preferred_major,)
        return (self.preferred_major, self.fallback_major)


@dataclass(frozen=True, slots=True)
class Resolution:
    """Which major ended up active."""

    activated_major: int
    version_string: str
    fell_back: bool = False
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ResolveError:
    message: str
    hint: str | None = None


class RuntimeManager(Protocol):
    """The parts of a version manager the resolver relies on."""

    def install(self, major: int) -> Result[None, ProcessError]: ...

    def set_default(self, major: int) -> Result[None, ProcessError]: ...

    def installed_version(self, major: int) -> str | None: ...


class NvmManager:
    """RuntimeManager backed by nvm (a bash function sourced from nvm.sh)."""

    def __init__(self, *, runner: CommandRunner, nvm_dir: Path, cwd: Path) -> None:
        self._runner = runner
        self._nvm_dir = nvm_dir
        self._cwd = cwd

    def _nvm(self, *args: str) -> tuple[str, ...]:
        return nvm_command(self._nvm_dir, *args)

    def install(self, major: int) -> Result[None, ProcessError]:
        return self._runner.run_live(self._nvm("install", str(major)), cwd=self._cwd)

    def set_default(self, major: int) -> Result[None, ProcessError]:
        result = self._runner.run(
            self._nvm("alias", "default", str(major)), cwd=self._cwd
        )
        return result.map(lambda _out: None)

    def installed_version(self, major: int) -> str | None:
        result = self._runner.run(self._nvm("version", str(major)), cwd=self._cwd)
        if isinstance(result, Err):
            return None
        version = first_line(result.value)
        if not version or version == "N/A":
            return None
        return version

    def bin_dir(self, major: int) -> Path | None:
        """Directory holding the node/npm/npx executables for a major."""
        result = self._runner.run(self._nvm("which", str(major)), cwd=self._cwd)
        if isinstance(result, Err):
            return None
        node = first_line(result.value)
        if not node.startswith("/"):
            return None
        return Path(node).parent


class VersionResolver:
    def __init__(self, *, manager: RuntimeManager, console: ConsoleProtocol) -> None:
        self._manager = manager
        self._console = console

    def resolve(self, preference: VersionPreference) -> Result[Resolution, ResolveError]:
        """Activate the preferred major, else the fallback.

        The fallback is never attempted when the preferred major succeeds.
        """
        warnings: list[str] = []
        for major in preference.candidates():
            self._console.info(f"installing Node {major} with nvm")
            install = self._manager.install(major)
            if isinstance(install, Err):
                warnings.append(f"Node {major} install failed ({install.error})")
                continue

            default = self._manager.set_default(major)
            if isinstance(default, Err):
                warnings.append(f"Node {major} installed but could not be made default")
                continue

            version = self._manager.installed_version(major)
            if version is None:
                warnings.append(f"Node {major} is active but its version could not be read")
                version = "unknown"
            elif leading_major(version) != major:
                warnings.append(f"requested Node {major} but nvm reports {version}")
            fell_back = major != preference.preferred_major
            if fell_back:
                warnings.append(
                    f"Node fell back from {preference.preferred_major} to {major}"
                )
            return Ok(Resolution(major, version, fell_back, tuple(warnings)))

        majors = " and ".join(str(m) for m in preference.candidates())
        return Err(
            ResolveError(
                message=f"could not install Node {majors} with nvm",
                hint=f"nvm install {preference.fallback_major} && "
                f"nvm alias default {preference.fallback_major}",
            )
        )
