"""Process-wide search path registry.

`PathRegistry` is the single owner of the executable search path for a run.
Directories added during the run take precedence over the inherited
`$PATH`, in first-insertion order, and every directory appears at most once.
Nothing is ever removed during a run.

Session changes are always applied (later steps must resolve tools that
earlier steps just installed). Writing the change into shell startup files
is separate and opt-in: see `PathRegistry.persist` and `PersistenceTarget`.
"""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .files import append_line

__all__ = [
    "PathRegistry",
    "PersistenceTarget",
    "activation_line",
    "normalize_line",
]

_HOME_VAR_RE = re.compile(r"\$\{HOME\}|\$HOME(?![A-Za-z0-9_])")


def _normalize_dir(directory: str | Path) -> str:
    text = os.path.expanduser(str(directory))
    if not os.path.isabs(text):
        raise ValueError(f"search path entries must be absolute: {directory!r}")
    return os.path.normpath(text)


def activation_line(directory: str | Path, home: Path | None = None) -> str:
    """Shell line that puts directory in front of PATH.

    Directories under home are written relative to `$HOME` so the line
    stays valid if the home directory moves.
    """
    d = _normalize_dir(directory)
    if home is not None:
        h = os.path.normpath(str(home))
        if d == h:
            d = "$HOME"
        elif d.startswith(h + os.sep):
            d = "$HOME" + d[len(h) :]
    return f'export PATH="{d}:$PATH"'


def normalize_line(line: str, home: Path | None = None) -> str:
    """Canonical form used to compare startup-file lines.

    Whitespace runs collapse to one space and `$HOME`, `${HOME}` and a
    leading `~/` expand to the home directory.
    """
    text = " ".join(line.split())
    if home is not None:
        h = os.path.normpath(str(home))
        text = _HOME_VAR_RE.sub(lambda _m: h, text)
        text = re.sub(r'(?<=[\s"=:])~(?=/)', lambda _m: h, text)
    return text


@dataclass(frozen=True, slots=True)
class PersistenceTarget:
    """A shell startup file that must contain certain lines exactly once."""

    path: Path
    home: Path | None = None

    def has_line(self, line: str) -> bool:
        """True if an equivalent line is already present."""
        if not self.path.exists():
            return False
        wanted = normalize_line(line, self.home)
        content = self.path.read_text(encoding="utf-8", errors="replace")
        return any(
            normalize_line(existing, self.home) == wanted for existing in content.splitlines()
        )

    def ensure_line(self, line: str) -> bool:
        """Append line unless present. Returns True if the file changed."""
        if self.has_line(line):
            return False
        append_line(self.path, line)
        return True

    def ensure_lines(self, lines: Iterable[str]) -> list[str]:
        """Ensure every line is present; return the ones appended."""
        return [line for line in lines if self.ensure_line(line)]


class PathRegistry:
    """De-duplicated, ordered set of searchable directories."""

    def __init__(self, inherited: Iterable[str] = (), *, home: Path | None = None) -> None:
        self._home = home
        self._added: list[str] = []
        self._inherited: list[str] = []
        seen: set[str] = set()
        for raw in inherited:
            if not raw or not os.path.isabs(os.path.expanduser(raw)):
                continue
            d = _normalize_dir(raw)
            if d in seen:
                continue
            seen.add(d)
            self._inherited.append(d)

    @classmethod
    def from_environ(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        home: Path | None = None,
    ) -> PathRegistry:
        env = os.environ if environ is None else environ
        return cls(env.get("PATH", "").split(os.pathsep), home=home)

    @property
    def entries(self) -> tuple[str, ...]:
        """All searchable directories in precedence order."""
        added = set(self._added)
        return (*self._added, *(d for d in self._inherited if d not in added))

    @property
    def added(self) -> tuple[str, ...]:
        """Directories added during this run, in insertion order."""
        return tuple(self._added)

    def __contains__(self, directory: object) -> bool:
        if not isinstance(directory, (str, Path)):
            return False
        try:
            d = _normalize_dir(directory)
        except ValueError:
            return False
        return d in self._added or d in self._inherited

    def ensure_searchable(self, directory: str | Path) -> bool:
        """Make directory searchable for the rest of the run.

        Returns:
            True if the registry changed (for logging only)

        Raises:
            ValueError: If directory is not absolute
        """
        d = _normalize_dir(directory)
        if d in self._added or d in self._inherited:
            return False
        self._added.append(d)
        return True

    def search_path(self) -> str:
        return os.pathsep.join(self.entries)

    def environ(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Copy of base (default os.environ) with PATH from the registry."""
        env = dict(os.environ if base is None else base)
        env["PATH"] = self.search_path()
        return env

    def which(self, name: str) -> str | None:
        """Resolve an executable against the registry's search path."""
        return shutil.which(name, path=self.search_path())

    def persist(self, directory: str | Path, targets: Iterable[PersistenceTarget]) -> list[Path]:
        """Write the activation line for directory into each target once.

        Targets that do not exist yet are created.

        Returns:
            Paths of the targets that were modified
        """
        line = activation_line(directory, self._home)
        return [t.path for t in targets if t.ensure_line(line)]
