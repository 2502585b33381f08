"""Removal of stale command definitions from shell startup files.

A stale `alias claude=...` line shadows the real executable in every new
shell. The scrubber deletes such lines and nothing else: other lines, their
order and their line endings are kept byte-for-byte. A file is backed up
before its first mutation; a file with no matching line is never touched,
so a second scrub is a guaranteed no-op.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Protocol

from envup.platform.files import Clock, atomic_write_text, copy_to_backup

__all__ = [
    "AliasMatcher",
    "ConfigScrubber",
    "LineMatcher",
    "PrefixMatcher",
    "ScrubReport",
]


class LineMatcher(Protocol):
    def matches(self, line: str) -> bool: ...

    def describe(self) -> str: ...


@dataclass(frozen=True, slots=True)
class PrefixMatcher:
    """Matches lines that start with prefix, ignoring leading indentation."""

    prefix: str

    def matches(self, line: str) -> bool:
        return line.lstrip().startswith(self.prefix)

    def describe(self) -> str:
        return self.prefix


@dataclass(frozen=True, slots=True)
class AliasMatcher:
    """Matches `alias <name>=...` definitions (any indentation and spacing)."""

    name: str

    def _pattern(self) -> re.Pattern[str]:
        return re.compile(rf"^\s*alias\s+{re.escape(self.name)}=")

    def matches(self, line: str) -> bool:
        return self._pattern().match(line) is not None

    def describe(self) -> str:
        return f"alias {self.name}=..."


def _empty_paths() -> list[Path]:
    return []


@dataclass
class ScrubReport:
    modified: list[Path] = field(default_factory=_empty_paths)
    backups: list[Path] = field(default_factory=_empty_paths)
    removed_lines: int = 0

    @property
    def count(self) -> int:
        return len(self.modified)


class ConfigScrubber:
    def __init__(self, *, clock: Clock = datetime.now) -> None:
        self._clock = clock

    def scrub(self, files: Iterable[Path], matcher: LineMatcher) -> ScrubReport:
        """Remove matching lines from every existing file.

        Missing files and files without a match are skipped silently.

        Raises:
            OSError: If an existing file cannot be read, backed up or written
        """
        report = ScrubReport()
        for path in files:
            if not path.is_file():
                continue

            with path.open("r", encoding="utf-8", errors="surrogateescape", newline="") as handle:
                lines = handle.read().splitlines(keepends=True)

            kept = [line for line in lines if not matcher.matches(line)]
            removed = len(lines) - len(kept)
            if removed == 0:
                continue

            report.backups.append(copy_to_backup(path, self._clock))
            # Symlinked startup files are edited at their target.
            atomic_write_text(path.resolve(), "".join(kept), errors="surrogateescape")
            report.modified.append(path)
            report.removed_lines += removed
        return report
