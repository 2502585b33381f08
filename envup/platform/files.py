"""Filesystem helpers for shell startup files and config documents.

Every mutation of a user file is a full read, an in-memory edit and a
write-back. Backups are siblings named `<file>.bak.<unix-seconds>` and are
never deleted by envup.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

__all__ = [
    "Clock",
    "append_line",
    "atomic_write_text",
    "backup_path",
    "copy_to_backup",
    "ensure_symlink",
    "move_to_backup",
    "points_to",
]

Clock = Callable[[], datetime]


def atomic_write_text(
    path: Path,
    content: str,
    *,
    encoding: str = "utf-8",
    errors: str = "strict",
) -> None:
    """Write text to path atomically using temp file + replace.

    The original file mode is preserved when replacing an existing file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    mode: int | None = None
    try:
        mode = path.stat().st_mode & 0o7777
    except FileNotFoundError:
        pass

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, errors=errors, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def append_line(path: Path, line: str, *, encoding: str = "utf-8") -> None:
    """Append a single line, creating the file if needed. Never truncates."""
    path.parent.mkdir(parents=True, exist_ok=True)
    needs_newline = False
    if path.exists() and path.stat().st_size > 0:
        with path.open("rb") as handle:
            handle.seek(-1, os.SEEK_END)
            needs_newline = handle.read(1) != b"\n"
    with path.open("a", encoding=encoding, newline="") as handle:
        if needs_newline:
            handle.write("\n")
        handle.write(line.rstrip("\n") + "\n")


def backup_path(path: Path, now: datetime) -> Path:
    """Return a free `<path>.bak.<unix-seconds>[.N]` sibling of path."""
    stamp = int(now.timestamp())
    candidate = path.with_name(f"{path.name}.bak.{stamp}")
    counter = 1
    while candidate.exists() or candidate.is_symlink():
        candidate = path.with_name(f"{path.name}.bak.{stamp}.{counter}")
        counter += 1
    return candidate


def copy_to_backup(path: Path, clock: Clock = datetime.now) -> Path:
    """Copy path (content and mode) to a fresh backup and return it."""
    target = backup_path(path, clock())
    shutil.copy2(path, target)
    return target


def move_to_backup(path: Path, clock: Clock = datetime.now) -> Path:
    """Rename path to a fresh backup and return the backup location."""
    target = backup_path(path, clock())
    os.replace(path, target)
    return target


def points_to(link: Path, target: Path) -> bool:
    """True if link resolves to target (or is target itself)."""
    try:
        return link.resolve(strict=True) == target.resolve(strict=True)
    except OSError:
        return False


def ensure_symlink(link: Path, target: Path) -> bool:
    """Point link at target, replacing whatever is there.

    A link that already resolves to target is left alone, which also means
    target never becomes a link to itself.

    Returns:
        True if the link was created or replaced
    """
    if points_to(link, target):
        return False
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = link.with_name(f".{link.name}.tmp")
    tmp.unlink(missing_ok=True)
    tmp.symlink_to(target)
    os.replace(tmp, link)
    return True
