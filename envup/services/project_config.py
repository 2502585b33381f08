"""Registry configuration documents: repair-merge and purge.

The Claude CLI keeps user-scope servers in `~/.claude.json` and
project-scope servers in `<project>/.mcp.json`. Both are JSON objects whose
`mcpServers` member maps a server name to its definition. A project file
shadows the user registry for that directory, which is how "works in one
folder but not another" happens. `repair_merge` copies the missing user
entries into the project file; `purge` moves the project file out of the
way.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from envup.core.result import Err, Ok, Result
from envup.core.structured import StrDict, as_str_dict, get_table
from envup.platform.files import Clock, atomic_write_text, move_to_backup

__all__ = [
    "PROJECT_CONFIG_NAME",
    "SERVERS_KEY",
    "USER_CONFIG_NAME",
    "ConfigDocError",
    "MergeReport",
    "PurgeReport",
    "project_config_path",
    "purge",
    "read_document",
    "repair_merge",
    "server_names",
    "user_config_path",
]

USER_CONFIG_NAME = ".claude.json"
PROJECT_CONFIG_NAME = ".mcp.json"
SERVERS_KEY = "mcpServers"


def user_config_path(home_dir: Path) -> Path:
    return home_dir / USER_CONFIG_NAME


def project_config_path(project_dir: Path) -> Path:
    return project_dir / PROJECT_CONFIG_NAME


@dataclass(frozen=True, slots=True)
class ConfigDocError:
    message: str
    path: Path
    hint: str | None = None


def read_document(path: Path) -> Result[StrDict | None, ConfigDocError]:
    """Parse a registry document. A missing file is Ok(None)."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Ok(None)
    except OSError as e:
        return Err(ConfigDocError(f"failed to read {path}: {e}", path))

    if not text.strip():
        return Ok({})

    try:
        obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return Err(
            ConfigDocError(
                f"invalid JSON in {path}: {e}",
                path,
                hint=f"fix or move {path} aside and re-run",
            )
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(ConfigDocError(f"{path} must contain a JSON object", path))
    return Ok(data)


def server_names(document: StrDict | None) -> list[str]:
    if document is None:
        return []
    servers = get_table(document, SERVERS_KEY)
    return list(servers) if servers else []


def _empty_names() -> list[str]:
    return []


@dataclass
class MergeReport:
    path: Path
    added: list[str] = field(default_factory=_empty_names)
    kept: list[str] = field(default_factory=_empty_names)
    written: bool = False
    note: str = ""


def repair_merge(user_config: Path, project_config: Path) -> Result[MergeReport, ConfigDocError]:
    """Copy user-scope entries the project document lacks into it.

    Entries the project already defines are never overwritten, even when
    the user registry defines the same name differently. Missing entries
    are inserted verbatim. The file is rewritten only when something was
    added. A directory without a project document has nothing to repair.
    """
    report = MergeReport(path=project_config)

    project_result = read_document(project_config)
    if isinstance(project_result, Err):
        return project_result
    project = project_result.value
    if project is None:
        report.note = f"no {PROJECT_CONFIG_NAME} in {project_config.parent}"
        return Ok(report)

    user_result = read_document(user_config)
    if isinstance(user_result, Err):
        return user_result
    user_servers = get_table(user_result.value or {}, SERVERS_KEY) or {}

    existing = get_table(project, SERVERS_KEY)
    if existing is None and SERVERS_KEY in project:
        return Err(
            ConfigDocError(
                f"{SERVERS_KEY} in {project_config} is not an object",
                project_config,
            )
        )
    servers: StrDict = dict(existing or {})

    for name, definition in user_servers.items():
        if name in servers:
            report.kept.append(name)
            continue
        servers[name] = definition
        report.added.append(name)

    if not report.added:
        return Ok(report)

    merged: StrDict = dict(project)
    merged[SERVERS_KEY] = servers
    try:
        atomic_write_text(project_config, json.dumps(merged, indent=2) + "\n")
    except OSError as e:
        return Err(ConfigDocError(f"failed to write {project_config}: {e}", project_config))
    report.written = True
    return Ok(report)


def _empty_moves() -> list[tuple[Path, Path]]:
    return []


def _empty_paths() -> list[Path]:
    return []


@dataclass
class PurgeReport:
    moved: list[tuple[Path, Path]] = field(default_factory=_empty_moves)
    declined: list[Path] = field(default_factory=_empty_paths)


def purge(
    paths: Iterable[Path],
    *,
    confirm: Callable[[str], bool] | None,
    assume_yes: bool,
    clock: Clock = datetime.now,
) -> Result[PurgeReport, ConfigDocError]:
    """Rename each existing project document to a timestamped backup.

    Nothing is ever deleted. Unless assume_yes is set, each rename needs
    confirm() to return True; with no way to ask, the file is left alone.
    """
    report = PurgeReport()
    for path in paths:
        if not path.is_file():
            continue
        if not assume_yes:
            if confirm is None or not confirm(f"Move {path} to a backup?"):
                report.declined.append(path)
                continue
        try:
            backup = move_to_backup(path, clock)
        except OSError as e:
            return Err(ConfigDocError(f"failed to back up {path}: {e}", path))
        report.moved.append((path, backup))
    return Ok(report)
