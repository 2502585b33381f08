"""Typed configuration loading and access.

Options are resolved in layers, lowest to highest precedence:

1. Built-in defaults (the `EnvupConfig()` field defaults)
2. `<user-config-dir>/config.toml`, if present
3. `SC_*` environment variables
4. CLI options (applied by the CLI with `dataclasses.replace`)

Example config.toml:

    source = "git"
    persist_path = true
    node_major = 22
    node_fallback_major = 20

    [mcp]
    enabled = true
    scope = "user"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_scalar_text, get_table

__all__ = [
    "ClaudeInstallMethod",
    "ConfigError",
    "EnvupConfig",
    "Scope",
    "Source",
    "load_config",
    "parse_flag",
]

DEFAULT_NODE_MAJOR = 22
DEFAULT_NODE_FALLBACK_MAJOR = 20

_TRUE = frozenset({"1", "on", "true", "yes"})
_FALSE = frozenset({"0", "off", "false", "no"})


class Source(StrEnum):
    """Where the main application is fetched from."""

    GIT = "git"
    REGISTRY = "registry"


class ClaudeInstallMethod(StrEnum):
    """How the Claude CLI is installed."""

    AUTO = "auto"
    NPM = "npm"
    BREW = "brew"


class Scope(StrEnum):
    """Visibility of a registered plugin/server entry."""

    USER = "user"
    PROJECT = "project"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when an option cannot be parsed."""

    message: str
    path: Path | None = None
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class EnvupConfig:
    """Resolved provisioning options."""

    source: Source = Source.GIT
    assume_yes: bool = False
    persist_path: bool = False
    skip_node: bool = False
    node_major: int = DEFAULT_NODE_MAJOR
    node_fallback_major: int = DEFAULT_NODE_FALLBACK_MAJOR
    claude_install: ClaudeInstallMethod = ClaudeInstallMethod.AUTO
    skip_wizard: bool = False
    register_mcp: bool = True
    mcp_scope: Scope = Scope.USER
    validate_locations: bool = False
    purge_project: bool = False
    repair_project: bool = False


def parse_flag(value: str, *, name: str) -> Result[bool, ConfigError]:
    """Parse an on/off style value."""
    v = value.strip().lower()
    if v in _TRUE:
        return Ok(True)
    if v in _FALSE:
        return Ok(False)
    return Err(ConfigError(f"{name}: expected on/off, got {value!r}"))


def _parse_major(value: str, *, name: str) -> Result[int, ConfigError]:
    try:
        major = int(value.strip())
    except ValueError:
        return Err(ConfigError(f"{name}: expected a major version number, got {value!r}"))
    if major <= 0:
        return Err(ConfigError(f"{name}: major version must be positive, got {major}"))
    return Ok(major)


def _parse_source(value: str, *, name: str) -> Result[Source, ConfigError]:
    v = value.strip().lower()
    if v == "pypi":
        return Ok(Source.REGISTRY)
    try:
        return Ok(Source(v))
    except ValueError:
        return Err(ConfigError(f"{name}: expected git or registry, got {value!r}"))


def _parse_method(value: str, *, name: str) -> Result[ClaudeInstallMethod, ConfigError]:
    try:
        return Ok(ClaudeInstallMethod(value.strip().lower()))
    except ValueError:
        return Err(ConfigError(f"{name}: expected auto, npm or brew, got {value!r}"))


def _parse_scope(value: str, *, name: str) -> Result[Scope, ConfigError]:
    try:
        return Ok(Scope(value.strip().lower()))
    except ValueError:
        return Err(ConfigError(f"{name}: expected user or project, got {value!r}"))


# (field, env var, config.toml key path, parser)
_FIELDS = (
    ("source", "SC_SOURCE", ("source",), _parse_source),
    ("assume_yes", "SC_YES", ("yes",), parse_flag),
    ("persist_path", "SC_PERSIST_PATH", ("persist_path",), parse_flag),
    ("skip_node", "SC_SKIP_NODE", ("skip_node",), parse_flag),
    ("node_major", "SC_NODE_MAJOR", ("node_major",), _parse_major),
    ("node_fallback_major", "SC_NODE_FALLBACK_MAJOR", ("node_fallback_major",), _parse_major),
    ("claude_install", "SC_CLAUDE_INSTALL", ("claude_install",), _parse_method),
    ("skip_wizard", "SC_SKIP_APPLY", ("skip_wizard",), parse_flag),
    ("register_mcp", "SC_MCP", ("mcp", "enabled"), parse_flag),
    ("mcp_scope", "SC_MCP_SCOPE", ("mcp", "scope"), _parse_scope),
    ("validate_locations", "SC_MCP_VALIDATE", ("mcp", "validate"), parse_flag),
    ("purge_project", "SC_MCP_PURGE_PROJECT", ("mcp", "purge_project"), parse_flag),
    ("repair_project", "SC_MCP_REPAIR", ("mcp", "repair_project"), parse_flag),
)


def _lookup(data: StrDict, key_path: tuple[str, ...]) -> str | None:
    table: StrDict | None = data
    for part in key_path[:-1]:
        if table is None:
            return None
        table = get_table(table, part)
    if table is None:
        return None
    return get_scalar_text(table, key_path[-1])


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file; a missing file is an empty table."""
    import tomllib

    try:
        content = path.read_bytes()
    except FileNotFoundError:
        return Ok({})
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except OSError as e:
        return Err(ConfigError(f"Error reading {path}: {e}", path=path))

    try:
        data = as_str_dict(tomllib.loads(content.decode("utf-8")))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Result[EnvupConfig, ConfigError]:
    """Resolve options from config.toml and the environment.

    Args:
        path: config.toml location (skipped when None or missing)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Ok(EnvupConfig) on success, Err(ConfigError) naming the bad option
    """
    import os

    env = os.environ if environ is None else environ

    data: StrDict = {}
    if path is not None:
        parsed = _parse_toml(path)
        if isinstance(parsed, Err):
            return parsed
        data = parsed.value

    values: dict[str, object] = {}
    for field_name, env_name, key_path, parser in _FIELDS:
        file_value = _lookup(data, key_path)
        if file_value is not None:
            result = parser(file_value, name=".".join(key_path))
            if isinstance(result, Err):
                return Err(ConfigError(result.error.message, path=path))
            values[field_name] = result.value

        env_value = env.get(env_name)
        if env_value is not None and env_value.strip():
            result = parser(env_value, name=env_name)
            if isinstance(result, Err):
                return result
            values[field_name] = result.value

    return Ok(EnvupConfig(**values))  # pyright: ignore[reportArgumentType]
