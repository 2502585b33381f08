"""Core domain types: results, exit codes, configuration."""

from .config import (
    ClaudeInstallMethod,
    ConfigError,
    EnvupConfig,
    Scope,
    Source,
    load_config,
)
from .errors import ErrorCode
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "ClaudeInstallMethod",
    "ConfigError",
    "EnvupConfig",
    "Scope",
    "Source",
    "load_config",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
