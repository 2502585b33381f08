"""Exit codes for the envup CLI.

These values are used as process exit codes and should remain stable:
- 0: Success, including runs that finished degraded (warnings only)
- 1: User error (invalid flag or config value)
- 2: Environment error (a fatal provisioning step could not be satisfied)
- 5: I/O error (config document unreadable or unwritable)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
