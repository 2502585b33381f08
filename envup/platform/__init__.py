"""Platform abstraction layer: host detection, files, processes, PATH."""

from .detection import (
    Arch,
    Platform,
    PlatformInfo,
    ShellKind,
    detect,
    detect_shell,
)
from .path_registry import PathRegistry, PersistenceTarget
from .paths import home, local_bin, user_config_dir
from .process import (
    CommandRunner,
    MockRunner,
    ProcessError,
    SubprocessRunner,
    run,
    run_silent,
)

__all__ = [
    # detection
    "Arch",
    "Platform",
    "PlatformInfo",
    "ShellKind",
    "detect",
    "detect_shell",
    # path registry
    "PathRegistry",
    "PersistenceTarget",
    # paths
    "home",
    "local_bin",
    "user_config_dir",
    # process
    "CommandRunner",
    "MockRunner",
    "ProcessError",
    "SubprocessRunner",
    "run",
    "run_silent",
]
