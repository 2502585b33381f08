from __future__ import annotations

import os
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

import typer

from envup.core.config import EnvupConfig, load_config
from envup.core.errors import ErrorCode
from envup.core.result import Err
from envup.output.console import ConsoleProtocol, RichConsole
from envup.platform.detection import PlatformInfo, detect
from envup.platform.path_registry import PathRegistry
from envup.platform.paths import home, nvm_dir, user_config_dir
from envup.platform.process import CommandRunner, SubprocessRunner
from envup.services.steps import ProvisionContext
from envup.tools.definitions import ToolSet, build_tools
from envup.tools.probe import CapabilityProbe

CONFIG_FILE_NAME = "config.toml"


@dataclass(frozen=True, slots=True)
class CLIContext:
    config: EnvupConfig
    platform: PlatformInfo
    console: ConsoleProtocol
    home: Path
    cwd: Path
    environ: Mapping[str, str]
    paths: PathRegistry
    runner: CommandRunner
    probe: CapabilityProbe
    tools: ToolSet
    nvm_dir: Path

    def provision(
        self,
        config: EnvupConfig | None = None,
        *,
        confirm: Callable[[str], bool] | None = None,
    ) -> ProvisionContext:
        return ProvisionContext(
            config=config or self.config,
            console=self.console,
            platform=self.platform,
            paths=self.paths,
            runner=self.runner,
            probe=self.probe,
            tools=self.tools,
            home=self.home,
            cwd=self.cwd,
            environ=self.environ,
            nvm_dir=self.nvm_dir,
            confirm=confirm,
        )


def interactive_confirm() -> Callable[[str], bool] | None:
    """typer.confirm when a user can answer, else None (never prompt)."""
    if not sys.stdin.isatty():
        return None
    return lambda msg: typer.confirm(msg, default=False)


def build_context() -> CLIContext:
    environ = dict(os.environ)
    home_dir = home(environ)
    config_path = user_config_dir(home_dir, environ) / CONFIG_FILE_NAME

    config_result = load_config(config_path, environ)
    if isinstance(config_result, Err):
        error = config_result.error
        typer.echo(f"error: {error.message}", err=True)
        if error.path is not None:
            typer.echo(f"hint: check {error.path}", err=True)
        elif error.hint:
            typer.echo(f"hint: {error.hint}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    platform = detect(environ)
    paths = PathRegistry.from_environ(environ, home=home_dir)
    runner = SubprocessRunner(paths=paths)
    cwd = Path.cwd()
    nvm = nvm_dir(home_dir, environ)

    return CLIContext(
        config=config_result.value,
        platform=platform,
        console=RichConsole(),
        home=home_dir,
        cwd=cwd,
        environ=environ,
        paths=paths,
        runner=runner,
        probe=CapabilityProbe(paths=paths, runner=runner, cwd=home_dir),
        tools=build_tools(nvm, platform.platform),
        nvm_dir=nvm,
    )
