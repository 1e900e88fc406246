"""CLI utilities."""

import sys
from collections.abc import Iterable
from pathlib import Path
from typing import NoReturn

import click
from rich.traceback import Traceback

from gatewaygen.codegen.system import new_default_module_system
from gatewaygen.config.loader import load_build_config
from gatewaygen.config.models import GatewayGenConfig
from gatewaygen.core.errors import GatewayGenError
from gatewaygen.core.logging import configure_logging, get_logger
from gatewaygen.core.progress import get_console, status
from gatewaygen.module.models import InstanceKey
from gatewaygen.module.system import ModuleSystem

log = get_logger("cli")


def load_project(ctx: click.Context, config_path: Path) -> tuple[GatewayGenConfig, ModuleSystem]:
    """Load the build config and the module system it describes.

    Logging switches to the config's ``logging`` section unless the command
    line already chose with ``--verbose`` or ``--json-logs``.
    """
    config = load_build_config(config_path)
    obj = ctx.find_root().obj or {}
    if not obj.get("verbose") and not obj.get("json_logs"):
        configure_logging(config=config.logging)
    system = new_default_module_system(config.build.module_search_paths)
    return config, system


def parse_instance_keys(values: Iterable[str]) -> list[InstanceKey]:
    """Parse ``class/instance`` arguments."""
    keys: list[InstanceKey] = []
    for value in values:
        try:
            keys.append(InstanceKey.parse(value))
        except ValueError as e:
            raise click.ClickException(str(e)) from e
    return keys


def fail(error: BaseException) -> NoReturn:
    """Print a diagnostic traceback and the structured error, then exit 1."""
    console = get_console()
    console.print(Traceback.from_exception(type(error), error, error.__traceback__, show_locals=False))
    if isinstance(error, GatewayGenError):
        log.error("command_failed", **error.to_dict())
        status(str(error), style="error")
    else:
        log.error("command_failed", error=str(error), error_type=type(error).__name__)
        status(f"{type(error).__name__}: {error}", style="error")
    sys.exit(1)
