"""User-facing progress feedback for CLI operations.

Usage::

    from gatewaygen.core.progress import build_progress, status

    status("Resolved 12 instances", style="success")

    with build_progress(total=12) as advance:
        advance("client", "echo")
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

_console = Console(stderr=True)

_STYLES = {
    "success": "[green]✓[/green] ",
    "error": "[red]✗[/red] ",
    "warning": "[yellow]![/yellow] ",
    "info": "  ",
    "none": "",
}

_suppress_console_logs = threading.local()


def is_console_suppressed() -> bool:
    """Check if console logging is currently suppressed."""
    return getattr(_suppress_console_logs, "active", False)


@contextmanager
def suppress_console_logs() -> Iterator[None]:
    """Suppress structlog console output while a live display runs.

    Logs are still written to file handlers.
    """
    _suppress_console_logs.active = True
    try:
        yield
    finally:
        _suppress_console_logs.active = False


def _get_logger() -> BoundLogger:
    """Get logger lazily to respect runtime config."""
    from gatewaygen.core.logging import get_logger

    return get_logger("progress")


def _is_tty() -> bool:
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


def get_console() -> Console:
    """Get the shared Rich console instance."""
    return _console


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """Print a styled status message to stderr."""
    prefix = _STYLES.get(style, "")
    padding = " " * indent
    _console.print(f"{padding}{prefix}{message}", highlight=False)

    _get_logger().debug("status", message=message, style=style)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """Return grammatically correct singular/plural form, e.g. "3 files"."""
    if plural is None:
        plural = singular + "s"
    word = singular if count == 1 else plural
    return f"{count} {word}"


@contextmanager
def build_progress(total: int, *, quiet: bool = False) -> Iterator[Callable[[str, str], None]]:
    """Yield an ``advance(class_name, instance_name)`` callback.

    On a TTY this drives a transient Rich progress bar. Elsewhere each call
    prints one "Generating <class> <instance> (i/N)" line. Thread-safe, so
    the callback can be invoked from scheduler workers.
    """
    lock = threading.Lock()
    done = 0

    if quiet or total == 0:

        def _noop(_class_name: str, _instance_name: str) -> None:
            return None

        yield _noop
        return

    if _is_tty():
        with (
            suppress_console_logs(),
            Progress(
                TextColumn("    {task.description}"),
                BarColumn(bar_width=25, style="cyan", complete_style="cyan"),
                TaskProgressColumn(),
                TextColumn("{task.completed}/{task.total} instances"),
                console=_console,
                transient=True,
            ) as pbar,
        ):
            task_id = pbar.add_task("Generating", total=total)

            def _advance_bar(class_name: str, instance_name: str) -> None:
                pbar.update(task_id, advance=1, description=f"Generating {class_name} {instance_name}")

            yield _advance_bar
        return

    def _advance_line(class_name: str, instance_name: str) -> None:
        nonlocal done
        with lock:
            done += 1
            _console.print(f"  Generating {class_name} {instance_name} ({done}/{total})", highlight=False)

    yield _advance_line
