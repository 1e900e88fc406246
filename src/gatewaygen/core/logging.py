"""structlog setup for gatewaygen.

Events go through the stdlib root logger so each configured output can
carry its own level and renderer. Every event of a build carries that
build's ``build_id``; console outputs go quiet while a progress bar is live.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from gatewaygen.config.models import LoggingConfig, LogOutputConfig

_build_id: ContextVar[str | None] = ContextVar("build_id", default=None)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_build_id() -> str | None:
    return _build_id.get()


def set_build_id(build_id: str | None = None) -> str:
    """Start a build: bind ``build_id``, or a fresh 12-hex-digit one."""
    bid = build_id or uuid4().hex[:12]
    _build_id.set(bid)
    return bid


def clear_build_id() -> None:
    _build_id.set(None)


def _add_build_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if bid := get_build_id():
        event_dict["build_id"] = bid
    return event_dict


class ConsoleSuppressingFilter(logging.Filter):
    """Drops records while a Rich live display owns the terminal."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        from gatewaygen.core.progress import is_console_suppressed

        return not is_console_suppressed()


def _level(name: str | None, fallback: int) -> int:
    return _LEVELS.get((name or "").upper(), fallback)


def _output_handler(output: LogOutputConfig, pre_chain: list[structlog.types.Processor]) -> logging.Handler:
    stream = {"stderr": sys.stderr, "stdout": sys.stdout}.get(output.destination)
    handler: logging.Handler
    if stream is not None:
        handler = logging.StreamHandler(stream)
        handler.addFilter(ConsoleSuppressingFilter())
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a")

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=stream is not None and stream.isatty(), pad_event_to=0, pad_level=False
        )
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain))
    return handler


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Route structlog through one stdlib handler per configured output.

    Without ``config`` a single stderr output is set up at ``level``.
    Safe to call again; earlier handlers are replaced.
    """
    from gatewaygen.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(level=level, outputs=[LogOutputConfig(format="json" if json_format else "console")])
    root_level = _level(config.level, logging.INFO)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _add_build_id,  # type: ignore[list-item]
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    for output in config.outputs:
        handler = _output_handler(output, pre_chain)
        handler.setLevel(_level(output.level or config.level, root_level))
        root.addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """A logger whose events carry ``logger=name``.

    The returned proxy reads the structlog config on every call, so
    module-level loggers follow a later ``configure_logging``.
    """
    if name:
        return structlog.get_logger(logger=name)  # type: ignore[no-any-return]
    return structlog.get_logger()  # type: ignore[no-any-return]
