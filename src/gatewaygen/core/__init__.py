"""Core module exports."""

from gatewaygen.core.errors import (
    CacheError,
    ConfigError,
    ErrorCode,
    GatewayGenError,
    GenerationError,
    IDLError,
    InternalError,
    ModuleError,
    OutputError,
)
from gatewaygen.core.logging import (
    clear_build_id,
    configure_logging,
    get_build_id,
    get_logger,
    set_build_id,
)
from gatewaygen.core.progress import build_progress, status

__all__ = [
    # Errors
    "CacheError",
    "ConfigError",
    "ErrorCode",
    "GatewayGenError",
    "GenerationError",
    "IDLError",
    "InternalError",
    "ModuleError",
    "OutputError",
    # Logging
    "clear_build_id",
    "configure_logging",
    "get_build_id",
    "get_logger",
    "set_build_id",
    # Progress
    "build_progress",
    "status",
]
