"""Config module exports."""

from gatewaygen.config.loader import load_build_config, load_config_store
from gatewaygen.config.models import (
    BuildConfig,
    EnvOverride,
    GatewayGenConfig,
    LoggingConfig,
    ParallelismConfig,
)
from gatewaygen.config.store import ConfigStore

__all__ = [
    "load_build_config",
    "load_config_store",
    "BuildConfig",
    "ConfigStore",
    "EnvOverride",
    "GatewayGenConfig",
    "LoggingConfig",
    "ParallelismConfig",
]
