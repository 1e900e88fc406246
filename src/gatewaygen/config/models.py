"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_build_config()
2. Environment variables (GATEWAYGEN__SECTION__KEY)
3. Build config file(s) passed with --config, then the seed map
4. Built-in defaults (this file)

Build config files use the camelCase keys of the gateway's build.yaml
(``packageRoot``, ``targetGenDir`` ...). Environment variables use the
snake_case field names.

Examples:
    GATEWAYGEN__LOGGING__LEVEL=DEBUG
    GATEWAYGEN__PARALLELISM__WORKERS=8
    GATEWAYGEN__BUILD__GEN_MOCK=true
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from gatewaygen.config.constants import (
    DEFAULT_ANNOTATION_PREFIX,
    DEFAULT_CACHE_FILE,
    DEFAULT_FORMATTERS,
    DEFAULT_RUNTIME_PACKAGE,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
DataType = Literal["string", "int", "float", "bool"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        GATEWAYGEN__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. Progress lines are printed regardless of level.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ParallelismConfig(_CamelModel):
    """Work scheduler sizing.

    Env vars:
        GATEWAYGEN__PARALLELISM__WORKERS: Worker count (default: CPU count)
        GATEWAYGEN__PARALLELISM__IO_BOUND: Multiply the default by 4
    """

    workers: int | None = Field(
        default=None,
        description="Number of generator workers. Defaults to the CPU count.",
    )
    io_bound: bool = Field(
        default=False,
        description="Treat generation as IO-bound (CPU count x4 workers when workers is unset).",
    )

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError(f"workers must be >= 1, got {v}")
        return v


class EnvOverride(_CamelModel):
    """One row of the env-override table: ``{ENV_VAR: {key, dataType}}``."""

    key: str
    data_type: DataType = "string"


class BuildConfig(_CamelModel):
    """Everything the code generator needs to know about one gateway tree.

    Relative paths are resolved against the directory holding the config file.
    """

    config_dir: str = Field(
        default=".",
        description="Absolute directory the relative paths below are resolved against.",
    )
    package_root: str = Field(description="Import-path root for generated code.")
    idl_root_dir: str = Field(description="Relative root where IDL files live.")
    target_gen_dir: str = Field(description="Relative root for generated output.")
    module_search_paths: dict[str, list[str]] = Field(
        description="className -> directories (relative to config_dir) holding instances.",
    )
    module_idl_sub_dir: dict[str, str] = Field(
        default_factory=dict,
        description="className -> subdirectory under idl_root_dir.",
    )
    gen_code_package: dict[str, str] = Field(
        default_factory=dict,
        description="className -> import path for compiled IDL wire types.",
    )
    annotation_prefix: str = DEFAULT_ANNOTATION_PREFIX
    runtime_package: str = Field(
        default=DEFAULT_RUNTIME_PACKAGE,
        description="Go import path of the gateway runtime referenced by generated code.",
    )
    copyright_header: str | None = Field(
        default=None,
        description="Relative path to a file prefixed to every generated file.",
    )
    middleware_config: str | None = None
    default_middleware_config: str | None = None
    trace_key: str = "x-trace-id"
    staging_req_header: str = "X-Zanzibar-Use-Staging"
    deputy_req_header: str = "x-deputy-forwarded"
    default_headers: list[str] = Field(default_factory=list)
    default_dependencies: dict[str, list[str]] = Field(
        default_factory=dict,
        description="className -> classNames every instance of the key class depends on.",
    )
    qps_levels_enabled: bool = False
    custom_initialisation_enabled: bool = False
    gen_mock: bool = False
    parallelize_factor: int = Field(
        default=2,
        description="Bound on concurrent mock generation.",
    )
    env_overrides: dict[str, EnvOverride] = Field(default_factory=dict)
    formatters: dict[str, list[list[str]]] = Field(
        default_factory=lambda: {ext: [list(c) for c in cmds] for ext, cmds in DEFAULT_FORMATTERS.items()},
        description="Output extension -> formatter commands, run in order with the file path appended.",
    )
    instance_name_pattern: dict[str, str] = Field(
        default_factory=dict,
        description="className -> regex instance names must match.",
    )
    incremental_cache_file: str = DEFAULT_CACHE_FILE

    @field_validator("target_gen_dir", "idl_root_dir")
    @classmethod
    def validate_relative(cls, v: str) -> str:
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("parallelize_factor")
    @classmethod
    def validate_parallelize_factor(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"parallelizeFactor must be >= 1, got {v}")
        return v


class GatewayGenConfig(BaseModel):
    """Root configuration for gatewaygen.

    All settings can be configured via:
    1. Environment variables: GATEWAYGEN__SECTION__KEY
    2. The build config file
    3. Direct kwargs to load_build_config()
    """

    build: BuildConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    parallelism: ParallelismConfig = Field(default_factory=ParallelismConfig)
