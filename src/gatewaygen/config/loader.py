"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (GATEWAYGEN__SECTION__KEY)
3. Env-override table rows (``envOverrides`` in the build config)
4. Seed map, then the build config file (YAML or JSON)
5. Built-in defaults (lowest priority)

The build config file is flat: every key except ``logging`` and
``parallelism`` belongs to the ``build`` section.
"""

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from gatewaygen.config.models import (
    BuildConfig,
    EnvOverride,
    GatewayGenConfig,
    LoggingConfig,
    ParallelismConfig,
)
from gatewaygen.config.store import ConfigStore
from gatewaygen.core.errors import ConfigError

_SECTIONS = ("logging", "parallelism")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _split_sections(flat: dict[str, Any]) -> dict[str, Any]:
    """Turn the flat camelCase file layout into snake_case sections."""
    build: dict[str, Any] = {}
    sections: dict[str, Any] = {}
    for key, value in flat.items():
        if key in _SECTIONS:
            sections[key] = {_snake(k): v for k, v in value.items()} if isinstance(value, dict) else value
        else:
            build[_snake(key)] = value
    return {"build": build, **sections}


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from the pre-loaded config store snapshot."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class GatewayGenSettings(BaseSettings):
        """Root config. Env vars: GATEWAYGEN__LOGGING__LEVEL, GATEWAYGEN__BUILD__GEN_MOCK, etc."""

        model_config = SettingsConfigDict(
            env_prefix="GATEWAYGEN__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        build: BuildConfig
        logging: LoggingConfig = LoggingConfig()
        parallelism: ParallelismConfig = ParallelismConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > config store
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return GatewayGenSettings


def load_config_store(
    config_path: Path,
    seed: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigStore:
    """Load the build config file into a frozen ConfigStore.

    The ``envOverrides`` table, if present, is applied before freezing.
    """
    store = ConfigStore.load([config_path], seed=seed)
    if store.contains("envOverrides"):
        table = store.get_struct("envOverrides", dict[str, EnvOverride])
        store.apply_env_overrides(table, environ)
    store.freeze()
    return store


def load_build_config(
    config_path: Path,
    seed: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    **kwargs: Any,
) -> GatewayGenConfig:
    """Load config: defaults < file < seed < env-override table < env vars < kwargs.

    Args:
        config_path: Path to the build config file (YAML or JSON).
        seed: In-memory values layered over the file.
        environ: Environment for the env-override table. Defaults to os.environ.
        **kwargs: Section overrides (highest precedence), e.g. ``build={"gen_mock": True}``.

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On a missing file, invalid YAML/JSON, or validation errors.
    """
    config_path = Path(config_path).resolve()
    store = load_config_store(config_path, seed=seed, environ=environ)

    yaml_config = _split_sections(store.snapshot())
    yaml_config = _deep_merge({"build": {"config_dir": str(config_path.parent)}}, yaml_config)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        if err["type"] == "missing":
            raise ConfigError.missing_key(field) from e
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e

    return GatewayGenConfig(
        build=settings.build,  # type: ignore[attr-defined]
        logging=settings.logging,  # type: ignore[attr-defined]
        parallelism=settings.parallelism,  # type: ignore[attr-defined]
    )
