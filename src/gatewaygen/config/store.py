"""Layered key/value config store with typed lookups.

Sources, highest priority first: in-memory seed map, then config files in
the order given (later files override earlier ones), then baked-in defaults.
The store is written once during load and env-override application, then
frozen and read-only for the rest of the process.
"""

from __future__ import annotations

import copy
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import TypeAdapter, ValidationError

from gatewaygen.config.models import EnvOverride
from gatewaygen.core.errors import ConfigError

T = TypeVar("T")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def read_config_file(path: Path) -> dict[str, Any]:
    """Read one YAML or JSON config file into a mapping."""
    if not path.is_file():
        raise ConfigError.file_not_found(str(path))
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), f"top level must be a mapping, got {type(data).__name__}")
    return data


def _coerce(raw: str, data_type: str, env_var: str) -> Any:
    try:
        if data_type == "int":
            return int(raw)
        if data_type == "float":
            return float(raw)
    except ValueError as e:
        raise ConfigError.invalid_value(env_var, raw, f"expected {data_type}") from e
    if data_type == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError.invalid_value(env_var, raw, "expected bool")
    return raw


class ConfigStore:
    """Read-mostly config map. See module docstring for layering."""

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})
        self._frozen = False

    @classmethod
    def load(
        cls,
        files: Sequence[Path] = (),
        seed: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
    ) -> ConfigStore:
        """Build a store from defaults < files (in order) < seed."""
        values: dict[str, Any] = copy.deepcopy(dict(defaults or {}))
        for path in files:
            values.update(read_config_file(Path(path)))
        values.update(copy.deepcopy(dict(seed or {})))
        return cls(values)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def set(self, key: str, value: Any) -> None:
        if self._frozen:
            raise ConfigError.frozen(key)
        self._values[key] = value

    def contains(self, key: str) -> bool:
        return key in self._values

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of every key, for inspection or model validation."""
        return copy.deepcopy(self._values)

    def apply_env_overrides(
        self,
        table: Mapping[str, EnvOverride | Mapping[str, Any]],
        environ: Mapping[str, str] | None = None,
    ) -> list[str]:
        """Rewrite keys whose mapped environment variable is set.

        Returns the config keys that were overridden.
        """
        env = os.environ if environ is None else environ
        applied: list[str] = []
        for env_var in sorted(table):
            if env_var not in env:
                continue
            row = table[env_var]
            override = row if isinstance(row, EnvOverride) else EnvOverride.model_validate(row)
            self.set(override.key, _coerce(env[env_var], override.data_type, env_var))
            applied.append(override.key)
        return applied

    def _require(self, key: str) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise ConfigError.missing_key(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def get_string(self, key: str) -> str:
        value = self._require(key)
        if not isinstance(value, str):
            raise ConfigError.type_mismatch(key, "string", value)
        return value

    def get_int(self, key: str) -> int:
        value = self._require(key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError.type_mismatch(key, "int", value)
        return value

    def get_float(self, key: str) -> float:
        value = self._require(key)
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ConfigError.type_mismatch(key, "float", value)
        return float(value)

    def get_bool(self, key: str) -> bool:
        value = self._require(key)
        if not isinstance(value, bool):
            raise ConfigError.type_mismatch(key, "bool", value)
        return value

    def get_bytes(self, key: str) -> bytes:
        value = self._require(key)
        if isinstance(value, bytes):
            return value
        if isinstance(value, str):
            return value.encode("utf-8")
        raise ConfigError.type_mismatch(key, "bytes", value)

    def get_struct(self, key: str, shape: type[T]) -> T:
        """Decode the value at ``key`` into ``shape`` (a model or any typed shape)."""
        value = self._require(key)
        try:
            return TypeAdapter(shape).validate_python(value)
        except ValidationError as e:
            raise ConfigError.type_mismatch(key, getattr(shape, "__name__", str(shape)), value) from e
