"""Path and import-name resolution for generated code.

Every absolute path and Go import path the generators need is derived here
from the build config. Nothing in this module touches the output tree.
"""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gatewaygen.codegen.casing import camel_case
from gatewaygen.config.models import BuildConfig
from gatewaygen.config.store import read_config_file
from gatewaygen.core.errors import ConfigError, OutputError
from gatewaygen.idl.loader import IDLLoader
from gatewaygen.idl.models import IDLModule

if TYPE_CHECKING:
    from gatewaygen.module.models import Instance

IDL_FILE_KEYS = ("idlFile", "thriftFile", "protoFile", "idl_file")
"""Instance config keys naming the instance's IDL file, first match wins."""


@dataclass(frozen=True)
class MiddlewareSpec:
    """A middleware the generated endpoints may reference."""

    name: str
    import_path: str
    schema_file: Path
    options: dict[str, Any] = field(default_factory=dict)


def _load_middleware_config(path: Path) -> list[MiddlewareSpec]:
    data = read_config_file(path)
    entries = data.get("middlewares")
    if not isinstance(entries, list):
        raise ConfigError.parse_error(str(path), "'middlewares' must be a list")
    specs = []
    for entry in entries:
        if not isinstance(entry, dict) or not all(
            isinstance(entry.get(k), str) for k in ("name", "schema", "importPath")
        ):
            raise ConfigError.parse_error(str(path), f"middleware entry needs name, schema and importPath: {entry!r}")
        schema_file = (path.parent / entry["schema"]).resolve()
        if not schema_file.is_file():
            raise ConfigError.file_not_found(str(schema_file))
        options = read_config_file(schema_file)
        specs.append(MiddlewareSpec(entry["name"], entry["importPath"], schema_file, options))
    return specs


class PackageHelper:
    """Resolves IDL, config and output paths plus Go import paths.

    Built once per build from a ``BuildConfig`` and shared read-only by every
    generator invocation.
    """

    def __init__(self, config: BuildConfig) -> None:
        self._config = config
        self._config_root = Path(config.config_dir).resolve()
        self._idl_root = self._under(self._config_root, config.idl_root_dir, "idlRootDir")
        self._target = self._under(self._config_root, config.target_gen_dir, "targetGenDir")
        self._copyright = self._read_copyright(config.copyright_header)
        self._middlewares = self._read_middlewares()
        self._idl_loader = IDLLoader([self._idl_root], config.annotation_prefix)

    @staticmethod
    def _under(root: Path, relative: str, key: str) -> Path:
        resolved = Path(os.path.normpath(root / relative))
        if not resolved.is_relative_to(root):
            raise ConfigError.invalid_value(key, relative, f"must stay inside {root}")
        return resolved

    def _read_copyright(self, relative: str | None) -> str:
        if not relative:
            return ""
        path = self._config_root / relative
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError.file_not_found(str(path)) from e

    def _middleware_config_paths(self) -> list[Path]:
        return [
            self._config_root / relative
            for relative in (self._config.default_middleware_config, self._config.middleware_config)
            if relative
        ]

    def _read_middlewares(self) -> dict[str, MiddlewareSpec]:
        specs: dict[str, MiddlewareSpec] = {}
        for path in self._middleware_config_paths():
            for spec in _load_middleware_config(path):
                specs[spec.name] = spec
        return specs

    def middleware_files(self) -> list[Path]:
        """Every middleware config file and every schema file it references."""
        files = set(self._middleware_config_paths())
        files.update(spec.schema_file for spec in self._middlewares.values())
        return sorted(files)

    @property
    def config(self) -> BuildConfig:
        return self._config

    def package_root(self) -> str:
        """Import-path root of the gateway, e.g. ``github.com/org/gateway``."""
        return self._config.package_root

    def config_root(self) -> Path:
        return self._config_root

    def idl_root_dir(self) -> Path:
        return self._idl_root

    def code_gen_target_path(self) -> Path:
        """Absolute root of the generated tree."""
        return self._target

    def gen_package_root(self) -> str:
        """Import path of the generated tree."""
        return posixpath.join(self._config.package_root, self._config.target_gen_dir)

    @property
    def annotation_prefix(self) -> str:
        return self._config.annotation_prefix

    @property
    def runtime_package(self) -> str:
        return self._config.runtime_package

    @property
    def idl_loader(self) -> IDLLoader:
        """IDL loader shared by every generator of this build."""
        return self._idl_loader

    def load_idl(self, instance: Instance) -> IDLModule | None:
        """The compiled IDL of ``instance``, or None when it names no IDL file."""
        path = self.idl_path_for_instance(instance)
        return self._idl_loader.load(path) if path is not None else None

    def copyright_header(self) -> str:
        return self._copyright

    def middleware_specs(self) -> dict[str, MiddlewareSpec]:
        return dict(self._middlewares)

    @property
    def qps_levels_enabled(self) -> bool:
        return self._config.qps_levels_enabled

    @property
    def custom_initialisation_enabled(self) -> bool:
        return self._config.custom_initialisation_enabled

    @property
    def gen_mock(self) -> bool:
        return self._config.gen_mock

    @property
    def trace_key(self) -> str:
        return self._config.trace_key

    @property
    def staging_req_header(self) -> str:
        return self._config.staging_req_header

    @property
    def deputy_req_header(self) -> str:
        return self._config.deputy_req_header

    @property
    def default_headers(self) -> list[str]:
        return list(self._config.default_headers)

    def normalise(self, path: str | Path, root: Path | None = None) -> Path:
        """Absolute, normalised ``path``; fails if it leaves ``root``.

        ``root`` defaults to the config root. Relative paths are taken
        relative to ``root``.
        """
        root = root or self._config_root
        resolved = Path(os.path.normpath(root / path))
        if not resolved.is_relative_to(root):
            raise OutputError.invalid_path(str(path), str(root))
        return resolved

    def module_idl_sub_dir(self, class_name: str) -> str:
        return self._config.module_idl_sub_dir.get(class_name, "")

    def idl_path_for_instance(self, instance: Instance) -> Path | None:
        """The instance's IDL file, or None when its config names none."""
        for key in IDL_FILE_KEYS:
            value = instance.config.get(key)
            if value:
                break
        else:
            return None
        if not isinstance(value, str):
            raise ConfigError.type_mismatch(key, "string", value)
        sub_dir = self.module_idl_sub_dir(instance.class_name)
        return self.normalise(posixpath.join(sub_dir, value) if sub_dir else value, self._idl_root)

    def _idl_relative(self, idl_file: str | Path) -> str:
        path = Path(os.path.normpath(idl_file))
        if not path.is_relative_to(self._idl_root):
            raise OutputError.invalid_path(str(idl_file), str(self._idl_root))
        return path.relative_to(self._idl_root).with_suffix("").as_posix()

    def gen_code_package(self, class_name: str = "client") -> str:
        """Import path prefix of compiled wire types for ``class_name``'s IDL."""
        mapping = self._config.gen_code_package
        if class_name in mapping:
            return mapping[class_name]
        if "default" in mapping:
            return mapping["default"]
        return posixpath.join(self.gen_package_root(), "idl")

    def type_import_path(self, idl_file: str | Path, class_name: str = "client") -> str:
        """Go import path of the wire types compiled from ``idl_file``."""
        return posixpath.join(self.gen_code_package(class_name), self._idl_relative(idl_file))

    def go_package_for_idl(self, idl_file: str | Path, class_name: str = "client") -> str:
        """Import path of the package compiled from ``idl_file``."""
        return self.type_import_path(idl_file, class_name)

    def type_package_name(self, idl_file: str | Path) -> str:
        """Go package alias for ``idl_file``: ``clients/echo/echo.proto`` -> ``clientsEchoEcho``."""
        return camel_case(self._idl_relative(idl_file).replace("/", "_"))

    def instance_output_dir(self, instance: Instance) -> Path:
        """Where ``instance``'s generated files go."""
        return self.normalise(instance.relative_directory, self._target)
