"""Discovery and parsing of module instances on disk."""

from __future__ import annotations

import json
import posixpath
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gatewaygen.codegen.casing import camel_case, title
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.config.constants import (
    CONFIG_FILE_SUFFIX,
    DEFAULT_INSTANCE_NAME_PATTERN,
    INSTANCE_CONFIG_EXTENSIONS,
)
from gatewaygen.core.errors import GatewayGenError, ModuleError
from gatewaygen.core.logging import get_logger
from gatewaygen.module.models import ClassType, Instance, InstanceKey, PackageInfo
from gatewaygen.module.system import ModuleSystem

log = get_logger("module.reader")

CUSTOM_TYPE = "custom"
_GLOB_CHARS = re.compile(r"[*?\[]")


class InstanceConfigFile(BaseModel):
    """Schema of ``<className>-config.json``."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    dependencies: dict[str, list[str]] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)
    is_export_generated: bool | None = Field(default=None, alias="IsExportGenerated")


def _parse_config_bytes(path: Path, raw: bytes) -> Any:
    if path.suffix == ".json":
        return json.loads(raw)
    return yaml.safe_load(raw)


def config_file_for(directory: Path, class_name: str) -> Path | None:
    """The instance config file in ``directory``, if there is one."""
    for ext in INSTANCE_CONFIG_EXTENSIONS:
        candidate = directory / f"{class_name}{CONFIG_FILE_SUFFIX}{ext}"
        if candidate.is_file():
            return candidate
    return None


def read_package_info(
    helper: PackageHelper,
    class_name: str,
    relative_directory: str,
    config: InstanceConfigFile,
) -> PackageInfo:
    qualified_class_name = title(camel_case(class_name))
    qualified_instance_name = title(camel_case(config.name))
    default_alias = camel_case(qualified_instance_name.lower()) + qualified_class_name

    if config.is_export_generated is not None:
        is_export_generated = config.is_export_generated
    else:
        is_export_generated = config.type != CUSTOM_TYPE

    package_root = helper.package_root()
    generated_dir = posixpath.normpath(helper.config.target_gen_dir)
    return PackageInfo(
        package_name=default_alias,
        package_alias=default_alias + "Static",
        generated_package_alias=default_alias + "Generated",
        module_package_alias=default_alias + "Module",
        package_path=posixpath.normpath(posixpath.join(package_root, relative_directory)),
        generated_package_path=posixpath.normpath(posixpath.join(package_root, generated_dir, relative_directory)),
        module_package_path=posixpath.normpath(
            posixpath.join(package_root, generated_dir, relative_directory, "module")
        ),
        qualified_instance_name=qualified_instance_name,
        export_name="New" + qualified_class_name,
        export_type=qualified_class_name,
        initializer_name="Initialize" + qualified_class_name,
        is_export_generated=is_export_generated,
    )


class InstanceReader:
    """Walks class directories under the config root and reads instances.

    A single-instance class reads the config file in its directory. A
    multi-instance class searches its directories recursively: a directory
    holding ``<className>-config.json`` is an instance, otherwise its
    subdirectories are searched. Multi-instance directories may be glob
    patterns such as ``clients/*``.
    """

    def __init__(self, system: ModuleSystem, helper: PackageHelper) -> None:
        self._system = system
        self._helper = helper
        self._base = helper.config_root()
        patterns = helper.config.instance_name_pattern
        self._patterns = {
            name: re.compile(patterns.get(name, DEFAULT_INSTANCE_NAME_PATTERN))
            for name in (mc.name for mc in system.classes())
        }

    def read_all(self) -> dict[str, list[Instance]]:
        """Instances of every registered class, keyed by class in class order."""
        return {mc.name: self.read_class(mc.name) for mc in self._system.classes()}

    def read_class(self, class_name: str) -> list[Instance]:
        module_class = self._system.get_class(class_name)
        instances: list[Instance] = []
        for directory in module_class.directories:
            if module_class.class_type is ClassType.MULTI and _GLOB_CHARS.search(directory):
                # Each match is searched like a class directory; no match means no instances.
                matches = (p for p in self._base.glob(directory) if p.is_dir() and not p.name.startswith("."))
                for match in sorted(matches):
                    instances.extend(self._read_multi(class_name, match))
                continue
            class_dir = self._base / directory
            if not class_dir.is_dir():
                raise ModuleError.instance_invalid(
                    str(class_dir), f"{class_name} class directory does not exist"
                )
            if module_class.class_type is ClassType.SINGLE:
                instances.append(self.read_instance_config(class_name, directory))
            else:
                instances.extend(self._read_multi(class_name, class_dir))

        seen: dict[str, Instance] = {}
        for instance in instances:
            if (other := seen.get(instance.instance_name)) is not None:
                raise ModuleError.instance_invalid(
                    str(instance.config_file),
                    f"{class_name} name {instance.instance_name!r} is already used by {other.config_file}",
                )
            seen[instance.instance_name] = instance
        instances.sort(key=lambda i: i.instance_name)
        log.debug("class_read", class_name=class_name, instances=len(instances))
        return instances

    def _read_multi(self, class_name: str, class_dir: Path) -> list[Instance]:
        if config_file_for(class_dir, class_name) is not None:
            relative = class_dir.relative_to(self._base).as_posix()
            return [self.read_instance_config(class_name, relative)]
        found: list[Instance] = []
        for child in sorted(class_dir.iterdir()):
            if child.is_dir() and not child.name.startswith("."):
                found.extend(self._read_multi(class_name, child))
        return found

    def read_instance_config(self, class_name: str, relative_directory: str) -> Instance:
        """Read and validate one instance from ``relative_directory``."""
        relative_directory = posixpath.normpath(relative_directory)
        directory = self._base / relative_directory
        config_file = config_file_for(directory, class_name)
        if config_file is None:
            raise ModuleError.instance_invalid(
                str(directory), f"missing {class_name}{CONFIG_FILE_SUFFIX}.json"
            )

        try:
            raw = config_file.read_bytes()
            data = _parse_config_bytes(config_file, raw)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ModuleError.instance_invalid(str(config_file), str(e)) from e
        if not isinstance(data, dict):
            raise ModuleError.instance_invalid(str(config_file), "config must be an object")

        try:
            parsed = InstanceConfigFile.model_validate(data)
        except ValidationError as e:
            err = e.errors()[0]
            where = ".".join(str(loc) for loc in err["loc"])
            raise ModuleError.instance_invalid(str(config_file), f"{where}: {err['msg']}") from e

        pattern = self._patterns.get(class_name) or re.compile(DEFAULT_INSTANCE_NAME_PATTERN)
        if not pattern.match(parsed.name):
            raise ModuleError.instance_invalid(
                str(config_file), f"name {parsed.name!r} does not match {pattern.pattern}"
            )

        try:
            generator = self._system.generator_for(class_name, parsed.type)
        except GatewayGenError as e:
            raise e.with_instance(class_name, parsed.name) from e
        if generator is not None and generator.options is not None:
            try:
                generator.options.model_validate(parsed.config)
            except ValidationError as e:
                err = e.errors()[0]
                where = ".".join(["config", *(str(loc) for loc in err["loc"])])
                raise ModuleError.instance_invalid(
                    str(config_file), f"{where}: {err['msg']}"
                ).with_instance(class_name, parsed.name) from e

        dependencies = sorted(
            {
                InstanceKey(dep_class, dep_name)
                for dep_class, names in parsed.dependencies.items()
                for dep_name in names
            }
        )
        return Instance(
            class_name=class_name,
            type_name=parsed.type,
            instance_name=parsed.name,
            base_directory=self._base,
            relative_directory=relative_directory,
            config=parsed.config,
            dependencies=tuple(dependencies),
            raw_config=raw,
            config_file=config_file,
            package_info=read_package_info(self._helper, class_name, relative_directory, parsed),
        )
