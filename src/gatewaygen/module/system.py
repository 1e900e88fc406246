"""Registry of module classes, their types and generators."""

from __future__ import annotations

import posixpath
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

from gatewaygen.core.errors import ModuleError
from gatewaygen.core.logging import get_logger
from gatewaygen.module.models import BuildGenerator, ClassType, InstanceKey, ModuleClass, ModuleType

if TYPE_CHECKING:
    from gatewaygen.codegen.package import PackageHelper
    from gatewaygen.module.models import ResolvedInstance

log = get_logger("module")


class PostGenHook(Protocol):
    """Runs after generation over every freshly generated instance.

    ``specs`` holds each instance's ``BuildResult.spec``. Returns extra files
    per instance, relative to the instance's output directory. They are
    staged and committed with the instance's own files.
    """

    name: str
    version: str

    def run(
        self,
        instances: list[ResolvedInstance],
        specs: Mapping[InstanceKey, Any],
        helper: PackageHelper,
    ) -> dict[InstanceKey, dict[str, bytes]]: ...


def _clean_dir(class_name: str, directory: str) -> str:
    cleaned = posixpath.normpath(directory.replace("\\", "/"))
    if cleaned.startswith("..") or posixpath.isabs(cleaned):
        raise ModuleError.class_invalid(
            class_name, f"must map to internal directories but found {directory!r}"
        )
    return cleaned


class ModuleSystem:
    """Classes, types and generators, registered once then read-only.

    Class order is derived from class dependencies: classes are grouped by
    their height in the class DAG (classes without dependencies first) and
    sorted by name within a group.
    """

    def __init__(self) -> None:
        self._classes: dict[str, ModuleClass] = {}
        self._hooks: dict[str, PostGenHook] = {}
        self._class_order: list[str] | None = None

    def register_class(self, module_class: ModuleClass) -> None:
        """Register a class. Its directories are cleaned, deduplicated and sorted."""
        name = module_class.name
        if not name:
            raise ModuleError.class_invalid(name, "a module class name must not be empty")
        if name in self._classes:
            raise ModuleError.class_invalid(name, "already defined")
        module_class.directories = sorted({_clean_dir(name, d) for d in module_class.directories})
        if module_class.class_type is ClassType.SINGLE and len(module_class.directories) > 1:
            raise ModuleError.class_invalid(name, "a single-instance class maps to one directory")
        self._classes[name] = module_class
        self._class_order = None

    def register_class_dir(self, class_name: str, directory: str) -> None:
        """Add a search directory to an already registered class."""
        module_class = self.get_class(class_name)
        cleaned = _clean_dir(class_name, directory)
        if cleaned in module_class.directories:
            return
        if module_class.class_type is ClassType.SINGLE and module_class.directories:
            raise ModuleError.class_invalid(class_name, "a single-instance class maps to one directory")
        module_class.directories.append(cleaned)

    def register_class_type(
        self, class_name: str, type_name: str, generator: BuildGenerator | None = None
    ) -> None:
        """Register ``type_name`` for ``class_name`` with its generator.

        A type registered without a generator is known to the resolver but
        its instances are skipped at generation time.
        """
        module_class = self._classes.get(class_name)
        if module_class is None:
            raise ModuleError.class_invalid(
                class_name, f"cannot set class type {type_name!r} for an undefined class"
            )
        if type_name in module_class.types:
            raise ModuleError.class_invalid(class_name, f"the class type {type_name!r} is already defined")
        module_class.types[type_name] = ModuleType(class_name, type_name, generator)

    def register_post_gen_hook(self, hook: PostGenHook) -> None:
        if hook.name in self._hooks:
            raise ModuleError.class_invalid(hook.name, "post-generation hook already registered")
        self._hooks[hook.name] = hook

    def post_gen_hooks(self) -> list[PostGenHook]:
        return [self._hooks[name] for name in sorted(self._hooks)]

    def classes(self) -> list[ModuleClass]:
        """Registered classes in class order."""
        return [self._classes[name] for name in self.class_order()]

    def get_class(self, class_name: str) -> ModuleClass:
        module_class = self._classes.get(class_name)
        if module_class is None:
            raise ModuleError.unknown_class(class_name)
        return module_class

    def module_type(self, class_name: str, type_name: str) -> ModuleType:
        module_class = self.get_class(class_name)
        module_type = module_class.types.get(type_name)
        if module_type is None:
            raise ModuleError.unknown_type(class_name, type_name)
        return module_type

    def generator_for(self, class_name: str, type_name: str) -> BuildGenerator | None:
        """The generator for (class, type), or None when the type has none.

        Unknown classes and types raise.
        """
        return self.module_type(class_name, type_name).generator

    def generator_version(self, class_name: str, type_name: str) -> str:
        generator = self.generator_for(class_name, type_name)
        return generator.version if generator is not None else ""

    def option_schema(self, class_name: str, type_name: str) -> dict[str, Any] | None:
        """JSON schema of the instance ``config`` blob for (class, type)."""
        generator = self.generator_for(class_name, type_name)
        if generator is None or generator.options is None:
            return None
        return generator.options.model_json_schema(by_alias=True)

    def class_dependencies(self, class_name: str) -> list[str]:
        """Classes ``class_name`` depends on, from both dependsOn and dependedBy."""
        deps = list(self.get_class(class_name).depends_on)
        for other in self._classes.values():
            if class_name in other.depended_by and other.name not in deps:
                deps.append(other.name)
        return deps

    def class_order(self) -> list[str]:
        if self._class_order is None:
            self._class_order = self._resolve_class_order()
        return list(self._class_order)

    def _resolve_class_order(self) -> list[str]:
        for module_class in self._classes.values():
            for dep in module_class.depends_on:
                if dep not in self._classes:
                    raise ModuleError.class_invalid(module_class.name, f"depends on {dep!r} which is not defined")
            for dep in module_class.depended_by:
                if dep not in self._classes:
                    raise ModuleError.class_invalid(
                        module_class.name, f"is depended by {dep!r} which is not defined"
                    )

        heights: dict[str, int] = {}
        for name in sorted(self._classes):
            self._height(name, heights, [])
        return sorted(self._classes, key=lambda n: (heights[n], n))

    def _height(self, name: str, known: dict[str, int], seen: list[str]) -> int:
        if name in seen:
            raise ModuleError.cycle_detected([*seen[seen.index(name) :], name])
        if name in known:
            return known[name]
        deps = self.class_dependencies(name)
        height = 0
        for dep in deps:
            height = max(height, self._height(dep, known, [*seen, name]) + 1)
        known[name] = height
        return height

    def describe(self) -> Iterable[tuple[str, str, bool]]:
        """(class, type, has_generator) for every registered type."""
        for module_class in self.classes():
            for type_name in sorted(module_class.types):
                yield module_class.name, type_name, module_class.types[type_name].generator is not None
