"""Module system data model.

A *class* is a kind of module (client, endpoint, service ...), a *type* is a
concrete realisation of a class with its generator, and an *instance* is one
configured module on disk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel

if TYPE_CHECKING:
    from gatewaygen.codegen.package import PackageHelper


class ClassType(StrEnum):
    """Cardinality of a module class."""

    SINGLE = "single"  # one instance at a fixed directory
    MULTI = "multi"  # one instance per config-bearing subdirectory


@dataclass(frozen=True, order=True)
class InstanceKey:
    """Canonical identity of an instance: (class_name, instance_name)."""

    class_name: str
    instance_name: str

    def __str__(self) -> str:
        return f"{self.class_name}/{self.instance_name}"

    @classmethod
    def parse(cls, value: str) -> InstanceKey:
        """Parse ``class/instance``."""
        class_name, sep, instance_name = value.partition("/")
        if not sep or not class_name or not instance_name:
            raise ValueError(f"expected <class>/<instance>, got {value!r}")
        return cls(class_name, instance_name)


@dataclass(frozen=True)
class BuildResult:
    """Output of one generator run.

    ``files`` maps paths relative to the instance's output directory to bytes.
    ``spec`` is an arbitrary value shared with ``gwgen resolve`` and hooks.
    """

    files: dict[str, bytes] = field(default_factory=dict)
    spec: Any = None


class BuildGenerator(Protocol):
    """Pure function of (ResolvedInstance, PackageHelper) to output files.

    ``version`` participates in every fingerprint of instances this generator
    builds; bump it whenever the generator's output changes shape.
    ``options`` is the pydantic model validating the instance ``config`` blob.
    """

    version: str
    options: type[BaseModel] | None

    def generate(self, instance: ResolvedInstance, helper: PackageHelper) -> BuildResult | None: ...


@dataclass
class ModuleType:
    """A (class, type) pair and the generator that builds it.

    ``generator`` is None for declared types without a generator; instances of
    such types resolve normally and are skipped at generation time.
    """

    class_name: str
    type_name: str
    generator: BuildGenerator | None = None


@dataclass
class ModuleClass:
    """A named kind of module and where its instances live."""

    name: str
    class_type: ClassType = ClassType.MULTI
    directories: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)
    depended_by: list[str] = field(default_factory=list)
    types: dict[str, ModuleType] = field(default_factory=dict)


@dataclass(frozen=True)
class PackageInfo:
    """Import names and paths for one instance's Go packages."""

    package_name: str
    package_alias: str
    generated_package_alias: str
    module_package_alias: str
    package_path: str
    generated_package_path: str
    module_package_path: str
    qualified_instance_name: str
    export_name: str
    export_type: str
    initializer_name: str
    is_export_generated: bool

    @property
    def import_package_path(self) -> str:
        """Package holding the exported type (generated or static)."""
        return self.generated_package_path if self.is_export_generated else self.package_path

    @property
    def import_package_alias(self) -> str:
        return self.generated_package_alias if self.is_export_generated else self.package_alias


@dataclass(frozen=True, eq=False)
class Instance:
    """A configured module read from ``<class>-config.json``. Immutable once read."""

    class_name: str
    type_name: str
    instance_name: str
    base_directory: Path
    relative_directory: str
    config: dict[str, Any]
    dependencies: tuple[InstanceKey, ...]
    raw_config: bytes
    config_file: Path
    package_info: PackageInfo

    @property
    def key(self) -> InstanceKey:
        return InstanceKey(self.class_name, self.instance_name)

    @property
    def directory(self) -> Path:
        return self.base_directory / self.relative_directory


@dataclass(eq=False)
class ResolvedInstance:
    """An instance enriched with its resolved dependency graph.

    ``resolved_dependencies`` holds direct dependencies and
    ``recursive_dependencies`` the transitive closure, both keyed by class and
    sorted so that peers are initialised after what they depend on.
    ``closure`` is the whole transitive closure in global emission order.
    """

    instance: Instance
    resolved_dependencies: dict[str, list[ResolvedInstance]] = field(default_factory=dict)
    recursive_dependencies: dict[str, list[ResolvedInstance]] = field(default_factory=dict)
    dependency_order: list[str] = field(default_factory=list)
    closure: list[InstanceKey] = field(default_factory=list)
    fingerprint: str = ""

    @property
    def key(self) -> InstanceKey:
        return self.instance.key

    @property
    def class_name(self) -> str:
        return self.instance.class_name

    @property
    def type_name(self) -> str:
        return self.instance.type_name

    @property
    def instance_name(self) -> str:
        return self.instance.instance_name

    @property
    def config(self) -> dict[str, Any]:
        return self.instance.config

    @property
    def package_info(self) -> PackageInfo:
        return self.instance.package_info

    @property
    def relative_directory(self) -> str:
        return self.instance.relative_directory

    def direct_dependencies(self, class_name: str) -> list[ResolvedInstance]:
        return self.resolved_dependencies.get(class_name, [])

    def __repr__(self) -> str:
        return f"ResolvedInstance({self.key})"


@dataclass
class ResolvedGraph:
    """Every resolved instance, in emission order and grouped by class."""

    class_order: list[str]
    order: list[ResolvedInstance]
    by_class: dict[str, list[ResolvedInstance]]

    def __post_init__(self) -> None:
        self._index = {ri.key: ri for ri in self.order}

    def get(self, key: InstanceKey) -> ResolvedInstance | None:
        return self._index.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __len__(self) -> int:
        return len(self.order)

    def dependents(self) -> dict[InstanceKey, set[InstanceKey]]:
        """Reverse edges: key -> instances that directly depend on it."""
        reverse: dict[InstanceKey, set[InstanceKey]] = {ri.key: set() for ri in self.order}
        for ri in self.order:
            for deps in ri.resolved_dependencies.values():
                for dep in deps:
                    reverse[dep.key].add(ri.key)
        return reverse

    def reverse_closure(self, keys: set[InstanceKey]) -> set[InstanceKey]:
        """``keys`` plus everything that transitively depends on them."""
        reverse = self.dependents()
        seen = set(keys)
        stack = list(keys)
        while stack:
            for parent in reverse.get(stack.pop(), ()):
                if parent not in seen:
                    seen.add(parent)
                    stack.append(parent)
        return seen
