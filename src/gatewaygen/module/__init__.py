"""Module system: classes, instances and dependency resolution."""

from gatewaygen.module.models import (
    BuildGenerator,
    BuildResult,
    ClassType,
    Instance,
    InstanceKey,
    ModuleClass,
    ModuleType,
    PackageInfo,
    ResolvedGraph,
    ResolvedInstance,
)
from gatewaygen.module.reader import InstanceReader
from gatewaygen.module.resolver import resolve_instances
from gatewaygen.module.system import ModuleSystem, PostGenHook

__all__ = [
    "BuildGenerator",
    "BuildResult",
    "ClassType",
    "Instance",
    "InstanceKey",
    "InstanceReader",
    "ModuleClass",
    "ModuleSystem",
    "ModuleType",
    "PackageInfo",
    "PostGenHook",
    "ResolvedGraph",
    "ResolvedInstance",
    "resolve_instances",
]
