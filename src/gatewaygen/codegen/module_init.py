"""Per-instance ``module`` package: dependency structs and initializer.

Every generated instance gets ``module/dependencies.go`` describing its
direct dependencies by class, and ``module/init.go`` initialising its whole
dependency closure in dependency order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from gatewaygen.codegen.base import TemplateRenderer, default_renderer, go_imports
from gatewaygen.codegen.casing import camel_case, title
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.module.models import ResolvedInstance


@dataclass(frozen=True)
class DependencyRef:
    """One dependency instance as seen from generated Go code."""

    class_name: str
    field: str
    alias: str
    path: str
    module_alias: str
    module_path: str
    export_name: str
    export_type: str
    direct: tuple[tuple[str, tuple[str, ...]], ...]  # (class title, fields) of its own deps


def class_title(class_name: str) -> str:
    return title(camel_case(class_name))


def dependency_ref(ri: ResolvedInstance) -> DependencyRef:
    info = ri.package_info
    direct = tuple(
        (class_title(cls), tuple(d.package_info.qualified_instance_name for d in deps))
        for cls, deps in ri.resolved_dependencies.items()
    )
    return DependencyRef(
        class_name=ri.class_name,
        field=info.qualified_instance_name,
        alias=info.import_package_alias,
        path=info.import_package_path,
        module_alias=info.module_package_alias,
        module_path=info.module_package_path,
        export_name=info.export_name,
        export_type=info.export_type,
        direct=direct,
    )


def _grouped(groups: dict[str, list[ResolvedInstance]], order: list[str]) -> list[dict[str, Any]]:
    return [
        {"name": cls, "title": class_title(cls), "instances": [dependency_ref(d) for d in groups[cls]]}
        for cls in order
        if groups.get(cls)
    ]


def module_context(ri: ResolvedInstance, helper: PackageHelper) -> dict[str, Any]:
    direct_order = [cls for cls in ri.dependency_order if cls in ri.resolved_dependencies]
    direct_order += sorted(set(ri.resolved_dependencies) - set(direct_order))
    direct = _grouped(ri.resolved_dependencies, direct_order)
    recursive = _grouped(ri.recursive_dependencies, ri.dependency_order)

    dep_imports = go_imports((d.alias, d.path) for group in direct for d in group["instances"])
    init_imports = go_imports(
        pair
        for group in recursive
        for d in group["instances"]
        for pair in ((d.alias, d.path), (d.module_alias, d.module_path))
    )
    return {
        "instance_name": ri.instance_name,
        "class_name": ri.class_name,
        "runtime_package": helper.runtime_package,
        "direct": direct,
        "recursive": recursive,
        "dependency_imports": dep_imports,
        "init_imports": init_imports,
    }


def module_files(
    ri: ResolvedInstance, helper: PackageHelper, renderer: TemplateRenderer | None = None
) -> dict[str, bytes]:
    renderer = renderer or default_renderer()
    context = module_context(ri, helper)
    return {
        "module/dependencies.go": renderer.render("dependencies.go.tmpl", context, helper),
        "module/init.go": renderer.render("module_init.go.tmpl", context, helper),
    }
