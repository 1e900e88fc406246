"""Service entry point and dependency-only generators."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from gatewaygen.codegen.base import GeneratorOptions, TemplateRenderer, default_renderer
from gatewaygen.codegen.module_init import dependency_ref, module_files
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.module.models import BuildResult, ResolvedInstance

ENDPOINT_CLASS = "endpoint"


class ServiceOptions(GeneratorOptions):
    service_name: str | None = Field(default=None, description="Defaults to the instance name.")
    config_files: list[str] = Field(
        default_factory=lambda: ["config/production.yaml"],
        description="Runtime config files loaded by the generated main, in order.",
    )


class ServiceGenerator:
    """Generates ``main.go`` for a gateway service plus its module package."""

    version = "1"
    options: type[GeneratorOptions] | None = ServiceOptions

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self._renderer = renderer

    def generate(self, ri: ResolvedInstance, helper: PackageHelper) -> BuildResult:
        renderer = self._renderer or default_renderer()
        options = ServiceOptions.model_validate(ri.config)
        endpoints = [dependency_ref(d) for d in ri.direct_dependencies(ENDPOINT_CLASS)]
        context: dict[str, Any] = {
            "service_name": options.service_name or ri.instance_name,
            "config_files": options.config_files,
            "module_path": ri.package_info.module_package_path,
            "runtime_package": helper.runtime_package,
            "endpoints": endpoints,
            "custom_initialisation": helper.custom_initialisation_enabled,
            "static_package": ri.package_info.package_path,
        }
        files = {"main.go": renderer.render("main.go.tmpl", context, helper)}
        files.update(module_files(ri, helper, renderer))
        return BuildResult(files=files, spec={"endpoints": [e.field for e in endpoints]})


class DependenciesGenerator:
    """For classes whose code is hand written: only the module package is generated."""

    version = "1"
    options: type[GeneratorOptions] | None = None

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self._renderer = renderer

    def generate(self, ri: ResolvedInstance, helper: PackageHelper) -> BuildResult:
        return BuildResult(files=module_files(ri, helper, self._renderer))
