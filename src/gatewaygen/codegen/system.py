"""The default module system: built-in classes, types and generators."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from gatewaygen.codegen.base import TemplateRenderer, default_renderer
from gatewaygen.codegen.client import ClientGenerator, CustomClientGenerator
from gatewaygen.codegen.endpoint import EndpointGenerator
from gatewaygen.codegen.mock import ClientMockGenHook
from gatewaygen.codegen.service import DependenciesGenerator, ServiceGenerator
from gatewaygen.module.models import ClassType, ModuleClass
from gatewaygen.module.system import ModuleSystem

TRANSPORT_TYPES = ("http", "tchannel", "grpc")


def new_default_module_system(
    module_search_paths: Mapping[str, Sequence[str]] | None = None,
    renderer: TemplateRenderer | None = None,
) -> ModuleSystem:
    """Register client, middleware, adapter, endpoint and service classes.

    ``module_search_paths`` (class -> directories) come from the build
    config. Unknown class names there raise ``unknown-class``.
    """
    renderer = renderer or default_renderer()
    system = ModuleSystem()

    system.register_class(ModuleClass("client", ClassType.MULTI))
    for client_type in TRANSPORT_TYPES:
        system.register_class_type("client", client_type, ClientGenerator(client_type, renderer))
    system.register_class_type("client", "custom", CustomClientGenerator(renderer))

    system.register_class(ModuleClass("middleware", ClassType.MULTI))
    system.register_class_type("middleware", "default", DependenciesGenerator(renderer))

    system.register_class(ModuleClass("adapter", ClassType.MULTI))
    system.register_class_type("adapter", "default", DependenciesGenerator(renderer))

    system.register_class(ModuleClass("endpoint", ClassType.MULTI, depends_on=["client", "middleware"]))
    for endpoint_type in TRANSPORT_TYPES:
        system.register_class_type("endpoint", endpoint_type, EndpointGenerator(endpoint_type, renderer))

    system.register_class(ModuleClass("service", ClassType.MULTI, depends_on=["endpoint"]))
    system.register_class_type("service", "gateway", ServiceGenerator(renderer))

    system.register_post_gen_hook(ClientMockGenHook("client", renderer))

    for class_name, directories in (module_search_paths or {}).items():
        for directory in directories:
            system.register_class_dir(class_name, directory)
    return system
