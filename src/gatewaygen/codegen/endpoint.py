"""Endpoint generators.

An endpoint forwards each of its handlers to one exposed method of a client
it depends on. Client methods are derived from the client's own config and
IDL, so an endpoint's output depends only on inputs covered by its
dependencies' fingerprints.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from gatewaygen.codegen.base import GeneratorOptions, TemplateRenderer, default_renderer, go_imports
from gatewaygen.codegen.casing import camel_case, pascal_case
from gatewaygen.codegen.client import ClientMethod, ClientSpec, build_client_spec
from gatewaygen.codegen.module_init import module_files
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.core.errors import ModuleError
from gatewaygen.module.models import BuildResult, ResolvedInstance

CLIENT_CLASS = "client"


class MiddlewareRef(GeneratorOptions):
    name: str
    options: dict[str, Any] = Field(default_factory=dict)


class HandlerOptions(GeneratorOptions):
    handle_id: str
    client: str = Field(description="Client instance name; must be a dependency.")
    client_method: str = Field(description="Exported client method to forward to.")
    http_method: str = "POST"
    path: str | None = None
    middlewares: list[MiddlewareRef] = Field(default_factory=list)


class EndpointOptions(GeneratorOptions):
    """``config`` of http, tchannel and grpc endpoints.

    Without ``handlers`` the endpoint forwards every exposed method of every
    client it depends on.
    """

    endpoint_id: str | None = None
    handlers: list[HandlerOptions] = Field(default_factory=list)
    middlewares: list[MiddlewareRef] = Field(
        default_factory=list, description="Middlewares applied to every handler."
    )


def _default_handlers(endpoint_id: str, clients: list[ClientSpec]) -> list[HandlerOptions]:
    return [
        HandlerOptions(
            handle_id=camel_case(f"{spec.instance_name}_{m.exported_name}"),
            client=spec.instance_name,
            client_method=m.exported_name,
            path=f"/{endpoint_id}/{spec.instance_name}/{camel_case(m.exported_name)}",
        )
        for spec in clients
        for m in spec.methods
    ]


class EndpointGenerator:
    """Generates an endpoint package: registration, handlers and module package."""

    version = "1"
    options: type[GeneratorOptions] | None = EndpointOptions

    def __init__(self, endpoint_type: str, renderer: TemplateRenderer | None = None) -> None:
        self.endpoint_type = endpoint_type
        self._renderer = renderer

    @property
    def renderer(self) -> TemplateRenderer:
        return self._renderer or default_renderer()

    def _invalid(self, ri: ResolvedInstance, reason: str) -> ModuleError:
        return ModuleError.instance_invalid(str(ri.instance.config_file), reason)

    def _handler_context(
        self,
        ri: ResolvedInstance,
        handler: HandlerOptions,
        clients: dict[str, ClientSpec],
        shared_middlewares: list[MiddlewareRef],
        helper: PackageHelper,
    ) -> dict[str, Any]:
        spec = clients.get(handler.client)
        if spec is None:
            raise self._invalid(
                ri, f"handler {handler.handle_id!r} uses client {handler.client!r} which is not a dependency"
            )
        method: ClientMethod | None = spec.method(handler.client_method)
        if method is None:
            raise self._invalid(
                ri,
                f"handler {handler.handle_id!r}: client {handler.client!r} "
                f"exposes no method {handler.client_method!r}",
            )
        known = helper.middleware_specs()
        middlewares = [*shared_middlewares, *handler.middlewares]
        for mw in middlewares:
            if mw.name not in known:
                raise self._invalid(ri, f"handler {handler.handle_id!r} uses unknown middleware {mw.name!r}")
        return {
            "handle_id": handler.handle_id,
            "struct_name": pascal_case(handler.handle_id) + "Handler",
            "file_name": f"{camel_case(handler.handle_id).lower()}_handler.go",
            "client_field": spec.info_field,
            "method": method,
            "http_method": handler.http_method.upper(),
            "path": handler.path or f"/{handler.handle_id}",
            "middlewares": [
                {
                    "name": mw.name,
                    "alias": camel_case(mw.name) + "Middleware",
                    "import_path": known[mw.name].import_path,
                }
                for mw in middlewares
            ],
            "imports": spec.imports,
        }

    def generate(self, ri: ResolvedInstance, helper: PackageHelper) -> BuildResult:
        options = EndpointOptions.model_validate(ri.config)
        endpoint_id = options.endpoint_id or ri.instance_name
        clients = {
            dep.instance_name: build_client_spec(dep.instance, helper)
            for dep in ri.direct_dependencies(CLIENT_CLASS)
        }
        handlers = options.handlers or _default_handlers(endpoint_id, list(clients.values()))
        seen: set[str] = set()
        for h in handlers:
            if h.handle_id in seen:
                raise self._invalid(ri, f"duplicate handleId {h.handle_id!r}")
            seen.add(h.handle_id)

        handler_contexts = [
            self._handler_context(ri, h, clients, options.middlewares, helper) for h in handlers
        ]
        info = ri.package_info
        base = {
            "package_name": info.package_name,
            "endpoint_id": endpoint_id,
            "endpoint_type": self.endpoint_type,
            "instance_name": ri.instance_name,
            "module_path": info.module_package_path,
            "runtime_package": helper.runtime_package,
            "trace_key": helper.trace_key,
            "staging_req_header": helper.staging_req_header,
            "deputy_req_header": helper.deputy_req_header,
            "default_headers": helper.default_headers,
            "qps_levels_enabled": helper.qps_levels_enabled,
        }
        files: dict[str, bytes] = {}
        for hc in handler_contexts:
            files[hc["file_name"]] = self.renderer.render("endpoint_handler.go.tmpl", {**base, "handler": hc}, helper)
        middleware_imports = go_imports(
            (mw["alias"], mw["import_path"]) for hc in handler_contexts for mw in hc["middlewares"]
        )
        files["endpoint.go"] = self.renderer.render(
            "endpoint.go.tmpl",
            {
                **base,
                "handlers": handler_contexts,
                "clients": sorted(clients),
                "middleware_imports": middleware_imports,
            },
            helper,
        )
        files.update(module_files(ri, helper, self.renderer))
        return BuildResult(files=files, spec={"endpoint_id": endpoint_id, "handlers": [h.handle_id for h in handlers]})
