"""Client generators and the client spec shared with endpoints and mocks."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from gatewaygen.codegen.base import GeneratorOptions, TemplateRenderer, default_renderer, go_imports
from gatewaygen.codegen.casing import pascal_case
from gatewaygen.codegen.gotypes import go_reference_type, go_type
from gatewaygen.codegen.module_init import module_files
from gatewaygen.codegen.package import IDL_FILE_KEYS, PackageHelper
from gatewaygen.core.errors import ModuleError
from gatewaygen.idl.models import Function, IDLModule, JSTypedField, TypeKind
from gatewaygen.module.models import BuildResult, Instance, ResolvedInstance

STREAMING_ANNOTATIONS = ("grpc.client_streaming", "grpc.server_streaming")


class FixtureOptions(GeneratorOptions):
    """Mock fixture wiring: exported method name -> scenario names."""

    import_path: str
    scenarios: dict[str, list[str]] = Field(default_factory=dict)


class ClientOptions(GeneratorOptions):
    """``config`` of http, tchannel and grpc clients."""

    idl_file: str = Field(
        validation_alias=AliasChoices(*IDL_FILE_KEYS),
        description="IDL file, relative to the class IDL directory.",
    )
    exposed_methods: dict[str, str] = Field(
        default_factory=dict,
        description="IDL 'Service::method' -> exported client method name. Empty exposes every method.",
    )
    custom_import_path: str | None = None
    sidecar_router: str | None = None
    fixture: FixtureOptions | None = None

    @field_validator("exposed_methods")
    @classmethod
    def validate_exposed_methods(cls, v: dict[str, str]) -> dict[str, str]:
        seen: dict[str, str] = {}
        for method, name in v.items():
            if "::" not in method:
                raise ValueError(f"{method!r} must be of the form Service::method")
            if name in seen:
                raise ValueError(f"exported name {name!r} is used by both {seen[name]!r} and {method!r}")
            seen[name] = method
        return v


class CustomClientOptions(GeneratorOptions):
    """``config`` of custom clients, whose implementation is hand written."""

    custom_import_path: str
    idl_file: str | None = Field(
        default=None,
        validation_alias=AliasChoices(*IDL_FILE_KEYS),
    )
    exposed_methods: dict[str, str] = Field(default_factory=dict)
    fixture: FixtureOptions | None = None


@dataclass(frozen=True)
class ClientMethod:
    service: str
    method: str
    exported_name: str
    service_method: str  # wire identifier, "Service::method"
    request_type: str | None
    response_type: str | None  # as returned, pointer for structs
    response_value_type: str | None  # the type to allocate
    function: Function

    @property
    def signature(self) -> str:
        params = ["ctx context.Context"]
        if self.request_type:
            params.append(f"request {self.request_type}")
        results = f"({self.response_type}, error)" if self.response_type else "error"
        return f"{self.exported_name}({', '.join(params)}) {results}"


@dataclass
class ClientSpec:
    """What endpoints and mocks need to know about one client instance."""

    instance_name: str
    client_type: str
    package_name: str
    info_field: str  # field name in ClientDependencies
    idl_file: Path | None
    idl: IDLModule | None
    methods: list[ClientMethod] = field(default_factory=list)
    imports: list[tuple[str, str]] = field(default_factory=list)
    js_fields: list[JSTypedField] = field(default_factory=list)
    fixture: FixtureOptions | None = None

    def method(self, exported_name: str) -> ClientMethod | None:
        for m in self.methods:
            if m.exported_name == exported_name:
                return m
        return None


def _request_type(helper: PackageHelper, idl: IDLModule, service: str, fn: Function, pkg: str) -> str | None:
    if not fn.arguments:
        return None
    if idl.syntax == "proto" or idl.is_unwrapped(fn, helper.annotation_prefix):
        return go_reference_type(helper, fn.arguments[0].type)
    return f"*{pkg}.{pascal_case(service)}_{pascal_case(fn.name)}_Args"


def _service_method(idl: IDLModule, service: str, fn: Function) -> str:
    if idl.syntax == "proto" and idl.package_path:
        return f"{idl.package_path}.{service}::{fn.name}"
    return f"{service}::{fn.name}"


def build_client_spec(instance: Instance, helper: PackageHelper) -> ClientSpec:
    """Collect the exposed methods of a client from its config and IDL."""
    config = instance.config
    idl = helper.load_idl(instance)
    idl_file = helper.idl_path_for_instance(instance)
    exposed: dict[str, str] = dict(config.get("exposedMethods") or {})
    spec = ClientSpec(
        instance_name=instance.instance_name,
        client_type=instance.type_name,
        package_name=instance.package_info.package_name,
        info_field=instance.package_info.qualified_instance_name,
        idl_file=idl_file,
        idl=idl,
    )
    fixture = config.get("fixture")
    if fixture:
        spec.fixture = FixtureOptions.model_validate(fixture)
    if idl is None or idl_file is None:
        if exposed:
            raise ModuleError.instance_invalid(str(instance.config_file), "exposedMethods requires an IDL file")
        return spec

    pkg = helper.type_package_name(idl_file)
    imports = {(pkg, helper.type_import_path(idl_file, instance.class_name))}
    available: dict[str, tuple[str, Function]] = {}
    for svc in idl.services:
        for fn in idl.functions(svc):
            available[f"{svc.name}::{fn.name}"] = (svc.name, fn)

    unknown = sorted(set(exposed) - set(available))
    if unknown:
        raise ModuleError.instance_invalid(
            str(instance.config_file), f"exposedMethods names unknown IDL methods: {', '.join(unknown)}"
        )

    for key in sorted(available):
        if exposed and key not in exposed:
            continue
        service, fn = available[key]
        if any(fn.annotations.get(a) == "true" for a in STREAMING_ANNOTATIONS):
            if key in exposed:
                raise ModuleError.instance_invalid(
                    str(instance.config_file), f"streaming method {key} cannot be exposed"
                )
            continue
        ret = fn.return_type
        spec.methods.append(
            ClientMethod(
                service=service,
                method=fn.name,
                exported_name=exposed.get(key) or pascal_case(service) + pascal_case(fn.name),
                service_method=_service_method(idl, service, fn),
                request_type=_request_type(helper, idl, service, fn, pkg),
                response_type=go_reference_type(helper, ret) if ret else None,
                response_value_type=go_type(helper, ret) if ret else None,
                function=fn,
            )
        )
        for file in sorted(idl.referenced_packages(fn)):
            imports.add((helper.type_package_name(file), helper.type_import_path(file, instance.class_name)))

    spec.imports = go_imports(imports)
    spec.js_fields = idl.js_typed_i64_fields(helper.annotation_prefix)

    if spec.fixture is not None:
        missing = sorted(m for m in spec.fixture.scenarios if spec.method(m) is None)
        if missing:
            raise ModuleError.instance_invalid(
                str(instance.config_file), f"fixture scenarios name methods that are not exposed: {', '.join(missing)}"
            )
    return spec


def _is_struct_response(method: ClientMethod) -> bool:
    ret = method.function.return_type
    return ret is not None and ret.root().kind is TypeKind.STRUCT


class ClientGenerator:
    """Generates the client package of an http, tchannel or grpc client."""

    version = "1"
    options: type[GeneratorOptions] | None = ClientOptions

    def __init__(self, client_type: str, renderer: TemplateRenderer | None = None) -> None:
        self.client_type = client_type
        self._renderer = renderer

    @property
    def renderer(self) -> TemplateRenderer:
        return self._renderer or default_renderer()

    def context(self, ri: ResolvedInstance, spec: ClientSpec, helper: PackageHelper) -> dict[str, Any]:
        info = ri.package_info
        return {
            "spec": spec,
            "package_name": info.package_name,
            "client_type": self.client_type,
            "instance_name": ri.instance_name,
            "struct_name": info.package_name,
            "export_name": info.export_name,
            "export_type": info.export_type,
            "module_path": info.module_package_path,
            "imports": spec.imports,
            "methods": [
                {"m": m, "struct_response": _is_struct_response(m)} for m in spec.methods
            ],
            "sidecar_router": ri.config.get("sidecarRouter"),
            "runtime_package": helper.runtime_package,
        }

    def generate(self, ri: ResolvedInstance, helper: PackageHelper) -> BuildResult:
        spec = build_client_spec(ri.instance, helper)
        context = self.context(ri, spec, helper)
        files = {f"{ri.instance_name.lower()}.go": self.renderer.render("client.go.tmpl", context, helper)}
        if spec.js_fields:
            files["json_types.go"] = self.renderer.render("json_types.go.tmpl", context, helper)
        files.update(module_files(ri, helper, self.renderer))
        return BuildResult(files=files, spec=spec)


class CustomClientGenerator:
    """Custom clients only get their module package; the export is hand written."""

    version = "1"
    options: type[GeneratorOptions] | None = CustomClientOptions

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self._renderer = renderer

    def generate(self, ri: ResolvedInstance, helper: PackageHelper) -> BuildResult:
        spec = build_client_spec(ri.instance, helper)
        spec.client_type = "custom"
        return BuildResult(files=module_files(ri, helper, self._renderer), spec=spec)
