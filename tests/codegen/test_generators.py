"""Tests for the built-in generators and the mock hook."""

from pathlib import Path

import pytest

from gatewaygen.codegen.client import ClientSpec, build_client_spec
from gatewaygen.codegen.mock import ClientMockGenHook
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.codegen.system import new_default_module_system
from gatewaygen.core.errors import ErrorCode, ModuleError
from gatewaygen.module.models import InstanceKey, ResolvedGraph
from gatewaygen.module.reader import InstanceReader
from gatewaygen.module.resolver import resolve_instances

ECHO_PROTO = """\
syntax = "proto3";
package echo;

message Request {
  string message = 1;
}

message Response {
  string message = 1;
}

service Echo {
  rpc Echo (Request) returns (Response);
  rpc Tail (Request) returns (stream Response);
}
"""

MIRROR_THRIFT = """\
namespace go mirror

typedef i64 Millis (js.type = "Date")

struct Request {
  1: required string message
  2: optional Millis sentAt
}

struct Response {
  1: required string message
}

service Mirror {
  Response mirror(1: Request request)
  void ping()
}
"""

SEARCH_PATHS = {"client": ["clients"], "endpoint": ["endpoints"], "service": ["services"]}


@pytest.fixture
def gateway(write_instance, write_file) -> None:
    write_file("idl/clients/echo/echo.proto", ECHO_PROTO)
    write_file("idl/clients/mirror/mirror.thrift", MIRROR_THRIFT)
    write_instance("clients/echo", "client", "echo", "grpc", config={"idlFile": "echo/echo.proto"})
    write_instance(
        "clients/mirror",
        "client",
        "mirror",
        "http",
        config={"idlFile": "mirror/mirror.thrift", "exposedMethods": {"Mirror::mirror": "Reflect"}},
    )
    write_instance("endpoints/bounce", "endpoint", "bounce", "http", dependencies={"client": ["echo", "mirror"]})
    write_instance("services/gateway", "service", "gateway", "gateway", dependencies={"endpoint": ["bounce"]})


@pytest.fixture
def resolve(build_config):
    def run(**overrides) -> tuple[PackageHelper, ResolvedGraph]:
        config = build_config(module_search_paths=SEARCH_PATHS, **overrides)
        system = new_default_module_system(config.module_search_paths)
        helper = PackageHelper(config)
        instances = InstanceReader(system, helper).read_all()
        return helper, resolve_instances(instances, system.class_order(), config.default_dependencies)

    return run


def _generate(helper: PackageHelper, graph: ResolvedGraph, class_name: str, name: str):
    ri = graph.get(InstanceKey(class_name, name))
    generator = new_default_module_system().generator_for(ri.class_name, ri.type_name)
    return ri, generator.generate(ri, helper)


@pytest.mark.usefixtures("gateway")
class TestClientGenerator:
    """Client packages expose IDL methods as Go interface methods."""

    def test_grpc_client_files(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "client", "echo")

        assert set(result.files) == {"echo.go", "module/dependencies.go", "module/init.go"}
        text = result.files["echo.go"].decode()
        assert text.startswith("package echoClient\n")
        assert (
            "EchoEcho(ctx context.Context, request *clientsEchoEcho.Request) (*clientsEchoEcho.Response, error)"
            in text
        )
        assert 'clientsEchoEcho "github.com/example/gateway/build/idl/clients/echo/echo"' in text
        assert '"echo.Echo::Echo"' in text

    def test_streaming_methods_are_skipped(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "client", "echo")

        assert isinstance(result.spec, ClientSpec)
        assert [m.exported_name for m in result.spec.methods] == ["EchoEcho"]

    def test_thrift_client_exposed_methods(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "client", "mirror")

        (method,) = result.spec.methods
        assert method.exported_name == "Reflect"
        assert method.service_method == "Mirror::mirror"
        assert method.request_type == "*clientsMirrorMirror.Mirror_Mirror_Args"
        assert method.response_type == "*clientsMirrorMirror.Response"

    def test_js_typed_fields_get_json_types_file(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "client", "mirror")

        text = result.files["json_types.go"].decode()
        assert '"Millis": "Date",' in text
        assert '"Request.sentAt": "Date",' in text

    def test_copyright_header_is_prefixed(self, resolve, write_file) -> None:
        write_file("COPYRIGHT", "Copyright (c) Example\nAll rights reserved.\n")
        helper, graph = resolve(copyright_header="COPYRIGHT")

        _, result = _generate(helper, graph, "client", "echo")

        for content in result.files.values():
            assert content.decode().startswith("// Copyright (c) Example\n// All rights reserved.\n\npackage ")

    def test_unknown_exposed_method(self, resolve, write_instance) -> None:
        write_instance(
            "clients/mirror",
            "client",
            "mirror",
            "http",
            config={"idlFile": "mirror/mirror.thrift", "exposedMethods": {"Mirror::nope": "Nope"}},
        )
        helper, graph = resolve()

        with pytest.raises(ModuleError, match="unknown IDL methods: Mirror::nope"):
            build_client_spec(graph.get(InstanceKey("client", "mirror")).instance, helper)

    def test_exposing_a_streaming_method(self, resolve, write_instance) -> None:
        write_instance(
            "clients/echo",
            "client",
            "echo",
            "grpc",
            config={"idlFile": "echo/echo.proto", "exposedMethods": {"Echo::Tail": "Tail"}},
        )
        helper, graph = resolve()

        with pytest.raises(ModuleError, match="streaming method Echo::Tail"):
            build_client_spec(graph.get(InstanceKey("client", "echo")).instance, helper)

    def test_duplicate_exported_names_are_rejected_when_read(self, resolve, write_instance) -> None:
        write_instance(
            "clients/mirror",
            "client",
            "mirror",
            "http",
            config={
                "idlFile": "mirror/mirror.thrift",
                "exposedMethods": {"Mirror::mirror": "Same", "Mirror::ping": "Same"},
            },
        )

        with pytest.raises(ModuleError) as exc_info:
            resolve()

        assert exc_info.value.code == ErrorCode.INSTANCE_INVALID


@pytest.mark.usefixtures("gateway")
class TestModulePackage:
    """``module/`` files describe direct dependencies and the init order."""

    def test_endpoint_dependencies(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "endpoint", "bounce")

        text = result.files["module/dependencies.go"].decode()
        assert "Client *ClientDependencies" in text
        assert "\tEcho echoClientGenerated.Client\n" in text
        assert "\tMirror mirrorClientGenerated.Client\n" in text
        assert text.index("Echo echoClientGenerated") < text.index("Mirror mirrorClientGenerated")

    def test_client_without_dependencies(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "client", "echo")

        text = result.files["module/dependencies.go"].decode()
        assert "Default *zanzibar.DefaultDependencies" in text
        assert "ClientDependencies" not in text

    def test_service_init_follows_dependency_order(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "service", "gateway")

        text = result.files["module/init.go"].decode()
        echo = text.index("initializedClientDependencies.Echo = echoClientGenerated.NewClient(")
        mirror = text.index("initializedClientDependencies.Mirror = mirrorClientGenerated.NewClient(")
        bounce = text.index("initializedEndpointDependencies.Bounce = bounceEndpointGenerated.NewEndpoint(")
        assert echo < mirror < bounce
        assert "Echo: initializedClientDependencies.Echo," in text


@pytest.mark.usefixtures("gateway")
class TestEndpointAndService:
    def test_default_handlers_forward_every_method(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "endpoint", "bounce")

        assert result.spec == {"endpoint_id": "bounce", "handlers": ["echoEchoEcho", "mirrorReflect"]}
        assert {"endpoint.go", "echoechoecho_handler.go", "mirrorreflect_handler.go"} <= set(result.files)
        handler = result.files["mirrorreflect_handler.go"].decode()
        assert "h.Dependencies.Client.Mirror.Reflect(ctx, request)" in handler
        endpoint = result.files["endpoint.go"].decode()
        assert '"POST", "/bounce/mirror/reflect"' in endpoint

    def test_default_handlers_of_clients_sharing_an_idl(self, resolve, write_instance) -> None:
        """Two clients of one IDL service get one handler each, named after the client."""
        write_instance("clients/replica", "client", "replica", "grpc", config={"idlFile": "echo/echo.proto"})
        write_instance(
            "endpoints/bounce", "endpoint", "bounce", "http", dependencies={"client": ["echo", "replica"]}
        )
        helper, graph = resolve()

        _, result = _generate(helper, graph, "endpoint", "bounce")

        assert sorted(result.spec["handlers"]) == ["echoEchoEcho", "replicaEchoEcho"]
        assert {"echoechoecho_handler.go", "replicaechoecho_handler.go"} <= set(result.files)
        assert "h.Dependencies.Client.Replica.EchoEcho(ctx, request)" in result.files[
            "replicaechoecho_handler.go"
        ].decode()
        endpoint = result.files["endpoint.go"].decode()
        assert '"/bounce/echo/echoEcho"' in endpoint
        assert '"/bounce/replica/echoEcho"' in endpoint

    def test_handler_for_client_that_is_not_a_dependency(self, resolve, write_instance) -> None:
        write_instance(
            "endpoints/bounce",
            "endpoint",
            "bounce",
            "http",
            dependencies={"client": ["echo"]},
            config={"handlers": [{"handleId": "reflect", "client": "mirror", "clientMethod": "Reflect"}]},
        )
        helper, graph = resolve()

        with pytest.raises(ModuleError, match="not a dependency"):
            _generate(helper, graph, "endpoint", "bounce")

    def test_handler_with_unknown_middleware(self, resolve, write_instance) -> None:
        write_instance(
            "endpoints/bounce",
            "endpoint",
            "bounce",
            "http",
            dependencies={"client": ["echo"]},
            config={"middlewares": [{"name": "auth"}]},
        )
        helper, graph = resolve()

        with pytest.raises(ModuleError, match="unknown middleware 'auth'"):
            _generate(helper, graph, "endpoint", "bounce")

    def test_service_main_registers_endpoints(self, resolve) -> None:
        helper, graph = resolve()

        _, result = _generate(helper, graph, "service", "gateway")

        main = result.files["main.go"].decode()
        assert main.startswith("package main\n")
        assert "deps.Endpoint.Bounce.Register(gateway)" in main
        assert 'config.MustSetString("serviceName", "gateway")' in main
        assert result.spec == {"endpoints": ["Bounce"]}


@pytest.mark.usefixtures("gateway")
class TestClientMockHook:
    """Mocks are generated for regenerated clients when genMock is set."""

    def _run(self, helper: PackageHelper, graph: ResolvedGraph):
        specs = {}
        instances = []
        for name in ("echo", "mirror"):
            ri, result = _generate(helper, graph, "client", name)
            specs[ri.key] = result.spec
            instances.append(ri)
        instances.append(graph.get(InstanceKey("endpoint", "bounce")))
        return ClientMockGenHook("client").run(instances, specs, helper)

    def test_disabled_by_default(self, resolve) -> None:
        helper, graph = resolve()

        assert self._run(helper, graph) == {}

    def test_mock_per_client(self, resolve) -> None:
        helper, graph = resolve(gen_mock=True)

        result = self._run(helper, graph)

        assert set(result) == {InstanceKey("client", "echo"), InstanceKey("client", "mirror")}
        mock = result[InstanceKey("client", "echo")]["mock-client/mock_client.go"].decode()
        assert "func NewMockClient(ctrl *gomock.Controller) *MockClient" in mock
        assert "var _ echoClientGenerated.Client = (*MockClient)(nil)" in mock

    def test_fixture_types(self, resolve, write_instance) -> None:
        write_instance(
            "clients/echo",
            "client",
            "echo",
            "grpc",
            config={
                "idlFile": "echo/echo.proto",
                "fixture": {"importPath": "example.com/fixture", "scenarios": {"EchoEcho": ["success", "not_found"]}},
            },
        )
        helper, graph = resolve(gen_mock=True)

        files = self._run(helper, graph)[InstanceKey("client", "echo")]

        fixture = files["mock-client/fixture_types.go"].decode()
        assert "EchoEcho *EchoEchoScenarios" in fixture
        assert 'NotFound *fixture.Scenario `scenario:"not_found"`' in fixture


class TestCustomClient:
    def test_only_module_package(self, resolve, write_instance, tmp_path: Path) -> None:
        (tmp_path / "endpoints").mkdir()
        (tmp_path / "services").mkdir()
        write_instance("clients/legacy", "client", "legacy", "custom", config={"customImportPath": "x/legacy"})
        helper, graph = resolve()

        _, result = _generate(helper, graph, "client", "legacy")

        assert set(result.files) == {"module/dependencies.go", "module/init.go"}
        assert result.spec.client_type == "custom"
        assert result.spec.methods == []
