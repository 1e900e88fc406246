"""Tests for PackageHelper path and import resolution."""

import json
from pathlib import Path

import pytest

from gatewaygen.codegen.client import ClientOptions
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.core.errors import ConfigError, ErrorCode, OutputError
from gatewaygen.module.models import Instance, PackageInfo


def _instance(tmp_path: Path, class_name: str, config: dict) -> Instance:
    info = PackageInfo(
        package_name="echoClient",
        package_alias="echoClientStatic",
        generated_package_alias="echoClientGenerated",
        module_package_alias="echoClientModule",
        package_path="github.com/example/gateway/clients/echo",
        generated_package_path="github.com/example/gateway/build/clients/echo",
        module_package_path="github.com/example/gateway/build/clients/echo/module",
        qualified_instance_name="Echo",
        export_name="NewClient",
        export_type="Client",
        initializer_name="InitializeClient",
        is_export_generated=True,
    )
    return Instance(
        class_name=class_name,
        type_name="grpc",
        instance_name="echo",
        base_directory=tmp_path,
        relative_directory="clients/echo",
        config=config,
        dependencies=(),
        raw_config=b"{}",
        config_file=tmp_path / "clients" / "echo" / "client-config.json",
        package_info=info,
    )


class TestRoots:
    """Absolute roots derived from the config directory."""

    def test_roots(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(build_config())

        assert helper.config_root() == tmp_path.resolve()
        assert helper.idl_root_dir() == tmp_path.resolve() / "idl"
        assert helper.code_gen_target_path() == tmp_path.resolve() / "build"
        assert helper.package_root() == "github.com/example/gateway"
        assert helper.gen_package_root() == "github.com/example/gateway/build"

    @pytest.mark.parametrize("key", ["target_gen_dir", "idl_root_dir"])
    def test_roots_must_stay_inside_config_dir(self, build_config, key: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            PackageHelper(build_config(**{key: "../elsewhere"}))

        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_VALUE

    def test_normalise_rejects_escape(self, build_config) -> None:
        helper = PackageHelper(build_config())

        with pytest.raises(OutputError) as exc_info:
            helper.normalise("a/../../b", helper.code_gen_target_path())

        assert exc_info.value.code == ErrorCode.INVALID_PATH

    def test_instance_output_dir(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(build_config())

        out = helper.instance_output_dir(_instance(tmp_path, "client", {}))

        assert out == tmp_path.resolve() / "build" / "clients" / "echo"


class TestIdlPaths:
    """Instance IDL files live under the class IDL sub-directory."""

    def test_idl_path_uses_sub_dir(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(build_config())

        path = helper.idl_path_for_instance(_instance(tmp_path, "client", {"idlFile": "echo/echo.proto"}))

        assert path == tmp_path.resolve() / "idl" / "clients" / "echo" / "echo.proto"

    @pytest.mark.parametrize("key", ["thriftFile", "protoFile", "idl_file"])
    def test_legacy_keys(self, tmp_path: Path, build_config, key: str) -> None:
        helper = PackageHelper(build_config(module_idl_sub_dir={}))

        path = helper.idl_path_for_instance(_instance(tmp_path, "client", {key: "echo.thrift"}))

        assert path == tmp_path.resolve() / "idl" / "echo.thrift"

    def test_every_client_option_alias_resolves(self, tmp_path: Path, build_config) -> None:
        """A key ClientOptions accepts must also locate the IDL file."""
        helper = PackageHelper(build_config(module_idl_sub_dir={}))

        for key in ClientOptions.model_fields["idl_file"].validation_alias.choices:
            options = ClientOptions.model_validate({key: "echo.thrift"})
            path = helper.idl_path_for_instance(_instance(tmp_path, "client", {key: options.idl_file}))
            assert path == tmp_path.resolve() / "idl" / "echo.thrift", key

    def test_loaded_idl_is_shared(self, tmp_path: Path, build_config, write_file) -> None:
        path = write_file("idl/clients/echo/echo.proto", 'syntax = "proto3";\npackage echo;\n')
        helper = PackageHelper(build_config())

        module = helper.load_idl(_instance(tmp_path, "client", {"idlFile": "echo/echo.proto"}))

        assert module is not None
        assert helper.idl_loader.cached(path) is module

    def test_no_idl(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(build_config())
        instance = _instance(tmp_path, "client", {})

        assert helper.idl_path_for_instance(instance) is None
        assert helper.load_idl(instance) is None

    def test_idl_file_must_be_a_string(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(build_config())

        with pytest.raises(ConfigError) as exc_info:
            helper.idl_path_for_instance(_instance(tmp_path, "client", {"idlFile": ["a", "b"]}))

        assert exc_info.value.code == ErrorCode.CONFIG_TYPE_MISMATCH

    def test_idl_file_must_stay_in_idl_root(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(build_config())

        with pytest.raises(OutputError):
            helper.idl_path_for_instance(_instance(tmp_path, "client", {"idlFile": "../../secrets.proto"}))


class TestImportPaths:
    """Go import paths of compiled wire types."""

    def test_default_gen_code_package(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(build_config())
        idl = tmp_path.resolve() / "idl" / "clients" / "echo" / "echo.proto"

        assert helper.type_package_name(idl) == "clientsEchoEcho"
        assert helper.type_import_path(idl) == "github.com/example/gateway/build/idl/clients/echo/echo"
        assert helper.go_package_for_idl(idl) == helper.type_import_path(idl)

    def test_gen_code_package_per_class_and_default(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(
            build_config(gen_code_package={"client": "example.com/gen/clients", "default": "example.com/gen"})
        )
        idl = tmp_path.resolve() / "idl" / "echo.thrift"

        assert helper.type_import_path(idl, "client") == "example.com/gen/clients/echo"
        assert helper.type_import_path(idl, "endpoint") == "example.com/gen/echo"

    def test_file_outside_idl_root(self, tmp_path: Path, build_config) -> None:
        helper = PackageHelper(build_config())

        with pytest.raises(OutputError):
            helper.type_package_name(tmp_path / "elsewhere" / "x.thrift")


class TestSideFiles:
    """Copyright header and middleware config files."""

    def test_copyright_header(self, tmp_path: Path, build_config) -> None:
        (tmp_path / "COPYRIGHT").write_text("Copyright (c) Example\n")

        helper = PackageHelper(build_config(copyright_header="COPYRIGHT"))

        assert helper.copyright_header() == "Copyright (c) Example\n"

    def test_missing_copyright_header(self, build_config) -> None:
        with pytest.raises(ConfigError) as exc_info:
            PackageHelper(build_config(copyright_header="NOPE"))

        assert exc_info.value.code == ErrorCode.CONFIG_FILE_NOT_FOUND

    def test_middlewares_later_config_wins(self, tmp_path: Path, build_config, write_file) -> None:
        write_file("middlewares/auth/schema.json", json.dumps({"type": "object"}))
        write_file(
            "middlewares/default.json",
            json.dumps({"middlewares": [{"name": "auth", "schema": "auth/schema.json", "importPath": "x/default"}]}),
        )
        write_file(
            "middlewares/config.json",
            json.dumps({"middlewares": [{"name": "auth", "schema": "auth/schema.json", "importPath": "x/custom"}]}),
        )

        helper = PackageHelper(
            build_config(
                default_middleware_config="middlewares/default.json",
                middleware_config="middlewares/config.json",
            )
        )

        specs = helper.middleware_specs()
        assert list(specs) == ["auth"]
        assert specs["auth"].import_path == "x/custom"
        assert specs["auth"].options == {"type": "object"}
        assert specs["auth"].schema_file == (tmp_path / "middlewares" / "auth" / "schema.json").resolve()

    def test_middleware_files(self, tmp_path: Path, build_config, write_file) -> None:
        schema = write_file("middlewares/auth/schema.json", json.dumps({"type": "object"}))
        write_file(
            "middlewares/config.json",
            json.dumps({"middlewares": [{"name": "auth", "schema": "auth/schema.json", "importPath": "x/auth"}]}),
        )

        helper = PackageHelper(build_config(middleware_config="middlewares/config.json"))

        assert helper.middleware_files() == sorted(
            [tmp_path.resolve() / "middlewares" / "config.json", schema.resolve()]
        )

    def test_no_middleware_files(self, build_config) -> None:
        assert PackageHelper(build_config()).middleware_files() == []

    def test_middleware_entry_needs_fields(self, build_config, write_file) -> None:
        write_file("middlewares.json", json.dumps({"middlewares": [{"name": "auth"}]}))

        with pytest.raises(ConfigError, match="needs name, schema and importPath"):
            PackageHelper(build_config(middleware_config="middlewares.json"))

    def test_middleware_schema_must_exist(self, build_config, write_file) -> None:
        write_file(
            "middlewares.json",
            json.dumps({"middlewares": [{"name": "auth", "schema": "missing.json", "importPath": "x"}]}),
        )

        with pytest.raises(ConfigError) as exc_info:
            PackageHelper(build_config(middleware_config="middlewares.json"))

        assert exc_info.value.code == ErrorCode.CONFIG_FILE_NOT_FOUND
