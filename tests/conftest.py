"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local gatewaygen package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of gatewaygen modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("gatewaygen"):
        del sys.modules[module_name]


@pytest.fixture
def build_config(tmp_path: Path) -> Callable[..., Any]:
    """Factory for a BuildConfig rooted at tmp_path, formatters disabled."""
    from gatewaygen.config.models import BuildConfig

    def make(**overrides: Any) -> BuildConfig:
        values: dict[str, Any] = {
            "config_dir": str(tmp_path),
            "package_root": "github.com/example/gateway",
            "idl_root_dir": "idl",
            "target_gen_dir": "build",
            "module_search_paths": {"client": ["clients"], "endpoint": ["endpoints"]},
            "module_idl_sub_dir": {"client": "clients"},
            "formatters": {},
        }
        values.update(overrides)
        return BuildConfig(**values)

    return make


@pytest.fixture
def write_instance(tmp_path: Path) -> Callable[..., Path]:
    """Write ``<class>-config.json`` under tmp_path and return its directory."""

    def write(
        relative_dir: str,
        class_name: str,
        name: str,
        type_name: str,
        *,
        dependencies: dict[str, list[str]] | None = None,
        config: dict[str, Any] | None = None,
    ) -> Path:
        directory = tmp_path / relative_dir
        directory.mkdir(parents=True, exist_ok=True)
        body: dict[str, Any] = {"name": name, "type": type_name}
        if dependencies:
            body["dependencies"] = dependencies
        if config is not None:
            body["config"] = config
        (directory / f"{class_name}-config.json").write_text(json.dumps(body, indent=2))
        return directory

    return write


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a text file under tmp_path, creating parents."""

    def write(relative: str, text: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    return write


GATEWAY_BUILD_YAML = """\
packageRoot: github.com/example/gateway
idlRootDir: idl
targetGenDir: build
moduleSearchPaths:
  client: [clients]
  endpoint: [endpoints]
  service: [services]
moduleIdlSubDir:
  client: clients
formatters: {}
parallelism:
  workers: 2
"""

GATEWAY_ECHO_PROTO = """\
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
}
"""

GATEWAY_MIRROR_THRIFT = """\
namespace go mirror

struct Request {
  1: required string message
}

service Mirror {
  Request mirror(1: Request request)
}
"""


@pytest.fixture
def gateway_tree(tmp_path: Path, write_file, write_instance) -> Path:
    """A small gateway: two clients, one endpoint using both, one service.

    Returns the path of its build.yaml. Formatters are disabled.
    """
    write_file("idl/clients/echo/echo.proto", GATEWAY_ECHO_PROTO)
    write_file("idl/clients/mirror/mirror.thrift", GATEWAY_MIRROR_THRIFT)
    write_instance("clients/echo", "client", "echo", "grpc", config={"idlFile": "echo/echo.proto"})
    write_instance("clients/mirror", "client", "mirror", "http", config={"idlFile": "mirror/mirror.thrift"})
    write_instance("endpoints/bounce", "endpoint", "bounce", "http", dependencies={"client": ["echo", "mirror"]})
    write_instance("services/gateway", "service", "gateway", "gateway", dependencies={"endpoint": ["bounce"]})
    return write_file("build.yaml", GATEWAY_BUILD_YAML)
