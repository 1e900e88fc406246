"""Mock client generation, run as a post-generation hook."""

from __future__ import annotations

from collections.abc import Mapping
from functools import partial
from typing import Any

from gatewaygen.codegen.base import TemplateRenderer, default_renderer, go_imports
from gatewaygen.codegen.casing import pascal_case
from gatewaygen.codegen.client import ClientSpec
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.core.logging import get_logger
from gatewaygen.module.models import InstanceKey, ResolvedInstance
from gatewaygen.scheduler.runner import Runner, fixed_bounded_runner

log = get_logger("codegen.mock")

MOCK_DIR = "mock-client"


class ClientMockGenHook:
    """Writes ``mock-client/mock_client.go`` for every regenerated client.

    Clients with a ``fixture`` also get ``mock-client/fixture_types.go``
    naming their scenarios. Mocks are generated on a runner bounded by
    ``parallelizeFactor``.
    """

    name = "client-mock"
    version = "1"

    def __init__(self, class_name: str = "client", renderer: TemplateRenderer | None = None) -> None:
        self.class_name = class_name
        self._renderer = renderer

    def run(
        self,
        instances: list[ResolvedInstance],
        specs: Mapping[InstanceKey, Any],
        helper: PackageHelper,
    ) -> dict[InstanceKey, dict[str, bytes]]:
        if not helper.gen_mock:
            return {}
        targets = [
            ri
            for ri in instances
            if ri.class_name == self.class_name
            and isinstance(specs.get(ri.key), ClientSpec)
            and specs[ri.key].methods
        ]
        if not targets:
            return {}
        runner: Runner[tuple[InstanceKey, dict[str, bytes]]] = fixed_bounded_runner(
            len(targets), helper.config.parallelize_factor, name="gwgen-mockgen"
        )
        for ri in targets:
            runner.submit(partial(self._generate, ri, specs[ri.key], helper))
        results = dict(runner.collect())
        log.debug("mocks_generated", clients=len(results))
        return results

    def _generate(
        self, ri: ResolvedInstance, spec: ClientSpec, helper: PackageHelper
    ) -> tuple[InstanceKey, dict[str, bytes]]:
        renderer = self._renderer or default_renderer()
        info = ri.package_info
        imports = go_imports([(info.import_package_alias, info.import_package_path), *spec.imports])
        context = {
            "instance_name": ri.instance_name,
            "client_alias": info.import_package_alias,
            "export_type": info.export_type,
            "methods": spec.methods,
            "imports": imports,
            "fixture": spec.fixture,
            "scenarios": {
                name: [(pascal_case(s), s) for s in sorted(scenarios)]
                for name, scenarios in sorted(spec.fixture.scenarios.items())
            }
            if spec.fixture
            else {},
        }
        files = {f"{MOCK_DIR}/mock_client.go": renderer.render("mock_client.go.tmpl", context, helper)}
        if spec.fixture is not None:
            files[f"{MOCK_DIR}/fixture_types.go"] = renderer.render("fixture_types.go.tmpl", context, helper)
        return ri.key, files
