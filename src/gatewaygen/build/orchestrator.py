"""Build orchestration: resolve, generate, write, format.

A build runs in phases on one thread of control and fans work out to
scheduler runners:

1. Read and resolve every instance. Nothing is written if this fails.
2. Fingerprint the instances that may be rebuilt, in emission order.
3. Decide which are cold (full mode: all of them).
4. Generate cold instances in parallel, then run post-generation hooks.
5. Stage, format and commit each instance's output directory.
6. Prune vanished instances and write the incremental cache last.
"""

from __future__ import annotations

import contextvars
import posixpath
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from pathlib import Path
from typing import Any

from structlog.contextvars import bound_contextvars

from gatewaygen.build.cache import IncrementalCache
from gatewaygen.build.fingerprint import compute_fingerprint, options_digest
from gatewaygen.build.formatters import FormatterPipeline
from gatewaygen.build.writer import FileWriter, StagedInstance, normalise_relative
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.config.models import GatewayGenConfig
from gatewaygen.core.errors import GatewayGenError, GenerationError, InternalError, ModuleError, OutputError
from gatewaygen.core.logging import clear_build_id, get_logger, set_build_id
from gatewaygen.core.progress import build_progress, pluralize, status
from gatewaygen.module.models import BuildResult, InstanceKey, ResolvedGraph, ResolvedInstance
from gatewaygen.module.reader import InstanceReader
from gatewaygen.module.resolver import resolve_instances
from gatewaygen.module.system import ModuleSystem
from gatewaygen.scheduler.runner import Runner, default_parallelism, fixed_bounded_runner

log = get_logger("build")


class BuildMode(StrEnum):
    FULL = "full"  # regenerate every candidate, ignore cached fingerprints
    INCREMENTAL = "incremental"  # regenerate only cold candidates


class InstanceState(StrEnum):
    """Per-instance progress through a build. FAILED is terminal."""

    PENDING = "pending"
    RESOLVING = "resolving"
    GENERATING = "generating"
    WRITING = "writing"
    FORMATTING = "formatting"
    DONE = "done"
    HOT = "hot"
    NO_GENERATOR = "no_generator"
    FAILED = "failed"


@dataclass
class BuildReport:
    """What a build did, instance by instance.

    Key lists are in emission order.
    """

    mode: BuildMode
    build_id: str
    order: list[InstanceKey] = field(default_factory=list)
    candidates: list[InstanceKey] = field(default_factory=list)
    generated: list[InstanceKey] = field(default_factory=list)
    hot: list[InstanceKey] = field(default_factory=list)
    skipped_no_generator: list[InstanceKey] = field(default_factory=list)
    pruned: list[InstanceKey] = field(default_factory=list)
    outputs: dict[InstanceKey, list[str]] = field(default_factory=dict)
    states: dict[InstanceKey, InstanceState] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def generator_invocations(self) -> int:
        return len(self.generated)

    @property
    def files_written(self) -> int:
        return sum(len(files) for files in self.outputs.values())


@dataclass
class _Generated:
    ri: ResolvedInstance
    files: dict[str, bytes]
    spec: Any = None


def _in_context[T](fn: Callable[[], T]) -> Callable[[], T]:
    """Run ``fn`` on a worker thread with a copy of the caller's contextvars."""
    return partial(contextvars.copy_context().run, fn)


def _check_disjoint(instances: Iterable[ResolvedInstance]) -> None:
    """Instances must own disjoint output directories."""
    owners: dict[str, InstanceKey] = {}
    for ri in instances:
        relative = normalise_relative(ri.relative_directory)
        if relative == ".":
            raise OutputError.invalid_path(ri.relative_directory, "the generated-code root").with_instance(
                ri.class_name, ri.instance_name
            )
        owners[relative] = ri.key
    for relative, key in sorted(owners.items()):
        parent = posixpath.dirname(relative)
        while parent:
            if (other := owners.get(parent)) is not None:
                raise OutputError.invalid_path(
                    relative, f"{parent} (output of {other})"
                ).with_instance(key.class_name, key.instance_name)
            parent = posixpath.dirname(parent)


class BuildOrchestrator:
    """Drives full, incremental and selective builds over one service tree.

    Usage::

        config = load_build_config(Path("build.yaml"))
        orchestrator = BuildOrchestrator(config, new_default_module_system(...))
        report = orchestrator.build(BuildMode.INCREMENTAL)
    """

    def __init__(
        self,
        config: GatewayGenConfig,
        system: ModuleSystem,
        *,
        formatters: FormatterPipeline | None = None,
        quiet: bool = False,
    ) -> None:
        self._config = config
        self._system = system
        self._helper = PackageHelper(config.build)
        self._formatters = formatters if formatters is not None else FormatterPipeline(config.build.formatters)
        self._quiet = quiet
        self._workers = config.parallelism.workers or default_parallelism(config.parallelism.io_bound)
        self._states: dict[InstanceKey, InstanceState] = {}
        self._states_lock = threading.Lock()

    @property
    def helper(self) -> PackageHelper:
        return self._helper

    @property
    def target_dir(self) -> Path:
        return self._helper.code_gen_target_path()

    @property
    def cache_path(self) -> Path:
        return self.target_dir / self._config.build.incremental_cache_file

    def resolve(self) -> ResolvedGraph:
        """Read every instance and resolve the dependency graph."""
        reader = InstanceReader(self._system, self._helper)
        instances = reader.read_all()
        return resolve_instances(
            instances,
            self._system.class_order(),
            self._config.build.default_dependencies,
        )

    def _set_state(self, key: InstanceKey, state: InstanceState) -> None:
        with self._states_lock:
            self._states[key] = state

    def build(
        self,
        mode: BuildMode = BuildMode.INCREMENTAL,
        selection: Iterable[InstanceKey] | None = None,
    ) -> BuildReport:
        """Run one build.

        Args:
            mode: FULL regenerates every candidate; INCREMENTAL skips hot ones.
            selection: Restrict the build to these instances and everything
                that transitively depends on them. Selected instances are
                always regenerated.

        Raises:
            GatewayGenError: The first failure, wrapped with the failing
                instance. The cache is left untouched.
        """
        started = time.monotonic()
        build_id = set_build_id()
        report = BuildReport(mode=mode, build_id=build_id)
        self._states = {}
        try:
            self._build(report, mode, None if selection is None else set(selection))
        finally:
            report.states = dict(self._states)
            report.duration_seconds = time.monotonic() - started
            clear_build_id()
        return report

    def _build(self, report: BuildReport, mode: BuildMode, selection: set[InstanceKey] | None) -> None:
        log.info("build_started", mode=str(mode), selective=selection is not None)
        graph = self.resolve()
        report.order = [ri.key for ri in graph.order]
        for key in report.order:
            self._set_state(key, InstanceState.PENDING)

        _check_disjoint(ri for ri in graph.order if self._system.generator_for(ri.class_name, ri.type_name))

        if selection is not None:
            for key in sorted(selection):
                self._system.get_class(key.class_name)
                if key not in graph:
                    raise ModuleError.instance_invalid(str(key), "no such instance to build")
            candidate_keys = graph.reverse_closure(selection)
        else:
            candidate_keys = set(report.order)
        candidates = [ri for ri in graph.order if ri.key in candidate_keys]
        report.candidates = [ri.key for ri in candidates]

        needed: set[InstanceKey] = set()
        for ri in candidates:
            needed.add(ri.key)
            needed.update(ri.closure)
        self._fingerprint(graph, needed)

        cache = IncrementalCache.load(self.cache_path)
        cold = self._cold_instances(candidates, graph, cache, mode, selection or set())
        cold_keys = {ri.key for ri in cold}
        for ri in candidates:
            if ri.key not in cold_keys:
                report.hot.append(ri.key)
                self._set_state(ri.key, InstanceState.HOT)

        runnable: list[ResolvedInstance] = []
        skipped: list[ResolvedInstance] = []
        for ri in cold:
            if self._system.generator_for(ri.class_name, ri.type_name) is None:
                report.skipped_no_generator.append(ri.key)
                skipped.append(ri)
                self._set_state(ri.key, InstanceState.NO_GENERATOR)
                log.warning(
                    "instance_skipped_no_generator",
                    class_name=ri.class_name,
                    instance_name=ri.instance_name,
                    type_name=ri.type_name,
                )
            else:
                runnable.append(ri)

        generated = self._generate(runnable)
        self._run_hooks(runnable, generated)
        committed = self._write(runnable, generated)

        for ri in runnable:
            outputs = committed[ri.key]
            report.generated.append(ri.key)
            report.outputs[ri.key] = outputs
            cache.record(ri.key, ri.fingerprint, outputs)
        # No outputs, but the fingerprint lets dependents go hot next time.
        for ri in skipped:
            cache.record(ri.key, ri.fingerprint, [])
        report.pruned = cache.prune_vanished(set(report.order), self.target_dir)
        cache.save()

        log.info(
            "build_finished",
            generated=len(report.generated),
            hot=len(report.hot),
            skipped_no_generator=len(report.skipped_no_generator),
            pruned=len(report.pruned),
        )
        if not self._quiet:
            status(
                f"Generated {pluralize(len(report.generated), 'instance')}, "
                f"{len(report.hot)} up to date",
                style="success",
            )

    def _fingerprint(self, graph: ResolvedGraph, needed: set[InstanceKey]) -> None:
        """Fingerprint ``needed`` instances in emission order, dependencies first."""
        build_options = options_digest(
            self._config.build, self._helper.copyright_header(), self._helper.middleware_files()
        )
        hooks = "".join(f"+{hook.name}@{hook.version}" for hook in self._system.post_gen_hooks())
        for ri in graph.order:
            if ri.key not in needed:
                continue
            self._set_state(ri.key, InstanceState.RESOLVING)
            with bound_contextvars(class_name=ri.class_name, instance_name=ri.instance_name):
                try:
                    idl = self._helper.load_idl(ri.instance)
                except GatewayGenError as e:
                    self._set_state(ri.key, InstanceState.FAILED)
                    raise e.with_instance(ri.class_name, ri.instance_name) from e
                deps = [(str(key), graph.get(key).fingerprint) for key in ri.closure]  # type: ignore[union-attr]
                ri.fingerprint = compute_fingerprint(
                    ri,
                    deps,
                    idl.transitive_files() if idl is not None else [],
                    self._system.generator_version(ri.class_name, ri.type_name) + hooks,
                    build_options,
                )
                log.debug("instance_fingerprinted", fingerprint=ri.fingerprint[:12])

    def _cold_instances(
        self,
        candidates: list[ResolvedInstance],
        graph: ResolvedGraph,
        cache: IncrementalCache,
        mode: BuildMode,
        forced: set[InstanceKey],
    ) -> list[ResolvedInstance]:
        if mode is BuildMode.FULL:
            return list(candidates)
        hot: dict[InstanceKey, bool] = {}
        for ri in graph.order:
            if ri.fingerprint:
                hot[ri.key] = self._is_hot(ri, cache) and all(hot.get(dep, False) for dep in ri.closure)
        return [ri for ri in candidates if ri.key in forced or not hot.get(ri.key, False)]

    def _is_hot(self, ri: ResolvedInstance, cache: IncrementalCache) -> bool:
        entry = cache.entry(ri.key)
        if entry is None or entry.fingerprint != ri.fingerprint:
            return False
        # Outputs deleted by hand make the instance cold again.
        return all((self.target_dir / path).is_file() for path in entry.outputs)

    def _generate(self, instances: list[ResolvedInstance]) -> dict[InstanceKey, _Generated]:
        if not instances:
            return {}
        runner: Runner[_Generated] = fixed_bounded_runner(len(instances), self._workers, name="gwgen-generate")
        with build_progress(len(instances), quiet=self._quiet) as advance:
            for ri in instances:
                runner.submit(_in_context(partial(self._generate_one, ri, advance)))
            return {g.ri.key: g for g in runner.collect()}

    def _generate_one(self, ri: ResolvedInstance, advance: Callable[[str, str], None]) -> _Generated:
        generator = self._system.generator_for(ri.class_name, ri.type_name)
        if generator is None:
            raise InternalError.unexpected("instance scheduled without a generator", key=str(ri.key))
        with bound_contextvars(class_name=ri.class_name, instance_name=ri.instance_name):
            self._set_state(ri.key, InstanceState.GENERATING)
            try:
                result = generator.generate(ri, self._helper) or BuildResult()
            except GatewayGenError as e:
                self._set_state(ri.key, InstanceState.FAILED)
                raise e.with_instance(ri.class_name, ri.instance_name) from e
            except Exception as e:
                self._set_state(ri.key, InstanceState.FAILED)
                raise GenerationError.generator_failed(
                    f"{type(e).__name__}: {e}", type_name=ri.type_name
                ).with_instance(ri.class_name, ri.instance_name) from e
            log.debug("instance_generated", files=len(result.files))
            advance(ri.class_name, ri.instance_name)
            return _Generated(ri, dict(result.files), result.spec)

    def _run_hooks(self, instances: list[ResolvedInstance], generated: dict[InstanceKey, _Generated]) -> None:
        specs = {key: g.spec for key, g in generated.items()}
        for hook in self._system.post_gen_hooks():
            with bound_contextvars(hook=hook.name):
                try:
                    extra = hook.run(instances, specs, self._helper)
                except GatewayGenError:
                    raise
                except Exception as e:
                    raise GenerationError.generator_failed(f"{type(e).__name__}: {e}", hook=hook.name) from e
            for key, files in extra.items():
                target = generated[key].files
                for name, content in files.items():
                    if name in target:
                        raise GenerationError.generator_failed(
                            f"hook {hook.name!r} would overwrite {name}", hook=hook.name
                        ).with_instance(key.class_name, key.instance_name)
                    target[name] = content
            log.debug("hook_finished", hook=hook.name, instances=len(extra))

    def _write(
        self, instances: list[ResolvedInstance], generated: dict[InstanceKey, _Generated]
    ) -> dict[InstanceKey, list[str]]:
        """Stage, format and commit every generated instance; outputs by key."""
        if not instances:
            return {}
        writer = FileWriter(self.target_dir, self._formatters)
        runner: Runner[tuple[InstanceKey, list[str]]] = fixed_bounded_runner(
            len(instances), self._workers, name="gwgen-write"
        )
        for ri in instances:
            runner.submit(_in_context(partial(self._write_one, writer, ri, generated[ri.key].files)))
        try:
            return dict(runner.collect())
        finally:
            writer.cleanup_staging()

    def _write_one(
        self, writer: FileWriter, ri: ResolvedInstance, files: dict[str, bytes]
    ) -> tuple[InstanceKey, list[str]]:
        with bound_contextvars(class_name=ri.class_name, instance_name=ri.instance_name):
            try:
                self._set_state(ri.key, InstanceState.WRITING)
                staged: StagedInstance = writer.stage_instance(ri.relative_directory, files, format=False)
                self._set_state(ri.key, InstanceState.FORMATTING)
                writer.format_staged(staged)
                writer.commit(staged)
            except GatewayGenError as e:
                self._set_state(ri.key, InstanceState.FAILED)
                raise e.with_instance(ri.class_name, ri.instance_name) from e
            self._set_state(ri.key, InstanceState.DONE)
            log.info("instance_written", directory=posixpath.normpath(ri.relative_directory), files=len(files))
            return ri.key, staged.outputs
