"""Dependency resolution over module instances.

Instances form a directed graph whose edges are declared dependencies. The
graph is ordered with Kahn's algorithm; among ready instances the one whose
class comes first in class order wins, then the lower (class, instance)
pair. The resulting emission order is total and deterministic, and every
per-class list is a subsequence of it.
"""

from __future__ import annotations

import heapq
from collections.abc import Mapping, Sequence

from gatewaygen.core.errors import ModuleError
from gatewaygen.core.logging import get_logger
from gatewaygen.module.models import Instance, InstanceKey, ResolvedGraph, ResolvedInstance

log = get_logger("module.resolver")


def _declared_edges(
    instances: dict[InstanceKey, Instance],
    by_class: Mapping[str, Sequence[Instance]],
    default_dependencies: Mapping[str, Sequence[str]],
) -> dict[InstanceKey, list[InstanceKey]]:
    edges: dict[InstanceKey, list[InstanceKey]] = {}
    for key, instance in instances.items():
        deps = set(instance.dependencies)
        for dep_class in default_dependencies.get(key.class_name, ()):
            deps.update(i.key for i in by_class.get(dep_class, ()) if i.key != key)
        for dep in deps:
            if dep not in instances:
                raise ModuleError.unknown_dependency(
                    key.class_name, key.instance_name, dep.class_name, dep.instance_name
                ).with_instance(key.class_name, key.instance_name)
        edges[key] = sorted(deps)
    return edges


def _find_cycle(remaining: set[InstanceKey], edges: dict[InstanceKey, list[InstanceKey]]) -> list[str]:
    """A cycle among ``remaining``, as ``[a, b, ..., a]``."""
    color: dict[InstanceKey, int] = {}  # 1 = on stack, 2 = done

    def visit(node: InstanceKey, path: list[InstanceKey]) -> list[InstanceKey] | None:
        color[node] = 1
        path.append(node)
        for dep in edges[node]:
            if dep not in remaining:
                continue
            if color.get(dep) == 1:
                return [*path[path.index(dep) :], dep]
            if dep not in color and (found := visit(dep, path)) is not None:
                return found
        path.pop()
        color[node] = 2
        return None

    for start in sorted(remaining):
        if start not in color and (cycle := visit(start, [])) is not None:
            return [str(k) for k in cycle]
    return [str(k) for k in sorted(remaining)]


def resolve_instances(
    instances_by_class: Mapping[str, Sequence[Instance]],
    class_order: Sequence[str],
    default_dependencies: Mapping[str, Sequence[str]] | None = None,
) -> ResolvedGraph:
    """Order instances and compute their dependency closures.

    Raises:
        ModuleError: ``unknown-dependency`` for a dependency that names no
            instance, ``cycle-detected`` with the offending cycle.
    """
    order_of_class = list(class_order) + sorted(set(instances_by_class) - set(class_order))
    rank = {name: i for i, name in enumerate(order_of_class)}

    instances = {i.key: i for group in instances_by_class.values() for i in group}
    edges = _declared_edges(instances, instances_by_class, default_dependencies or {})

    dependents: dict[InstanceKey, list[InstanceKey]] = {key: [] for key in instances}
    indegree = {key: len(deps) for key, deps in edges.items()}
    for key, deps in edges.items():
        for dep in deps:
            dependents[dep].append(key)

    def sort_key(k: InstanceKey) -> tuple[int, str, str]:
        return (rank[k.class_name], k.class_name, k.instance_name)

    ready = [sort_key(k) for k, n in indegree.items() if n == 0]
    heapq.heapify(ready)
    emitted: list[InstanceKey] = []
    while ready:
        _, class_name, instance_name = heapq.heappop(ready)
        key = InstanceKey(class_name, instance_name)
        emitted.append(key)
        for parent in dependents[key]:
            indegree[parent] -= 1
            if indegree[parent] == 0:
                heapq.heappush(ready, sort_key(parent))

    if len(emitted) != len(instances):
        cycle = _find_cycle(set(instances) - set(emitted), edges)
        raise ModuleError.cycle_detected(cycle)

    position = {key: i for i, key in enumerate(emitted)}
    resolved: dict[InstanceKey, ResolvedInstance] = {}
    closures: dict[InstanceKey, set[InstanceKey]] = {}
    for key in emitted:
        deps = edges[key]
        closure: set[InstanceKey] = set(deps)
        for dep in deps:
            closure |= closures[dep]
        closures[key] = closure

        ri = ResolvedInstance(instances[key])
        for dep in sorted(deps, key=position.__getitem__):
            ri.resolved_dependencies.setdefault(dep.class_name, []).append(resolved[dep])
        ordered_closure = sorted(closure, key=position.__getitem__)
        ri.closure = ordered_closure
        for dep in ordered_closure:
            ri.recursive_dependencies.setdefault(dep.class_name, []).append(resolved[dep])
        ri.dependency_order = [name for name in order_of_class if name in ri.recursive_dependencies]
        resolved[key] = ri

    order = [resolved[key] for key in emitted]
    by_class = {name: [ri for ri in order if ri.class_name == name] for name in order_of_class}
    log.debug("instances_resolved", instances=len(order), classes=len(by_class))
    return ResolvedGraph(class_order=order_of_class, order=order, by_class=by_class)
