"""Dependency ordering for budget items.

Items are kept in an arena keyed by id; edges are plain id tuples, so the
graph never holds references from one item to another.  An edge ``A -> B``
means ``B`` is in ``A.depends_on`` and ``A`` is evaluated after ``B``.

REMAINING_PERCENT items without explicit dependencies depend on every other
active item with a strictly lower priority value.  Explicit ``depends_on``
replaces that rule for the item instead of extending it.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from loguru import logger

from .domain import BudgetItem, CalcType
from .errors import CycleError, InvalidDependency


@dataclass(slots=True)
class DependencyGraph:
    nodes: dict[int, BudgetItem]
    dependencies: dict[int, tuple[int, ...]]

    def dependents(self) -> dict[int, list[int]]:
        reverse: dict[int, list[int]] = {node: [] for node in self.nodes}
        for node, deps in self.dependencies.items():
            for dep in deps:
                reverse[dep].append(node)
        return reverse


def build_graph(items: Iterable[BudgetItem]) -> DependencyGraph:
    nodes: dict[int, BudgetItem] = {}
    for item in items:
        if not item.is_active:
            continue
        if item.id is None:
            raise ValueError(f"budget item {item.name!r} has no id")
        nodes[item.id] = item

    dependencies: dict[int, tuple[int, ...]] = {}
    for node_id, item in nodes.items():
        if item.depends_on:
            deps = tuple(dep for dep in item.depends_on if dep in nodes)
            if len(deps) != len(item.depends_on):
                logger.debug(
                    "Budget item {item} ignores inactive or unknown dependencies {missing}",
                    item=node_id,
                    missing=[dep for dep in item.depends_on if dep not in nodes],
                )
        elif item.calc_type is CalcType.REMAINING_PERCENT:
            deps = tuple(
                other_id
                for other_id, other in nodes.items()
                if other_id != node_id and other.priority < item.priority
            )
        else:
            deps = ()
        dependencies[node_id] = deps
    return DependencyGraph(nodes=nodes, dependencies=dependencies)


def resolve_order(items: Iterable[BudgetItem]) -> list[BudgetItem]:
    """Return active items so that every dependency precedes its dependents.

    Among items that are ready at the same time the lowest priority value
    goes first, then the lowest id, so the result is reproducible.
    """

    graph = build_graph(items)
    pending = {node: len(set(deps)) for node, deps in graph.dependencies.items()}
    dependents = graph.dependents()

    ready = [
        (graph.nodes[node].priority, node) for node, count in pending.items() if count == 0
    ]
    heapq.heapify(ready)

    ordered: list[BudgetItem] = []
    while ready:
        _, node = heapq.heappop(ready)
        ordered.append(graph.nodes[node])
        for dependent in set(dependents[node]):
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, (graph.nodes[dependent].priority, dependent))

    if len(ordered) != len(graph.nodes):
        resolved = {item.id for item in ordered}
        cycle = _cycle_among(graph, [node for node in graph.nodes if node not in resolved])
        raise CycleError(cycle[0], cycle)
    return ordered


def find_cycle(items: Iterable[BudgetItem]) -> Optional[list[int]]:
    """Return one dependency cycle as a closed id path, or None."""
    try:
        resolve_order(items)
    except CycleError as exc:
        return exc.cycle
    return None


def check_dependencies(existing: Iterable[BudgetItem], candidate: BudgetItem) -> None:
    """Validate ``candidate`` against the owner's other items before a write.

    Raises InvalidDependency when ``depends_on`` names an item the owner does
    not have, CycleError when the resulting active set would be cyclic.
    """

    others = [item for item in existing if candidate.id is None or item.id != candidate.id]
    owned = {item.id for item in others if item.user_id == candidate.user_id}
    foreign = [dep for dep in candidate.depends_on if dep not in owned and dep != candidate.id]
    if foreign:
        raise InvalidDependency(
            f"{candidate.name}: depends_on references unknown items {foreign}"
        )
    if candidate.id is not None and candidate.id in candidate.depends_on:
        raise CycleError(candidate.id, [candidate.id, candidate.id])

    # A not-yet-persisted candidate gets a placeholder id below every real one.
    probe = candidate
    if candidate.id is None:
        placeholder = min((item.id for item in others if item.id is not None), default=0) - 1
        probe = replace(candidate, id=placeholder)
    scope = [item for item in others if item.user_id == candidate.user_id]
    resolve_order([*scope, probe])


# --- Internal helpers --------------------------------------------------------

def _cycle_among(graph: DependencyGraph, leftover: list[int]) -> list[int]:
    # Every leftover node still waits on another leftover node, so walking
    # dependencies from any of them must revisit a node.
    remaining = set(leftover)
    node = min(leftover, key=lambda n: (graph.nodes[n].priority, n))
    path: list[int] = []
    seen: dict[int, int] = {}
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = min(
            (dep for dep in graph.dependencies[node] if dep in remaining),
            key=lambda n: (graph.nodes[n].priority, n),
        )
    return path[seen[node]:] + [node]
