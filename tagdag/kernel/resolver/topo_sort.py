"""Creation ordering of a discovered node map."""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from typing import NamedTuple

from tagdag.kernel.domain.dependency import DependencyNode
from tagdag.kernel.domain.entities import EntityKind
from tagdag.kernel.logging import get_logger

logger = get_logger(__name__)

# Bucket applied after Kahn's order; lower ranks are created first.
KIND_RANK: dict[EntityKind, int] = {
    EntityKind.TEMPLATE: 0,
    EntityKind.VARIABLE: 1,
    EntityKind.TRIGGER: 2,
    EntityKind.TAG: 3,
}
UNRANKED = 99


class SortResult(NamedTuple):
    """Creation order plus the ids placed by cycle recovery."""

    order: list[str]
    recovered: list[str]


def _resolved_targets(node: DependencyNode, nodes: Mapping[str, DependencyNode]) -> list[str]:
    """Distinct in-graph targets of ``node`` whose kind matches the edge."""
    targets: dict[str, None] = {}
    for edge in node.dependencies:
        target = nodes.get(edge.target_id)
        if target is not None and target.kind is edge.target_kind:
            targets[edge.target_id] = None
    return list(targets)


def topological_sort(nodes: Mapping[str, DependencyNode]) -> SortResult:
    """Order ``nodes`` so every dependency precedes its dependents.

    Kahn's algorithm over resolved in-graph edges. Nodes left unprocessed
    (cycle members, self-references and anything downstream of them) are
    appended in node-map order with a warning each. The result is then
    stable-sorted by :data:`KIND_RANK`.

    Parameters
    ----------
    nodes : Mapping[str, DependencyNode]
        Node map in discovery order

    Returns
    -------
    SortResult
        Every node id exactly once, plus the recovered subset
    """
    in_degree: dict[str, int] = {}
    dependents: dict[str, list[str]] = {node_id: [] for node_id in nodes}

    for node_id, node in nodes.items():
        targets = _resolved_targets(node, nodes)
        in_degree[node_id] = len(targets)
        for target_id in targets:
            dependents[target_id].append(node_id)

    queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
    result: list[str] = []
    processed: set[str] = set()

    while queue:
        current = queue.popleft()
        result.append(current)
        processed.add(current)
        for dependent in dependents[current]:
            if dependent in processed:
                continue
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    recovered: list[str] = []
    if len(result) < len(nodes):
        logger.warning(
            "Topological sort incomplete: {processed}/{total} nodes processed, "
            "possible circular dependency",
            processed=len(result),
            total=len(nodes),
        )
        for node_id, node in nodes.items():
            if node_id in processed:
                continue
            logger.warning(
                "Recovered {kind} {id} ({name}) outside dependency order",
                kind=node.kind.value,
                id=node_id,
                name=node.name,
            )
            result.append(node_id)
            recovered.append(node_id)

    order = sorted(result, key=lambda node_id: KIND_RANK.get(nodes[node_id].kind, UNRANKED))
    return SortResult(order=order, recovered=recovered)
