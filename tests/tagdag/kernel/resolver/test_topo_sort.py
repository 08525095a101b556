"""Tests for the Kahn creation-order sort."""

from __future__ import annotations

from tagdag.kernel.domain.dependency import DependencyEdge, DependencyNode, DependencyType
from tagdag.kernel.domain.entities import Entity, EntityKind
from tagdag.kernel.resolver.topo_sort import KIND_RANK, UNRANKED, topological_sort


def _node(kind: EntityKind, node_id: str, *targets: tuple[EntityKind, str]) -> DependencyNode:
    return DependencyNode(
        entity=Entity(kind, node_id, f"{kind.value} {node_id}"),
        dependencies=[
            DependencyEdge(target_id, target_kind, DependencyType.DIRECT_REFERENCE, "test")
            for target_kind, target_id in targets
        ],
    )


def _nodes(*nodes: DependencyNode) -> dict[str, DependencyNode]:
    return {node.entity_id: node for node in nodes}


V, T, G, P = EntityKind.VARIABLE, EntityKind.TRIGGER, EntityKind.TAG, EntityKind.TEMPLATE


class TestKahnOrder:
    """Tests for the dependency pass."""

    def test_chain(self) -> None:
        nodes = _nodes(_node(V, "a", (V, "b")), _node(V, "b", (V, "c")), _node(V, "c"))
        result = topological_sort(nodes)

        assert result.order == ["c", "b", "a"]
        assert result.recovered == []

    def test_duplicate_edges_count_once(self) -> None:
        """Two edges to the same target are one dependency."""
        nodes = _nodes(_node(V, "a", (V, "b"), (V, "b")), _node(V, "b"))
        assert topological_sort(nodes).order == ["b", "a"]

    def test_unresolved_and_missing_targets_ignored(self) -> None:
        nodes = _nodes(_node(V, "a", (V, "name:Missing"), (V, "404")))
        result = topological_sort(nodes)

        assert result.order == ["a"]
        assert result.recovered == []

    def test_kind_mismatch_ignored(self) -> None:
        """An edge expecting a trigger does not bind to a variable with that id."""
        nodes = _nodes(_node(G, "1", (T, "5")), _node(V, "5"))
        assert topological_sort(nodes).recovered == []

    def test_empty(self) -> None:
        result = topological_sort({})
        assert result.order == []
        assert result.recovered == []


class TestKindBuckets:
    """Tests for the secondary kind-rank sort."""

    def test_ranks(self) -> None:
        assert KIND_RANK[P] < KIND_RANK[V] < KIND_RANK[T] < KIND_RANK[G] < UNRANKED

    def test_independent_nodes_bucketed(self) -> None:
        nodes = _nodes(
            _node(G, "1"),
            _node(T, "2"),
            _node(EntityKind.FOLDER, "9"),
            _node(V, "3"),
            _node(P, "4"),
            _node(V, "5"),
        )
        assert topological_sort(nodes).order == ["4", "3", "5", "2", "1", "9"]

    def test_stable_within_kind(self) -> None:
        """Kahn order is kept among nodes of the same kind."""
        nodes = _nodes(_node(G, "1", (G, "2")), _node(G, "2", (G, "3")), _node(G, "3"))
        assert topological_sort(nodes).order == ["3", "2", "1"]


class TestRecovery:
    """Tests for cycle recovery."""

    def test_cycle_recovered_in_map_order(self, log_messages) -> None:
        nodes = _nodes(_node(V, "a", (V, "b")), _node(V, "b", (V, "a")), _node(V, "c"))
        result = topological_sort(nodes)

        assert result.order == ["c", "a", "b"]
        assert result.recovered == ["a", "b"]
        warnings = [message for level, message in log_messages if level == "WARNING"]
        assert warnings == [
            "Topological sort incomplete: 1/3 nodes processed, possible circular dependency",
            "Recovered variable a (variable a) outside dependency order",
            "Recovered variable b (variable b) outside dependency order",
        ]

    def test_self_loop(self) -> None:
        result = topological_sort(_nodes(_node(V, "a", (V, "a"))))
        assert result.order == ["a"]
        assert result.recovered == ["a"]

    def test_downstream_of_cycle_recovered(self) -> None:
        """Dependents of a cycle never reach in-degree zero either."""
        nodes = _nodes(
            _node(G, "t", (V, "a")),
            _node(V, "a", (V, "b")),
            _node(V, "b", (V, "a")),
        )
        result = topological_sort(nodes)

        assert result.recovered == ["t", "a", "b"]
        assert result.order == ["a", "b", "t"]
