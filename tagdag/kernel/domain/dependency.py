"""Dependency graph primitives: edges, nodes and the built graph.

Nodes are keyed by entity id and edges hold target ids as plain strings,
so cyclic reference structures are representable without object cycles.
An edge whose target could not be resolved keeps its placeholder id
(``name:...`` or ``cvt:...``) for diagnostics and is ignored for ordering.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from tagdag.kernel.domain.entities import Entity, EntityKind

NAME_PREFIX = "name:"
CVT_PREFIX = "cvt:"


class DependencyType(StrEnum):
    """Category of a reference from one entity to another."""

    DIRECT_REFERENCE = "direct"  # {{variable}} in a parameter value
    TRIGGER_CONDITION = "trigger_cond"  # {{variable}} in a trigger filter
    JS_INTERNAL_REF = "js_internal"  # {{variable}} inside custom JavaScript
    LOOKUP_INPUT = "lookup_input"
    LOOKUP_OUTPUT = "lookup_output"
    TEMPLATE_PARAM = "template_param"  # custom template backing a tag type
    CONFIG_TAG_REF = "config_ref"
    SETUP_TAG = "setup_tag"
    TEARDOWN_TAG = "teardown_tag"
    FIRING_TRIGGER = "firing_trigger"
    BLOCKING_TRIGGER = "blocking_trigger"


def is_placeholder(target_id: str) -> bool:
    """Return True for ids that still need name or template-type resolution."""
    return target_id.startswith(NAME_PREFIX) or target_id.startswith(CVT_PREFIX)


@dataclass(slots=True)
class DependencyEdge:
    """Directed reference from the owning node to ``target_id``.

    ``target_id`` is rewritten in place once a placeholder resolves.
    """

    target_id: str
    target_kind: EntityKind
    dependency_type: DependencyType
    location: str
    variable_name: str | None = None
    tag_name: str | None = None
    note: str | None = None

    @property
    def is_resolved(self) -> bool:
        return bool(self.target_id) and not is_placeholder(self.target_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "target_id": self.target_id,
            "target_kind": self.target_kind.value,
            "dependency_type": self.dependency_type.value,
            "location": self.location,
        }
        if self.variable_name is not None:
            data["variable_name"] = self.variable_name
        if self.tag_name is not None:
            data["tag_name"] = self.tag_name
        if self.note is not None:
            data["note"] = self.note
        return data


@dataclass(slots=True)
class DependencyNode:
    """One discovered entity and its outgoing references."""

    entity: Entity
    dependencies: list[DependencyEdge] = field(default_factory=list)
    is_hub_variable: bool = False

    @property
    def kind(self) -> EntityKind:
        return self.entity.kind

    @property
    def entity_id(self) -> str:
        return self.entity.entity_id

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def variable_type(self) -> str | None:
        if self.entity.kind is EntityKind.VARIABLE:
            return self.entity.entity_type
        return None

    @property
    def data(self) -> Any:
        return self.entity.data


@dataclass(slots=True)
class DependencyGraph:
    """Result of one build: node map plus creation order.

    Attributes
    ----------
    root_id : str
        Id of the first root (empty when no root was given)
    root_name : str
        Display name of the root, ``"Multiple Tags"`` for several roots
    nodes : dict[str, DependencyNode]
        Every discovered entity keyed by id
    creation_order : list[str]
        Each node id exactly once, dependencies first
    recovered : list[str]
        Ids appended by cycle/orphan recovery; their position does not
        honour all of their dependencies
    """

    root_id: str
    root_name: str
    nodes: dict[str, DependencyNode] = field(default_factory=dict)
    creation_order: list[str] = field(default_factory=list)
    recovered: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.nodes

    def __iter__(self) -> Iterator[DependencyNode]:
        """Iterate nodes in creation order."""
        for entity_id in self.creation_order:
            yield self.nodes[entity_id]

    def position(self, entity_id: str) -> int:
        """Index of ``entity_id`` in the creation order.

        Raises
        ------
        ValueError
            If the id is not part of the graph
        """
        return self.creation_order.index(entity_id)

    def nodes_of_kind(self, kind: EntityKind) -> list[DependencyNode]:
        return [node for node in self.nodes.values() if node.kind is kind]

    def resolved_dependencies(self, entity_id: str) -> set[str]:
        """Ids this node depends on that are part of the graph with a matching kind."""
        node = self.nodes[entity_id]
        return {
            edge.target_id
            for edge in node.dependencies
            if edge.target_id in self.nodes
            and self.nodes[edge.target_id].kind is edge.target_kind
        }

    def unresolved_edges(self) -> list[tuple[str, DependencyEdge]]:
        """Edges whose target never resolved to a node of the graph.

        Returns
        -------
        list[tuple[str, DependencyEdge]]
            ``(source_id, edge)`` pairs in node-map order
        """
        return [
            (source_id, edge)
            for source_id, node in self.nodes.items()
            for edge in node.dependencies
            if edge.target_id not in self.nodes
        ]
