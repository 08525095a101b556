"""Serializable summaries of a built dependency graph."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from tagdag.kernel.domain.dependency import DependencyGraph, DependencyType
from tagdag.kernel.domain.entities import EntityKind, VariableType
from tagdag.kernel.resolver.extractors import get_variable_type_info


class AnalysisSummary(BaseModel):
    """Node counts per kind.

    Attributes
    ----------
    total : int
        Number of nodes in the graph
    tags, triggers, variables, templates : int
        Nodes of each kind
    js_variables_with_internal_refs : int
        Custom JavaScript variables that reference other variables from
        inside their code
    recovered : int
        Nodes placed by cycle recovery
    unresolved : int
        References that never resolved to a node
    """

    total: int = 0
    tags: int = 0
    triggers: int = 0
    variables: int = 0
    templates: int = 0
    js_variables_with_internal_refs: int = 0
    recovered: int = 0
    unresolved: int = 0


class CreationOrderItem(BaseModel):
    """One step of the creation order, numbered from 1."""

    step: int
    kind: EntityKind
    id: str
    name: str
    type: str = ""


class NodeInfo(BaseModel):
    """Per-node detail keyed by id in :class:`AnalysisResult`."""

    kind: EntityKind
    name: str
    type: str = ""
    type_label: str | None = None
    is_hub_variable: bool = False
    dependencies: list[str] = Field(default_factory=list)
    data: dict[str, Any] | None = None


class UnresolvedReference(BaseModel):
    source_id: str
    source_name: str
    target: str
    target_kind: EntityKind
    dependency_type: DependencyType
    location: str


class AnalysisResult(BaseModel):
    """Everything a caller needs to create entities in order."""

    root_id: str
    root_name: str
    summary: AnalysisSummary
    creation_order: list[CreationOrderItem]
    nodes: dict[str, NodeInfo]
    recovered: list[str] = Field(default_factory=list)
    unresolved: list[UnresolvedReference] = Field(default_factory=list)


def summarize(graph: DependencyGraph) -> AnalysisSummary:
    """Count the nodes of ``graph`` per kind.

    Examples
    --------
    >>> from tagdag.kernel.domain.dependency import DependencyGraph
    >>> summarize(DependencyGraph(root_id="", root_name="Unknown")).total
    0
    """
    counts = dict.fromkeys(EntityKind, 0)
    js_with_refs = 0

    for node in graph.nodes.values():
        counts[node.kind] += 1
        if node.variable_type == VariableType.JAVASCRIPT and any(
            edge.dependency_type is DependencyType.JS_INTERNAL_REF for edge in node.dependencies
        ):
            js_with_refs += 1

    return AnalysisSummary(
        total=len(graph),
        tags=counts[EntityKind.TAG],
        triggers=counts[EntityKind.TRIGGER],
        variables=counts[EntityKind.VARIABLE],
        templates=counts[EntityKind.TEMPLATE],
        js_variables_with_internal_refs=js_with_refs,
        recovered=len(graph.recovered),
        unresolved=len(graph.unresolved_edges()),
    )


def to_analysis_result(graph: DependencyGraph, include_data: bool = False) -> AnalysisResult:
    """Convert ``graph`` into a JSON-ready :class:`AnalysisResult`.

    Parameters
    ----------
    graph : DependencyGraph
        A built graph
    include_data : bool
        Embed each entity's raw payload in ``nodes``

    Returns
    -------
    AnalysisResult
        Summary, numbered creation order, node details and diagnostics
    """
    creation_order = [
        CreationOrderItem(
            step=step,
            kind=node.kind,
            id=node.entity_id,
            name=node.name,
            type=node.entity.entity_type,
        )
        for step, node in enumerate(graph, start=1)
    ]

    nodes: dict[str, NodeInfo] = {}
    for node_id, node in graph.nodes.items():
        type_label = None
        if node.variable_type is not None:
            type_label = get_variable_type_info(node.variable_type).name
        nodes[node_id] = NodeInfo(
            kind=node.kind,
            name=node.name,
            type=node.entity.entity_type,
            type_label=type_label,
            is_hub_variable=node.is_hub_variable,
            dependencies=sorted(graph.resolved_dependencies(node_id)),
            data=dict(node.data) if include_data else None,
        )

    unresolved = [
        UnresolvedReference(
            source_id=source_id,
            source_name=graph.nodes[source_id].name,
            target=edge.target_id,
            target_kind=edge.target_kind,
            dependency_type=edge.dependency_type,
            location=edge.location,
        )
        for source_id, edge in graph.unresolved_edges()
    ]

    return AnalysisResult(
        root_id=graph.root_id,
        root_name=graph.root_name,
        summary=summarize(graph),
        creation_order=creation_order,
        nodes=nodes,
        recovered=list(graph.recovered),
        unresolved=unresolved,
    )
