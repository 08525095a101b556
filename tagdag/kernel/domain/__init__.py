"""Domain models: entities and the dependency graph."""

from tagdag.kernel.domain.dependency import (
    CVT_PREFIX,
    NAME_PREFIX,
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    DependencyType,
    is_placeholder,
)
from tagdag.kernel.domain.entities import (
    Entity,
    EntityKind,
    EntityPool,
    EntityRef,
    VariableType,
)

__all__ = [
    "CVT_PREFIX",
    "NAME_PREFIX",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyNode",
    "DependencyType",
    "Entity",
    "EntityKind",
    "EntityPool",
    "EntityRef",
    "VariableType",
    "is_placeholder",
]
