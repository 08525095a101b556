"""tagDAG: dependency resolution for tag-manager workspaces.

Discovers every trigger, variable, custom template and companion tag a set
of tags depends on, and orders them so each entity is created after
everything it references.
"""

# Version is defined in pyproject.toml and read dynamically
try:
    from importlib.metadata import version

    __version__ = version("tagdag")
except Exception:
    __version__ = "0.0.0.dev0"  # Fallback for development installs

from tagdag.kernel import (
    BuildOptions,
    DependencyGraph,
    DependencyGraphBuilder,
    Entity,
    EntityKind,
    EntityPool,
    ResolverConfig,
    to_analysis_result,
)

__all__ = [
    "BuildOptions",
    "DependencyGraph",
    "DependencyGraphBuilder",
    "Entity",
    "EntityKind",
    "EntityPool",
    "ResolverConfig",
    "__version__",
    "to_analysis_result",
]
