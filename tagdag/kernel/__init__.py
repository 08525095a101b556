"""tagDAG kernel: the public API.

User-space code (``tagdag.cli`` and end-user applications) should import
from ``tagdag.kernel``. Kernel-space code (``tagdag.kernel.*``,
``tagdag.stdlib.*``, ``tagdag.compiler.*``) may import from submodules.
"""

# ============================================================================
# 1. Configuration
# ============================================================================
from tagdag.kernel.config.models import LoggingConfig, ResolverConfig, TagDAGConfig

# ============================================================================
# 2. Domain types
# ============================================================================
from tagdag.kernel.domain import (
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    DependencyType,
    Entity,
    EntityKind,
    EntityPool,
    EntityRef,
    VariableType,
)

# ============================================================================
# 3. Exceptions
# ============================================================================
from tagdag.kernel.exceptions import (
    ConfigurationError,
    DuplicateNameError,
    EntityFetchError,
    ResourceNotFoundError,
    TagDAGError,
    ValidationError,
)

# ============================================================================
# 4. Logging
# ============================================================================
from tagdag.kernel.logging import configure_logging, get_logger

# ============================================================================
# 5. Port protocols
# ============================================================================
from tagdag.kernel.ports import EntitySource, SupportsEntityListing

# ============================================================================
# 6. Graph construction
# ============================================================================
from tagdag.kernel.resolver import (
    AnalysisResult,
    AnalysisSummary,
    BuildOptions,
    DependencyGraphBuilder,
    summarize,
    to_analysis_result,
    topological_sort,
)

__all__ = [
    # Configuration
    "LoggingConfig",
    "ResolverConfig",
    "TagDAGConfig",
    # Graph construction
    "AnalysisResult",
    "AnalysisSummary",
    "BuildOptions",
    "DependencyGraphBuilder",
    "summarize",
    "to_analysis_result",
    "topological_sort",
    # Domain types
    "DependencyEdge",
    "DependencyGraph",
    "DependencyNode",
    "DependencyType",
    "Entity",
    "EntityKind",
    "EntityPool",
    "EntityRef",
    "VariableType",
    # Port protocols
    "EntitySource",
    "SupportsEntityListing",
    # Exceptions
    "ConfigurationError",
    "DuplicateNameError",
    "EntityFetchError",
    "ResourceNotFoundError",
    "TagDAGError",
    "ValidationError",
    # Logging
    "configure_logging",
    "get_logger",
]
