"""Reference extraction, graph discovery and creation ordering."""

from tagdag.kernel.resolver.extractors import (
    extract_custom_event_name,
    extract_dependencies,
    extract_pushed_events,
    extract_variable_references,
    get_variable_type_info,
)
from tagdag.kernel.resolver.graph_builder import BuildOptions, DependencyGraphBuilder
from tagdag.kernel.resolver.known_event_pushers import KnownEventPushers
from tagdag.kernel.resolver.name_index import EntityIndex
from tagdag.kernel.resolver.reverse_index import ReverseIndex, build_reverse_index
from tagdag.kernel.resolver.summary import (
    AnalysisResult,
    AnalysisSummary,
    summarize,
    to_analysis_result,
)
from tagdag.kernel.resolver.topo_sort import KIND_RANK, SortResult, topological_sort

__all__ = [
    "KIND_RANK",
    "AnalysisResult",
    "AnalysisSummary",
    "BuildOptions",
    "DependencyGraphBuilder",
    "EntityIndex",
    "KnownEventPushers",
    "ReverseIndex",
    "SortResult",
    "build_reverse_index",
    "extract_custom_event_name",
    "extract_dependencies",
    "extract_pushed_events",
    "extract_variable_references",
    "get_variable_type_info",
    "summarize",
    "to_analysis_result",
    "topological_sort",
]
