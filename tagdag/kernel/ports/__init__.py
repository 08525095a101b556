"""Port interfaces for tagDAG."""

from tagdag.kernel.ports.entity_source import EntitySource, SupportsEntityListing

__all__ = ["EntitySource", "SupportsEntityListing"]
