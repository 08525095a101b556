"""In-process entity source implementations.

- InMemoryEntitySource: EntitySource over an already-loaded EntityPool
"""

from .in_memory_entity_source import InMemoryEntitySource

__all__ = ["InMemoryEntitySource"]
