"""EntitySource port: how the graph builder fetches entities on demand.

The builder only awaits these calls; whether they hit the tag-manager API,
a cache or an in-process table is up to the adapter. Optional capabilities
are checked at runtime with ``isinstance(source, SupportsXxx)``.

Contract
--------
- Return ``None`` when an entity does not exist. Never raise for
  "not found".
- Raise :class:`~tagdag.kernel.exceptions.EntityFetchError` when one entity
  could not be fetched; the build skips it and continues.
- Any other exception is a transport failure and aborts the build.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tagdag.kernel.domain.entities import Entity, EntityKind


@runtime_checkable
class EntitySource(Protocol):
    """Fetch tags, triggers, variables and templates one at a time."""

    @abstractmethod
    async def aget_entity(self, kind: EntityKind, entity_id: str) -> Entity | None:
        """Return the entity of ``kind`` with ``entity_id``, or ``None``."""
        ...

    @abstractmethod
    async def afind_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        """Return the entity of ``kind`` displayed as ``name``, or ``None``.

        Picking among several entities sharing a name is the adapter's call.
        """
        ...


@runtime_checkable
class SupportsEntityListing(Protocol):
    """Sources that can enumerate a whole workspace."""

    @abstractmethod
    async def alist_entities(self, kind: EntityKind) -> list[Entity]:
        """Return every entity of ``kind``."""
        ...
