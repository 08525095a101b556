"""In-memory implementation of EntitySource for tests and offline snapshots."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from tagdag.kernel.domain.entities import Entity, EntityKind, EntityPool
from tagdag.kernel.exceptions import EntityFetchError
from tagdag.kernel.resolver.name_index import EntityIndex

__all__ = ["InMemoryEntitySource"]


class InMemoryEntitySource:
    """EntitySource and SupportsEntityListing over an :class:`EntityPool`.

    Features:
    - Id and display-name lookups (last entity wins on duplicate names)
    - Access history tracking
    - Delay simulation
    - Failure injection per id or name

    Parameters
    ----------
    pool : EntityPool | None
        Entities to serve. Defaults to an empty pool.
    delay_seconds : float
        Simulated latency in seconds for every call. Default: 0.0.
    failures : Mapping[str, Exception] | None
        Exception to raise when a given id or name is requested. Use
        :class:`EntityFetchError` to simulate a single missing entity, any
        other exception to simulate a transport failure.
    max_history : int | None
        Access history records to retain. None for unlimited.
    """

    def __init__(
        self,
        pool: EntityPool | None = None,
        delay_seconds: float = 0.0,
        failures: Mapping[str, Exception] | None = None,
        max_history: int | None = 1000,
    ) -> None:
        self.pool = pool or EntityPool()
        self.delay_seconds = delay_seconds
        self.failures: dict[str, Exception] = dict(failures or {})
        self.max_history = max_history

        self._index = EntityIndex(self.pool)
        self.access_history: list[dict[str, Any]] = []

    @classmethod
    def from_entities(cls, *entities: Entity, **kwargs: Any) -> InMemoryEntitySource:
        """Build a source from loose entities of any kind."""
        pool = EntityPool()
        for entity in entities:
            pool.of_kind(entity.kind).append(entity)
        return cls(pool, **kwargs)

    def _record(self, operation: str, kind: EntityKind, key: str, found: bool) -> None:
        self.access_history.append({
            "operation": operation,
            "kind": kind.value,
            "key": key,
            "found": found,
            "timestamp": asyncio.get_running_loop().time(),
        })
        if self.max_history is not None and len(self.access_history) > self.max_history:
            self.access_history = self.access_history[-self.max_history :]

    async def _simulate(self, key: str) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        if key in self.failures:
            raise self.failures[key]

    async def aget_entity(self, kind: EntityKind, entity_id: str) -> Entity | None:
        """Return the entity of ``kind`` with ``entity_id``, or None.

        Raises
        ------
        Exception
            Whatever was injected for ``entity_id`` through ``failures``
        """
        await self._simulate(entity_id)
        entity = self._index.get(kind, entity_id)
        self._record("get", kind, entity_id, entity is not None)
        return entity

    async def afind_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        """Return the entity of ``kind`` displayed as ``name``, or None."""
        await self._simulate(name)
        entity_id = self._index.id_for_name(kind, name)
        entity = self._index.get(kind, entity_id) if entity_id is not None else None
        self._record("find_by_name", kind, name, entity is not None)
        return entity

    async def alist_entities(self, kind: EntityKind) -> list[Entity]:
        """Return every entity of ``kind``."""
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        entities = list(self.pool.of_kind(kind))
        self._record("list", kind, "*", bool(entities))
        return entities

    def add(self, entity: Entity) -> None:
        """Add (or shadow) an entity."""
        self.pool.of_kind(entity.kind).append(entity)
        self._index.add(entity)

    def fail(self, key: str, reason: str = "simulated failure") -> None:
        """Make every lookup of ``key`` raise :class:`EntityFetchError`."""
        self.failures[key] = EntityFetchError("entity", key, reason)

    def calls(self, operation: str | None = None) -> list[dict[str, Any]]:
        """Access history, optionally filtered by operation."""
        if operation is None:
            return self.access_history.copy()
        return [record for record in self.access_history if record["operation"] == operation]

    def reset(self) -> None:
        """Clear access history and injected failures."""
        self.access_history.clear()
        self.failures.clear()

    def size(self) -> int:
        return len(self.pool)
