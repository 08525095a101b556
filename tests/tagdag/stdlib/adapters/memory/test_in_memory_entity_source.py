"""Tests for InMemoryEntitySource."""

from __future__ import annotations

import pytest

from tagdag.kernel.domain.entities import Entity, EntityKind, EntityPool
from tagdag.kernel.exceptions import EntityFetchError
from tagdag.kernel.ports.entity_source import EntitySource, SupportsEntityListing
from tagdag.stdlib.adapters.memory import InMemoryEntitySource


@pytest.fixture
def source() -> InMemoryEntitySource:
    return InMemoryEntitySource.from_entities(
        Entity(EntityKind.TAG, "1", "Pageview", "html"),
        Entity(EntityKind.VARIABLE, "31", "Page URL", "u"),
        Entity(EntityKind.VARIABLE, "32", "Page URL", "jsm"),
        Entity(EntityKind.TEMPLATE, "7", "Consent"),
    )


class TestProtocols:
    """Test protocol conformance."""

    def test_implements_ports(self, source) -> None:
        assert isinstance(source, EntitySource)
        assert isinstance(source, SupportsEntityListing)


class TestLookups:
    """Test id, name and listing lookups."""

    @pytest.mark.asyncio
    async def test_get_entity(self, source) -> None:
        entity = await source.aget_entity(EntityKind.TAG, "1")
        assert entity is not None
        assert entity.name == "Pageview"

    @pytest.mark.asyncio
    async def test_get_is_kind_scoped(self, source) -> None:
        assert await source.aget_entity(EntityKind.TRIGGER, "1") is None

    @pytest.mark.asyncio
    async def test_find_by_name_last_wins(self, source) -> None:
        entity = await source.afind_by_name(EntityKind.VARIABLE, "Page URL")
        assert entity is not None
        assert entity.entity_id == "32"

    @pytest.mark.asyncio
    async def test_find_unknown_name(self, source) -> None:
        assert await source.afind_by_name(EntityKind.VARIABLE, "Nope") is None

    @pytest.mark.asyncio
    async def test_list_entities(self, source) -> None:
        variables = await source.alist_entities(EntityKind.VARIABLE)
        assert [v.entity_id for v in variables] == ["31", "32"]

        variables.clear()
        assert source.size() == 4

    @pytest.mark.asyncio
    async def test_add_shadows_name(self, source) -> None:
        source.add(Entity(EntityKind.VARIABLE, "33", "Page URL", "v"))

        entity = await source.afind_by_name(EntityKind.VARIABLE, "Page URL")
        assert entity.entity_id == "33"
        assert source.size() == 5


class TestAccessHistory:
    """Test access history tracking."""

    @pytest.mark.asyncio
    async def test_records_calls(self, source) -> None:
        await source.aget_entity(EntityKind.TAG, "1")
        await source.aget_entity(EntityKind.TAG, "404")
        await source.afind_by_name(EntityKind.VARIABLE, "Page URL")
        await source.alist_entities(EntityKind.TEMPLATE)

        calls = source.calls()
        assert [c["operation"] for c in calls] == ["get", "get", "find_by_name", "list"]
        assert [c["found"] for c in calls] == [True, False, True, True]
        assert calls[3]["key"] == "*"
        assert all("timestamp" in c for c in calls)
        assert len(source.calls("get")) == 2

    @pytest.mark.asyncio
    async def test_history_bounded(self) -> None:
        source = InMemoryEntitySource(max_history=2)
        for entity_id in ("1", "2", "3"):
            await source.aget_entity(EntityKind.TAG, entity_id)

        assert [c["key"] for c in source.calls()] == ["2", "3"]

    @pytest.mark.asyncio
    async def test_reset(self, source) -> None:
        source.fail("1")
        await source.aget_entity(EntityKind.VARIABLE, "31")
        source.reset()

        assert source.calls() == []
        assert await source.aget_entity(EntityKind.TAG, "1") is not None


class TestFailureInjection:
    """Test simulated failures and latency."""

    @pytest.mark.asyncio
    async def test_fail_raises_entity_fetch_error(self, source) -> None:
        source.fail("Page URL", "rate limited")

        with pytest.raises(EntityFetchError, match="rate limited"):
            await source.afind_by_name(EntityKind.VARIABLE, "Page URL")
        assert source.calls() == []

    @pytest.mark.asyncio
    async def test_custom_exception(self) -> None:
        source = InMemoryEntitySource(EntityPool(), failures={"1": TimeoutError("slow")})
        with pytest.raises(TimeoutError):
            await source.aget_entity(EntityKind.TAG, "1")

    @pytest.mark.asyncio
    async def test_delay(self) -> None:
        source = InMemoryEntitySource(delay_seconds=0.01)
        await source.aget_entity(EntityKind.TAG, "1")
        await source.aget_entity(EntityKind.TAG, "2")

        first, second = source.calls()
        assert second["timestamp"] - first["timestamp"] >= 0.009
