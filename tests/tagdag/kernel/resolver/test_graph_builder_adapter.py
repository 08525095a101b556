"""Tests for adapter-backed (async) dependency graph builds."""

from __future__ import annotations

from typing import Any

import pytest

from tagdag.kernel.domain.entities import Entity, EntityKind, EntityPool
from tagdag.kernel.exceptions import ConfigurationError, EntityFetchError
from tagdag.kernel.logging import get_correlation_id
from tagdag.kernel.ports.entity_source import EntitySource, SupportsEntityListing
from tagdag.kernel.resolver.graph_builder import (
    MULTIPLE_ROOTS_NAME,
    BuildOptions,
    DependencyGraphBuilder,
)
from tagdag.stdlib.adapters.memory import InMemoryEntitySource


def param(key: str, value: str) -> dict[str, str]:
    return {"type": "template", "key": key, "value": value}


class LookupOnlySource:
    """Source without listing support, forcing per-entity fetches."""

    def __init__(self, inner: InMemoryEntitySource) -> None:
        self.inner = inner

    async def aget_entity(self, kind: EntityKind, entity_id: str) -> Entity | None:
        return await self.inner.aget_entity(kind, entity_id)

    async def afind_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        return await self.inner.afind_by_name(kind, name)


class CorrelationRecordingSource(InMemoryEntitySource):
    """Remembers the correlation id active during each fetch."""

    def __init__(self, pool: EntityPool) -> None:
        super().__init__(pool)
        self.seen_ids: list[str] = []

    async def aget_entity(self, kind: EntityKind, entity_id: str) -> Entity | None:
        self.seen_ids.append(get_correlation_id())
        return await super().aget_entity(kind, entity_id)


@pytest.fixture
def pool() -> EntityPool:
    return EntityPool.from_payloads(
        tags=[
            {
                "tagId": "1",
                "name": "Pageview",
                "type": "html",
                "parameter": [param("html", "<script>t('{{Page URL}}', '{{Page Path}}')</script>")],
                "firingTriggerId": ["5"],
            },
            {"tagId": "2", "name": "Consent", "type": "cvt_172990757_195"},
            {"tagId": "3", "name": "Gallery", "type": "cvt_KDDGR"},
        ],
        triggers=[
            {
                "triggerId": "5",
                "name": "Checkout",
                "type": "pageview",
                "filter": [{"parameter": [param("arg0", "{{Page Path}}")]}],
            }
        ],
        variables=[
            {
                "variableId": "31",
                "name": "Page URL",
                "type": "jsm",
                "parameter": [param("javascript", "function(){ return {{Page Path}}; }")],
            },
            {"variableId": "32", "name": "Page Path", "type": "u"},
        ],
        templates=[
            {
                "templateId": "195",
                "containerId": "172990757",
                "name": "Consent Template",
                "templateData": '{"id": "cvt_temp_public_id"}',
            },
            {
                "templateId": "88",
                "containerId": "172990757",
                "name": "Gtag API",
                "templateData": '{"id": "cvt_KDDGR"}',
            },
        ],
    )


@pytest.fixture
def source(pool: EntityPool) -> InMemoryEntitySource:
    return InMemoryEntitySource(pool)


class TestAdapterBuild:
    """Tests for basic async builds."""

    @pytest.mark.asyncio
    async def test_build_from_tag(self, source) -> None:
        """The async build matches the pool build for the same data."""
        builder = DependencyGraphBuilder(source)
        graph = await builder.abuild_from_tag("1")

        assert graph.creation_order == ["32", "31", "5", "1"]
        assert graph.root_name == "Pageview"
        assert graph.recovered == []

        pooled = DependencyGraphBuilder().build_from_pool(source.pool, ["1"])
        assert pooled.creation_order == graph.creation_order

    @pytest.mark.asyncio
    async def test_build_from_tags(self, source) -> None:
        graph = await DependencyGraphBuilder(source).abuild_from_tags(["1", "2"])

        assert graph.root_id == "1"
        assert graph.root_name == MULTIPLE_ROOTS_NAME
        assert {"1", "2", "195"} <= set(graph.nodes)

    @pytest.mark.asyncio
    async def test_missing_root(self, source) -> None:
        graph = await DependencyGraphBuilder(source).abuild_from_tag("404")
        assert len(graph) == 0

    @pytest.mark.asyncio
    async def test_requires_source(self) -> None:
        with pytest.raises(ConfigurationError):
            await DependencyGraphBuilder().abuild_from_tag("1")

    @pytest.mark.asyncio
    async def test_delay_keeps_order(self, pool) -> None:
        """Fetches are awaited one at a time, so latency never reorders discovery."""
        slow = InMemoryEntitySource(pool, delay_seconds=0.001)
        graph = await DependencyGraphBuilder(slow).abuild_from_tag("1")
        assert list(graph.nodes) == ["1", "5", "31", "32"]

    @pytest.mark.asyncio
    async def test_correlation_id_scoped_to_build(self, pool) -> None:
        source = CorrelationRecordingSource(pool)
        await DependencyGraphBuilder(source).abuild_from_tag("1")

        assert source.seen_ids
        assert all(cid.startswith("build-") for cid in source.seen_ids)
        assert len(set(source.seen_ids)) == 1
        assert get_correlation_id() == "-"


class TestFetchCaching:
    """Tests for per-build fetch and name caches."""

    @pytest.mark.asyncio
    async def test_each_name_looked_up_once(self, source) -> None:
        """A name referenced by several entities costs one lookup per build."""
        builder = DependencyGraphBuilder(source)
        await builder.abuild_from_tag("1")

        lookups = [call["key"] for call in source.calls("find_by_name")]
        assert lookups.count("Page Path") == 1
        assert lookups.count("Page URL") == 1

    @pytest.mark.asyncio
    async def test_name_lookup_seeds_fetch_cache(self, source) -> None:
        """Entities found by name are not fetched again by id."""
        await DependencyGraphBuilder(source).abuild_from_tag("1")
        assert [call["key"] for call in source.calls("get")] == ["1", "5"]

    @pytest.mark.asyncio
    async def test_cache_reset_between_builds(self, source) -> None:
        """A second build sees changes made to the source in between."""
        builder = DependencyGraphBuilder(source)
        first = await builder.abuild_from_tag("1")
        assert "33" not in first

        source.add(Entity.from_payload("variable", {"variableId": "33", "name": "Page Path"}))
        second = await builder.abuild_from_tag("1")

        assert "33" in second
        assert "32" not in second
        lookups = [call["key"] for call in source.calls("find_by_name")]
        assert lookups.count("Page Path") == 2


class TestFetchFailures:
    """Tests for entity-level and transport failures."""

    @pytest.mark.asyncio
    async def test_entity_fetch_error_treated_as_absent(self, source, log_messages) -> None:
        """A single failed fetch is skipped and the build continues."""
        source.fail("5", "HTTP 404")
        graph = await DependencyGraphBuilder(source).abuild_from_tag("1")

        assert "5" not in graph
        assert {"1", "31", "32"} <= set(graph.nodes)
        assert any(
            level == "WARNING" and message.startswith("Treating trigger 5 as absent")
            for level, message in log_messages
        )

    @pytest.mark.asyncio
    async def test_failed_name_lookup_treated_as_absent(self, source) -> None:
        source.fail("Page URL")
        graph = await DependencyGraphBuilder(source).abuild_from_tag("1")

        assert "31" not in graph
        edges = [e.target_id for e in graph.nodes["1"].dependencies]
        assert "name:Page URL" in edges

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self, pool) -> None:
        """Anything other than EntityFetchError aborts the build."""
        source = InMemoryEntitySource(pool, failures={"5": ConnectionError("network down")})

        with pytest.raises(ConnectionError, match="network down"):
            await DependencyGraphBuilder(source).abuild_from_tag("1")
        assert get_correlation_id() == "-"


class TestTemplateResolution:
    """Tests for cvt: placeholders in adapter mode."""

    @pytest.mark.asyncio
    async def test_listing_source_resolves_both_forms(self, source) -> None:
        graph = await DependencyGraphBuilder(source).abuild_from_tags(["2", "3"])

        assert graph.resolved_dependencies("2") == {"195"}
        assert graph.resolved_dependencies("3") == {"88"}
        assert len(source.calls("list")) == 1

    @pytest.mark.asyncio
    async def test_lookup_only_source_parses_type(self, source) -> None:
        """Without listing, cvt_<container>_<template> is fetched directly."""
        lookup_only = LookupOnlySource(source)
        assert isinstance(lookup_only, EntitySource)
        assert not isinstance(lookup_only, SupportsEntityListing)

        graph = await DependencyGraphBuilder(lookup_only).abuild_from_tags(["2", "3"])

        assert graph.creation_order[0] == "195"
        assert graph.resolved_dependencies("2") == {"195"}
        # gallery ids need the template data, which only a listing provides
        assert graph.resolved_dependencies("3") == set()

    @pytest.mark.asyncio
    async def test_container_mismatch_unresolved(self) -> None:
        source = LookupOnlySource(
            InMemoryEntitySource(
                EntityPool.from_payloads(
                    tags=[{"tagId": "2", "name": "Consent", "type": "cvt_111_195"}],
                    templates=[{"templateId": "195", "containerId": "222", "name": "T"}],
                )
            )
        )
        graph = await DependencyGraphBuilder(source).abuild_from_tag("2")

        assert "195" not in graph
        assert graph.nodes["2"].dependencies[0].target_id == "cvt:cvt_111_195"


class TestAdapterReverseTracking:
    """Tests for reverse tracking against a source."""

    @pytest.fixture
    def teardown_source(self) -> InMemoryEntitySource:
        return InMemoryEntitySource(
            EntityPool.from_payloads(
                tags=[
                    {"tagId": "A", "name": "Main", "teardownTag": [{"tagName": "Cleanup"}]},
                    {"tagId": "B", "name": "Cleanup"},
                ]
            )
        )

    @pytest.mark.asyncio
    async def test_candidates_listed_from_source(self, teardown_source) -> None:
        options = BuildOptions(enable_reverse_tracking=True)
        graph = await DependencyGraphBuilder(teardown_source).abuild_from_tag("B", options)

        assert graph.creation_order == ["B", "A"]
        assert [call["kind"] for call in teardown_source.calls("list")] == ["tag"]

    @pytest.mark.asyncio
    async def test_explicit_candidates_skip_listing(self, teardown_source) -> None:
        candidates: list[Any] = [
            {"tagId": "A", "name": "Main", "teardownTag": [{"tagName": "Cleanup"}]}
        ]
        options = BuildOptions(enable_reverse_tracking=True, candidate_tags=candidates)
        graph = await DependencyGraphBuilder(teardown_source).abuild_from_tag("B", options)

        assert graph.creation_order == ["B", "A"]
        assert teardown_source.calls("list") == []

    @pytest.mark.asyncio
    async def test_without_listing_nothing_to_search(self, teardown_source) -> None:
        options = BuildOptions(enable_reverse_tracking=True)
        builder = DependencyGraphBuilder(LookupOnlySource(teardown_source))
        graph = await builder.abuild_from_tag("B", options)

        assert graph.creation_order == ["B"]

    @pytest.mark.asyncio
    async def test_fetch_error_raised_type(self, teardown_source) -> None:
        """EntityFetchError carries the requested key."""
        teardown_source.fail("B", "gone")
        with pytest.raises(EntityFetchError) as exc_info:
            await teardown_source.aget_entity(EntityKind.TAG, "B")
        assert exc_info.value.entity_id == "B"
        assert exc_info.value.reason == "gone"
