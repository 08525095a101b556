"""Dependency graph construction by breadth-first discovery.

Starting from root entities, every reference found in a payload is
resolved to a concrete id and enqueued until nothing new turns up. The
resulting node map is then handed to :func:`topological_sort`.

Two entry points share the same traversal rules:

- ``abuild*`` fetches each entity through an :class:`EntitySource`,
  awaiting one fetch at a time so discovery order is deterministic.
- ``build_from_pool`` / ``build_from_entities`` look entities up in an
  already-loaded pool and never suspend.

Examples
--------
>>> from tagdag.kernel.resolver.graph_builder import DependencyGraphBuilder
>>> builder = DependencyGraphBuilder()
>>> graph = builder.build_from_entities(
...     tags=[{"tagId": "1", "name": "Pageview", "type": "html", "firingTriggerId": ["7"]}],
...     triggers=[{"triggerId": "7", "name": "All Pages", "type": "pageview"}],
... )
>>> graph.creation_order
['7', '1']
"""

from __future__ import annotations

import re
import uuid
from collections import deque
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tagdag.kernel.config.models import ResolverConfig
from tagdag.kernel.domain.dependency import (
    CVT_PREFIX,
    NAME_PREFIX,
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
)
from tagdag.kernel.domain.entities import Entity, EntityKind, EntityPool, EntityRef
from tagdag.kernel.exceptions import ConfigurationError, EntityFetchError, ValidationError
from tagdag.kernel.logging import get_logger, reset_correlation_id, set_correlation_id
from tagdag.kernel.ports.entity_source import SupportsEntityListing
from tagdag.kernel.resolver.extractors import extract_custom_event_name, extract_dependencies
from tagdag.kernel.resolver.known_event_pushers import KnownEventPushers
from tagdag.kernel.resolver.name_index import EntityIndex
from tagdag.kernel.resolver.reverse_index import ReverseIndex, build_reverse_index
from tagdag.kernel.resolver.topo_sort import topological_sort

if TYPE_CHECKING:
    from tagdag.kernel.ports.entity_source import EntitySource

logger = get_logger(__name__)

MULTIPLE_ROOTS_NAME = "Multiple Tags"
UNKNOWN_ROOT_NAME = "Unknown"

RootSpec = EntityRef | Entity | tuple[EntityKind | str, str] | str


class BuildOptions(BaseModel):
    """Per-build traversal options.

    Attributes
    ----------
    enable_reverse_tracking : bool
        Also discover tags that declare a discovered tag as setup/teardown
        companion, and tags pushing the custom event of a discovered trigger
    candidate_tags : list[Entity] | None
        Wider tag pool searched by reverse tracking. Raw payload dicts are
        accepted and wrapped. ``None`` means the selected tags (pool mode)
        or the adapter's listing (adapter mode).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    enable_reverse_tracking: bool = False
    candidate_tags: list[Any] | None = Field(default=None)

    @field_validator("candidate_tags")
    @classmethod
    def wrap_candidate_tags(cls, v: list[Any] | None) -> list[Entity] | None:
        """Wrap raw tag payloads as entities, skipping those without an id."""
        if v is None:
            return None
        return _coerce_entities(EntityKind.TAG, v)


def _as_root(root: RootSpec) -> EntityRef:
    match root:
        case Entity():
            return root.ref
        case str():
            return EntityRef(EntityKind.TAG, root)
        case (kind, entity_id):
            return EntityRef(EntityKind(kind), str(entity_id))
        case _:
            raise ValidationError(
                "root", "must be an Entity, EntityRef, (kind, id) or tag id", root
            )


def _coerce_entities(kind: EntityKind, items: Iterable[Entity | Mapping[str, Any]]) -> list[Entity]:
    """Wrap payloads, skipping (with a warning) those without an id."""
    entities: list[Entity] = []
    for item in items:
        try:
            entities.append(Entity.coerce(kind, item))
        except ValidationError as e:
            logger.warning("Skipping {kind} payload: {error}", kind=kind.value, error=e)
    return entities


class DependencyGraphBuilder:
    """Discover every entity a set of roots transitively depends on.

    Parameters
    ----------
    source : EntitySource | None
        Adapter used by the ``abuild*`` entry points. Pool-based builds
        don't need one.
    config : ResolverConfig | None
        Resolver settings, defaults to :class:`ResolverConfig`

    Notes
    -----
    A builder keeps per-build state (node map, discovered ids, name lookup
    cache). It is reset at the start of every build, so one builder can run
    many builds one after another but not concurrently.
    """

    def __init__(
        self, source: EntitySource | None = None, config: ResolverConfig | None = None
    ) -> None:
        self.source = source
        self.config = config or ResolverConfig()
        self.pushers = KnownEventPushers(self.config.known_template_events)

        self._nodes: dict[str, DependencyNode] = {}
        self._discovered: set[str] = set()
        self._name_cache: dict[tuple[EntityKind, str], Entity | None] = {}
        self._fetched: dict[tuple[EntityKind, str], Entity | None] = {}
        self._template_index: EntityIndex | None = None
        self._cvt_pattern = re.compile(
            rf"{re.escape(self.config.custom_template_prefix)}([^_]+)_([^_]+)"
        )

    def reset(self) -> None:
        """Drop all per-build state."""
        self._nodes = {}
        self._discovered = set()
        self._name_cache.clear()
        self._fetched.clear()
        self._template_index = None

    def _default_options(self) -> BuildOptions:
        return BuildOptions(enable_reverse_tracking=self.config.enable_reverse_tracking)

    # ==================== Adapter-backed builds ====================

    async def abuild_from_tag(
        self, tag_id: str, options: BuildOptions | None = None
    ) -> DependencyGraph:
        """Build the graph of a single tag."""
        return await self.abuild([EntityRef(EntityKind.TAG, str(tag_id))], options)

    async def abuild_from_tags(
        self, tag_ids: Iterable[str], options: BuildOptions | None = None
    ) -> DependencyGraph:
        """Build one combined graph for several tags."""
        return await self.abuild([EntityRef(EntityKind.TAG, str(t)) for t in tag_ids], options)

    async def abuild(
        self, roots: Iterable[RootSpec], options: BuildOptions | None = None
    ) -> DependencyGraph:
        """Build a dependency graph by fetching entities from the source.

        Parameters
        ----------
        roots : Iterable[RootSpec]
            Entities to start from; bare strings are tag ids
        options : BuildOptions | None
            Traversal options, defaults from the resolver config

        Returns
        -------
        DependencyGraph
            Discovered nodes and their creation order

        Raises
        ------
        ConfigurationError
            If the builder has no source
        Exception
            Whatever the source raises other than ``EntityFetchError``
        """
        if self.source is None:
            raise ConfigurationError(
                "DependencyGraphBuilder", "adapter-backed builds need an EntitySource"
            )
        options = options or self._default_options()
        root_refs = [_as_root(root) for root in roots]

        token = set_correlation_id(f"build-{uuid.uuid4().hex[:8]}")
        try:
            self.reset()
            logger.info(
                "Building dependency graph from {count} root(s) via {source}",
                count=len(root_refs),
                source=type(self.source).__name__,
            )

            reverse = ReverseIndex()
            if options.enable_reverse_tracking:
                candidates = options.candidate_tags
                if candidates is None and isinstance(self.source, SupportsEntityListing):
                    candidates = await self.source.alist_entities(EntityKind.TAG)
                reverse = build_reverse_index(
                    candidates or [], self.pushers, self.config.custom_template_prefix
                )

            queue: deque[EntityRef] = deque(root_refs)
            deferred: deque[EntityRef] = deque()
            while queue or deferred:
                # Reverse finds wait until forward discovery runs dry
                ref = queue.popleft() if queue else deferred.popleft()
                if ref.entity_id in self._discovered:
                    continue
                self._discovered.add(ref.entity_id)

                entity = await self._afetch(ref.kind, ref.entity_id)
                if entity is None:
                    logger.debug(
                        "{kind} {id} not found, skipping", kind=ref.kind.value, id=ref.entity_id
                    )
                    continue

                node = self._add_node(entity)
                if options.enable_reverse_tracking:
                    self._enqueue_reverse(entity, reverse, deferred)

                for edge in node.dependencies:
                    target_id = await self._aresolve(edge)
                    if target_id is not None and target_id not in self._discovered:
                        queue.append(EntityRef(edge.target_kind, target_id))

            return self._finish(root_refs)
        finally:
            reset_correlation_id(token)

    async def _afetch(self, kind: EntityKind, entity_id: str) -> Entity | None:
        key = (kind, entity_id)
        if key in self._fetched:
            return self._fetched[key]
        try:
            entity = await self.source.aget_entity(kind, entity_id)  # type: ignore[union-attr]
        except EntityFetchError as e:
            logger.warning(
                "Treating {kind} {id} as absent: {error}", kind=kind.value, id=entity_id, error=e
            )
            entity = None
        self._fetched[key] = entity
        return entity

    async def _afind_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        key = (kind, name)
        if key in self._name_cache:
            return self._name_cache[key]
        try:
            entity = await self.source.afind_by_name(kind, name)  # type: ignore[union-attr]
        except EntityFetchError as e:
            logger.warning(
                "Treating {kind} '{name}' as absent: {error}", kind=kind.value, name=name, error=e
            )
            entity = None
        self._name_cache[key] = entity
        if entity is not None:
            self._fetched.setdefault((kind, entity.entity_id), entity)
        return entity

    async def _aresolve_template_type(self, template_type: str) -> str | None:
        if isinstance(self.source, SupportsEntityListing):
            if self._template_index is None:
                templates = await self.source.alist_entities(EntityKind.TEMPLATE)
                self._template_index = EntityIndex(
                    EntityPool(templates=templates),
                    policy=self.config.name_conflict_policy,
                    custom_template_prefix=self.config.custom_template_prefix,
                    template_id_sentinel=self.config.template_id_sentinel,
                )
            return self._template_index.template_for_type(template_type)

        match = self._cvt_pattern.fullmatch(template_type)
        if match is None:
            return None
        container_id, template_id = match.groups()
        template = await self._afetch(EntityKind.TEMPLATE, template_id)
        if template is None or template.container_id not in (None, container_id):
            return None
        return template.entity_id

    async def _aresolve(self, edge: DependencyEdge) -> str | None:
        """Adapter-backed counterpart of :meth:`EntityIndex.resolve`."""
        target_id = edge.target_id
        if target_id.startswith(NAME_PREFIX):
            entity = await self._afind_by_name(edge.target_kind, target_id[len(NAME_PREFIX) :])
            resolved = entity.entity_id if entity is not None else None
        elif target_id.startswith(CVT_PREFIX):
            resolved = await self._aresolve_template_type(target_id[len(CVT_PREFIX) :])
        else:
            return target_id or None

        if resolved is None:
            logger.debug(
                "Unresolved reference {target} at {location}",
                target=target_id,
                location=edge.location,
            )
            return None
        edge.target_id = resolved
        return resolved

    # ==================== Pool-based builds ====================

    def build_from_entities(
        self,
        tags: Iterable[Entity | Mapping[str, Any]],
        triggers: Iterable[Entity | Mapping[str, Any]] = (),
        variables: Iterable[Entity | Mapping[str, Any]] = (),
        templates: Iterable[Entity | Mapping[str, Any]] = (),
        options: BuildOptions | None = None,
    ) -> DependencyGraph:
        """Build the graph of the selected ``tags`` from already-loaded entities.

        ``options.candidate_tags`` (when given) replaces the selection as the
        tag pool used for companion lookups and reverse tracking; selected
        tags missing from it stay resolvable.

        Parameters
        ----------
        tags : Iterable[Entity | Mapping[str, Any]]
            Selected root tags
        triggers, variables, templates : Iterable[Entity | Mapping[str, Any]]
            Candidate pool for each kind
        options : BuildOptions | None
            Traversal options, defaults from the resolver config

        Returns
        -------
        DependencyGraph
            Discovered nodes and their creation order
        """
        options = options or self._default_options()
        selected = _coerce_entities(EntityKind.TAG, tags)

        tag_pool = list(options.candidate_tags) if options.candidate_tags is not None else []
        pooled_ids = {tag.entity_id for tag in tag_pool}
        tag_pool.extend(tag for tag in selected if tag.entity_id not in pooled_ids)

        pool = EntityPool(
            tags=tag_pool,
            triggers=_coerce_entities(EntityKind.TRIGGER, triggers),
            variables=_coerce_entities(EntityKind.VARIABLE, variables),
            templates=_coerce_entities(EntityKind.TEMPLATE, templates),
        )
        return self.build_from_pool(pool, [tag.ref for tag in selected], options)

    def build_from_pool(
        self,
        pool: EntityPool,
        roots: Iterable[RootSpec],
        options: BuildOptions | None = None,
    ) -> DependencyGraph:
        """Build a dependency graph by looking entities up in ``pool``.

        Raises
        ------
        DuplicateNameError
            Only with the ``"error"`` name conflict policy
        """
        options = options or self._default_options()
        root_refs = [_as_root(root) for root in roots]

        token = set_correlation_id(f"build-{uuid.uuid4().hex[:8]}")
        try:
            self.reset()
            logger.info(
                "Building dependency graph from {count} root(s) over a pool of {size}",
                count=len(root_refs),
                size=len(pool),
            )

            index = EntityIndex(
                pool,
                policy=self.config.name_conflict_policy,
                custom_template_prefix=self.config.custom_template_prefix,
                template_id_sentinel=self.config.template_id_sentinel,
            )
            reverse = ReverseIndex()
            if options.enable_reverse_tracking:
                reverse = build_reverse_index(
                    pool.tags, self.pushers, self.config.custom_template_prefix
                )

            queue: deque[EntityRef] = deque(root_refs)
            deferred: deque[EntityRef] = deque()
            while queue or deferred:
                # Reverse finds wait until forward discovery runs dry
                ref = queue.popleft() if queue else deferred.popleft()
                if ref.entity_id in self._discovered:
                    continue
                self._discovered.add(ref.entity_id)

                entity = index.get(ref.kind, ref.entity_id)
                if entity is None:
                    logger.debug(
                        "{kind} {id} not in pool, skipping", kind=ref.kind.value, id=ref.entity_id
                    )
                    continue

                node = self._add_node(entity)
                if options.enable_reverse_tracking:
                    self._enqueue_reverse(entity, reverse, deferred, index)

                for edge in node.dependencies:
                    target_id = index.resolve(edge)
                    if target_id is not None and target_id not in self._discovered:
                        queue.append(EntityRef(edge.target_kind, target_id))

            return self._finish(root_refs)
        finally:
            reset_correlation_id(token)

    # ==================== Shared traversal steps ====================

    def _add_node(self, entity: Entity) -> DependencyNode:
        if (
            entity.kind is EntityKind.VARIABLE
            and entity.entity_type in self.config.hub_variable_types
        ):
            # Shared settings variables are leaves; their references are not followed
            node = DependencyNode(entity=entity, dependencies=[], is_hub_variable=True)
        else:
            node = DependencyNode(
                entity=entity,
                dependencies=extract_dependencies(entity, self.config.custom_template_prefix),
            )
        self._nodes[entity.entity_id] = node
        self._discovered.add(entity.entity_id)
        return node

    def _enqueue_reverse(
        self,
        entity: Entity,
        reverse: ReverseIndex,
        deferred: deque[EntityRef],
        index: EntityIndex | None = None,
    ) -> None:
        """Queue tags found through ``reverse`` behind forward discovery."""
        match entity.kind:
            case EntityKind.TAG:
                found = reverse.users_of(entity)
                reason = f"companion users of '{entity.name}'"
            case EntityKind.TRIGGER:
                event = extract_custom_event_name(entity)
                found = reverse.pushers_of(event) if event else []
                reason = f"pushers of event '{event}'"
            case _:
                return

        for tag_id in found:
            if tag_id in self._discovered:
                continue
            if index is not None and index.get(EntityKind.TAG, tag_id) is None:
                continue
            logger.debug("Reverse tracking found tag {id} ({reason})", id=tag_id, reason=reason)
            deferred.append(EntityRef(EntityKind.TAG, tag_id))

    def _finish(self, root_refs: list[EntityRef]) -> DependencyGraph:
        result = topological_sort(self._nodes)

        if len(root_refs) == 1:
            root = self._nodes.get(root_refs[0].entity_id)
            root_name = root.name if root is not None and root.name else UNKNOWN_ROOT_NAME
        elif root_refs:
            root_name = MULTIPLE_ROOTS_NAME
        else:
            root_name = UNKNOWN_ROOT_NAME

        graph = DependencyGraph(
            root_id=root_refs[0].entity_id if root_refs else "",
            root_name=root_name,
            nodes=self._nodes,
            creation_order=result.order,
            recovered=result.recovered,
        )
        logger.info(
            "Dependency graph built: {nodes} nodes, {unresolved} unresolved references, "
            "{recovered} recovered",
            nodes=len(graph),
            unresolved=len(graph.unresolved_edges()),
            recovered=len(result.recovered),
        )
        return graph
