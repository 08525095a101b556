"""Lookup tables over an entity pool for placeholder resolution.

``name:<x>`` placeholders resolve through a per-kind display-name table.
Display names are not guaranteed unique; by default the last indexed entity
wins and every clash is logged as a data-quality warning.

``cvt:<type>`` placeholders resolve through a template-type table fed by
two sources:

1. ``cvt_<containerId>_<templateId>``, the public id the tag manager gives a
   template created inside a container.
2. The gallery id embedded in the template's ``templateData``
   (``"id": "cvt_KDDGR"``), unless it is the unpublished sentinel.
"""

from __future__ import annotations

import re
from collections import defaultdict

from tagdag.kernel.config.models import NameConflictPolicy
from tagdag.kernel.domain.dependency import CVT_PREFIX, NAME_PREFIX, DependencyEdge
from tagdag.kernel.domain.entities import Entity, EntityKind, EntityPool
from tagdag.kernel.exceptions import DuplicateNameError
from tagdag.kernel.logging import get_logger

logger = get_logger(__name__)


class EntityIndex:
    """Id, name and template-type lookups over one pool.

    Parameters
    ----------
    pool : EntityPool
        Candidate entities
    policy : {"last", "first", "error"}
        Duplicate display-name handling
    custom_template_prefix : str
        Prefix of custom template types (``"cvt_"``)
    template_id_sentinel : str
        Gallery id placeholder that must not be indexed
    """

    def __init__(
        self,
        pool: EntityPool,
        policy: NameConflictPolicy = "last",
        custom_template_prefix: str = "cvt_",
        template_id_sentinel: str = "cvt_temp_public_id",
    ) -> None:
        self.policy = policy
        self.custom_template_prefix = custom_template_prefix
        self.template_id_sentinel = template_id_sentinel

        self._by_id: defaultdict[EntityKind, dict[str, Entity]] = defaultdict(dict)
        self._name_to_id: defaultdict[EntityKind, dict[str, str]] = defaultdict(dict)
        self._template_types: dict[str, str] = {}
        self.duplicate_names: dict[tuple[EntityKind, str], list[str]] = {}

        self._gallery_id_pattern = re.compile(
            rf'"id"\s*:\s*"({re.escape(custom_template_prefix)}[^"]+)"'
        )

        for entity in pool:
            self.add(entity)

    def add(self, entity: Entity) -> None:
        """Index one entity.

        Raises
        ------
        DuplicateNameError
            If its name is already taken and the policy is ``"error"``
        """
        self._by_id[entity.kind][entity.entity_id] = entity
        self._index_name(entity)
        if entity.kind is EntityKind.TEMPLATE:
            self._index_template_types(entity)

    def _index_name(self, entity: Entity) -> None:
        if not entity.name:
            return
        names = self._name_to_id[entity.kind]
        existing = names.get(entity.name)

        if existing is not None and existing != entity.entity_id:
            ids = self.duplicate_names.setdefault((entity.kind, entity.name), [existing])
            ids.append(entity.entity_id)
            logger.warning(
                "Duplicate {kind} name '{name}' shared by ids {ids}",
                kind=entity.kind.value,
                name=entity.name,
                ids=ids,
            )
            if self.policy == "error":
                raise DuplicateNameError(entity.kind.value, entity.name, list(ids))
            if self.policy == "first":
                return

        names[entity.name] = entity.entity_id

    def _index_template_types(self, template: Entity) -> None:
        if template.container_id:
            public_id = f"{self.custom_template_prefix}{template.container_id}_{template.entity_id}"
            self._template_types[public_id] = template.entity_id

        template_data = template.data.get("templateData")
        if isinstance(template_data, str):
            match = self._gallery_id_pattern.search(template_data)
            if match and match.group(1) != self.template_id_sentinel:
                self._template_types[match.group(1)] = template.entity_id

    def get(self, kind: EntityKind, entity_id: str) -> Entity | None:
        return self._by_id[kind].get(entity_id)

    def id_for_name(self, kind: EntityKind, name: str) -> str | None:
        return self._name_to_id[kind].get(name)

    def template_for_type(self, template_type: str) -> str | None:
        return self._template_types.get(template_type)

    def resolve(self, edge: DependencyEdge) -> str | None:
        """Concrete target id of ``edge``, rewriting placeholders in place.

        Returns
        -------
        str | None
            The target id, or ``None`` when a placeholder did not resolve
            (the edge keeps its placeholder)
        """
        target_id = edge.target_id
        if target_id.startswith(NAME_PREFIX):
            resolved = self.id_for_name(edge.target_kind, target_id[len(NAME_PREFIX) :])
        elif target_id.startswith(CVT_PREFIX):
            resolved = self.template_for_type(target_id[len(CVT_PREFIX) :])
        else:
            return target_id or None

        if resolved is None:
            logger.debug(
                "Unresolved {kind} reference {target} at {location}",
                kind=edge.target_kind.value,
                target=target_id,
                location=edge.location,
            )
            return None
        edge.target_id = resolved
        return resolved
