"""Tag-manager configuration entities.

Four kinds of entity reference each other: tags fire on triggers, triggers
and tags read variables, tags may run companion tags and may be backed by
custom templates. Entities are read-only inputs; their raw API payload is
kept as an opaque mapping and only probed by the extractors.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, NamedTuple

from tagdag.kernel.exceptions import ValidationError


class EntityKind(StrEnum):
    """Entity kind discriminant."""

    TAG = "tag"
    TRIGGER = "trigger"
    VARIABLE = "variable"
    TEMPLATE = "template"
    FOLDER = "folder"


class VariableType(StrEnum):
    """Built-in variable subtypes the resolver cares about."""

    DATA_LAYER = "v"
    JAVASCRIPT = "jsm"
    CONSTANT = "c"
    LOOKUP_TABLE = "smm"
    REGEX_TABLE = "remm"
    DOM_ELEMENT = "d"
    FIRST_PARTY_COOKIE = "k"
    URL = "u"
    AUTO_EVENT = "aev"
    CUSTOM_EVENT = "ev"
    GA_SETTINGS = "gas"
    GOOGLE_TAG_SETTINGS = "gtes"
    UNDEFINED = "uv"


# Payload key holding the kind-scoped id
ID_KEYS: Mapping[EntityKind, str] = MappingProxyType({
    EntityKind.TAG: "tagId",
    EntityKind.TRIGGER: "triggerId",
    EntityKind.VARIABLE: "variableId",
    EntityKind.TEMPLATE: "templateId",
    EntityKind.FOLDER: "folderId",
})


class EntityRef(NamedTuple):
    """Kind plus identifier of an entity to discover."""

    kind: EntityKind
    entity_id: str


@dataclass(frozen=True, slots=True)
class Entity:
    """One tag, trigger, variable or template.

    ``entity_type`` is the payload's ``type`` string (``"html"``, ``"jsm"``,
    ``"customEvent"``, ``"cvt_..."``); templates have none.
    """

    kind: EntityKind
    entity_id: str
    name: str
    entity_type: str = ""
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", EntityKind(self.kind))
        object.__setattr__(self, "entity_id", str(self.entity_id))
        if not isinstance(self.data, MappingProxyType):
            object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    @classmethod
    def from_payload(cls, kind: EntityKind | str, payload: Mapping[str, Any]) -> Entity:
        """Wrap a raw API payload.

        Parameters
        ----------
        kind : EntityKind | str
            Kind of the payload
        payload : Mapping[str, Any]
            Raw entity as returned by the tag-manager API

        Returns
        -------
        Entity
            Entity keyed by the kind-specific id field

        Raises
        ------
        ValidationError
            If the payload is not a mapping or has no id
        """
        kind = EntityKind(kind)
        if not isinstance(payload, Mapping):
            raise ValidationError(f"{kind}", "payload must be a mapping", type(payload).__name__)

        raw_id = payload.get(ID_KEYS[kind])
        if raw_id is None or raw_id == "":
            raise ValidationError(ID_KEYS[kind], "is required")

        name = payload.get("name")
        entity_type = payload.get("type")
        return cls(
            kind=kind,
            entity_id=str(raw_id),
            name=name if isinstance(name, str) else "",
            entity_type=entity_type if isinstance(entity_type, str) else "",
            data=payload,
        )

    @classmethod
    def coerce(cls, kind: EntityKind | str, item: Entity | Mapping[str, Any]) -> Entity:
        """Return ``item`` as an Entity of ``kind``, wrapping raw payloads."""
        if isinstance(item, Entity):
            return item
        return cls.from_payload(kind, item)

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.kind, self.entity_id)

    @property
    def container_id(self) -> str | None:
        value = self.data.get("containerId")
        return str(value) if value not in (None, "") else None

    def __repr__(self) -> str:
        type_str = f", type={self.entity_type!r}" if self.entity_type else ""
        return f"Entity({self.kind.value}:{self.entity_id} {self.name!r}{type_str})"


@dataclass(slots=True)
class EntityPool:
    """Already-loaded candidate entities, one list per kind."""

    tags: list[Entity] = field(default_factory=list)
    triggers: list[Entity] = field(default_factory=list)
    variables: list[Entity] = field(default_factory=list)
    templates: list[Entity] = field(default_factory=list)

    @classmethod
    def from_payloads(
        cls,
        tags: Iterable[Entity | Mapping[str, Any]] = (),
        triggers: Iterable[Entity | Mapping[str, Any]] = (),
        variables: Iterable[Entity | Mapping[str, Any]] = (),
        templates: Iterable[Entity | Mapping[str, Any]] = (),
    ) -> EntityPool:
        """Build a pool from entities or raw payloads.

        Raises
        ------
        ValidationError
            If a raw payload has no id
        """
        return cls(
            tags=[Entity.coerce(EntityKind.TAG, t) for t in tags],
            triggers=[Entity.coerce(EntityKind.TRIGGER, t) for t in triggers],
            variables=[Entity.coerce(EntityKind.VARIABLE, v) for v in variables],
            templates=[Entity.coerce(EntityKind.TEMPLATE, t) for t in templates],
        )

    def of_kind(self, kind: EntityKind) -> list[Entity]:
        match kind:
            case EntityKind.TAG:
                return self.tags
            case EntityKind.TRIGGER:
                return self.triggers
            case EntityKind.VARIABLE:
                return self.variables
            case EntityKind.TEMPLATE:
                return self.templates
            case _:
                return []

    def __iter__(self) -> Iterator[Entity]:
        yield from self.tags
        yield from self.triggers
        yield from self.variables
        yield from self.templates

    def __len__(self) -> int:
        return len(self.tags) + len(self.triggers) + len(self.variables) + len(self.templates)
