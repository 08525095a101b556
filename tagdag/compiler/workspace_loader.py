"""Load workspace snapshots into an :class:`EntityPool`.

Two shapes are accepted, as JSON or YAML:

- A tag-manager container export::

    {"exportFormatVersion": 2,
     "containerVersion": {"tag": [...], "trigger": [...],
                          "variable": [...], "customTemplate": [...]}}

- A flat snapshot::

    {"tags": [...], "triggers": [...], "variables": [...], "templates": [...]}

Only the envelope is validated; entity payloads stay opaque dicts and are
wrapped by :meth:`Entity.from_payload`. Payloads without an id are skipped
with a warning.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from tagdag.kernel.domain.entities import Entity, EntityKind, EntityPool
from tagdag.kernel.exceptions import ConfigurationError, ResourceNotFoundError, ValidationError
from tagdag.kernel.logging import get_logger

logger = get_logger(__name__)

Payloads = list[dict[str, Any]]


class ContainerVersion(BaseModel):
    """The ``containerVersion`` block of a container export."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    tag: Payloads = Field(default_factory=list)
    trigger: Payloads = Field(default_factory=list)
    variable: Payloads = Field(default_factory=list)
    custom_template: Payloads = Field(default_factory=list, alias="customTemplate")


class WorkspaceSnapshot(BaseModel):
    """Envelope of a workspace snapshot in either accepted shape.

    When both shapes are present in one document, their entities are
    concatenated, export entities first.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    container_version: ContainerVersion | None = Field(default=None, alias="containerVersion")
    tags: Payloads = Field(default_factory=list)
    triggers: Payloads = Field(default_factory=list)
    variables: Payloads = Field(default_factory=list)
    templates: Payloads = Field(default_factory=list)

    def payloads(self, kind: EntityKind) -> Payloads:
        """Raw payloads of ``kind`` across both shapes."""
        version = self.container_version or ContainerVersion()
        match kind:
            case EntityKind.TAG:
                return version.tag + self.tags
            case EntityKind.TRIGGER:
                return version.trigger + self.triggers
            case EntityKind.VARIABLE:
                return version.variable + self.variables
            case EntityKind.TEMPLATE:
                return version.custom_template + self.templates
            case _:
                return []

    def to_pool(self) -> EntityPool:
        """Wrap every payload as an entity."""
        pool = EntityPool()
        for kind in (EntityKind.TAG, EntityKind.TRIGGER, EntityKind.VARIABLE, EntityKind.TEMPLATE):
            entities = pool.of_kind(kind)
            for payload in self.payloads(kind):
                try:
                    entities.append(Entity.from_payload(kind, payload))
                except ValidationError as e:
                    logger.warning("Skipping {kind} payload: {error}", kind=kind.value, error=e)
        return pool


def parse_workspace(data: Any) -> EntityPool:
    """Validate a decoded snapshot document and build its entity pool.

    Raises
    ------
    ConfigurationError
        If the document does not match either snapshot shape
    """
    if not isinstance(data, dict):
        raise ConfigurationError("workspace", f"expected a mapping, got {type(data).__name__}")
    try:
        snapshot = WorkspaceSnapshot.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError("workspace", str(e)) from e

    pool = snapshot.to_pool()
    logger.debug(
        "Loaded workspace: {tags} tags, {triggers} triggers, {variables} variables, "
        "{templates} templates",
        tags=len(pool.tags),
        triggers=len(pool.triggers),
        variables=len(pool.variables),
        templates=len(pool.templates),
    )
    return pool


def load_workspace(path: str | Path) -> EntityPool:
    """Read a JSON or YAML snapshot file.

    Parameters
    ----------
    path : str | Path
        Snapshot file; ``.yaml``/``.yml`` are parsed as YAML, anything else
        as JSON

    Returns
    -------
    EntityPool
        All entities of the snapshot

    Raises
    ------
    ResourceNotFoundError
        If the file does not exist
    ConfigurationError
        If the file cannot be decoded or has the wrong shape
    """
    snapshot_path = Path(path)
    if not snapshot_path.is_file():
        raise ResourceNotFoundError("workspace", str(snapshot_path))

    logger.info("Loading workspace from {path}", path=snapshot_path)
    text = snapshot_path.read_text(encoding="utf-8")
    try:
        if snapshot_path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(snapshot_path.name, f"cannot decode snapshot: {e}") from e

    return parse_workspace(data)
