"""Reverse indexes used to widen discovery.

Given a tag or trigger already in the graph, these answer "which other tags
point at it?": tags declaring it as a setup/teardown companion, and tags
pushing the custom event a trigger listens for. They only decide what else
to enqueue. Ordering edges always come from each entity's own payload, so
nothing here ever becomes a dependency edge.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from tagdag.kernel.domain.entities import Entity, EntityKind
from tagdag.kernel.resolver.extractors import _as_id, _as_list, extract_pushed_events
from tagdag.kernel.resolver.known_event_pushers import KnownEventPushers


def _append_unique(index: defaultdict[str, list[str]], key: str, value: str) -> None:
    if value not in index[key]:
        index[key].append(value)


@dataclass(slots=True)
class ReverseIndex:
    """Event and companion-tag back-references over a candidate tag pool."""

    event_pushers: defaultdict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    setup_users: defaultdict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    teardown_users: defaultdict[str, list[str]] = field(
        default_factory=lambda: defaultdict(list)
    )
    # companion tag id -> users, for declarations carrying only a tagId
    companion_id_users: defaultdict[str, list[str]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def pushers_of(self, event_name: str) -> list[str]:
        return list(self.event_pushers.get(event_name, ()))

    def users_of(self, tag: Entity) -> list[str]:
        """Ids of tags declaring ``tag`` as setup or teardown companion."""
        users: list[str] = []
        candidates = (
            self.setup_users.get(tag.name, ()),
            self.teardown_users.get(tag.name, ()),
            self.companion_id_users.get(tag.entity_id, ()),
        )
        for group in candidates:
            for user_id in group:
                if user_id != tag.entity_id and user_id not in users:
                    users.append(user_id)
        return users


def build_reverse_index(
    tags: Iterable[Entity],
    pushers: KnownEventPushers | None = None,
    custom_template_prefix: str = "cvt_",
) -> ReverseIndex:
    """Index every candidate tag by the events it pushes and the companions it names.

    Parameters
    ----------
    tags : Iterable[Entity]
        Candidate pool, usually the whole workspace rather than the roots
    pushers : KnownEventPushers | None
        Template event registry, defaults to the built-in table
    custom_template_prefix : str
        Prefix of custom template tag types

    Returns
    -------
    ReverseIndex
        Back-references keyed by event name, companion name and companion id
    """
    index = ReverseIndex()

    for tag in tags:
        if tag.kind is not EntityKind.TAG:
            continue

        for event in extract_pushed_events(tag, pushers, custom_template_prefix):
            _append_unique(index.event_pushers, event, tag.entity_id)

        companions = (
            ("setupTag", index.setup_users),
            ("teardownTag", index.teardown_users),
        )
        for key, by_name in companions:
            for entry in _as_list(tag.data.get(key)):
                if not isinstance(entry, Mapping):
                    continue
                tag_name = entry.get("tagName")
                if isinstance(tag_name, str) and tag_name:
                    _append_unique(by_name, tag_name, tag.entity_id)
                tag_id = _as_id(entry.get("tagId"))
                if tag_id is not None:
                    _append_unique(index.companion_id_users, tag_id, tag.entity_id)

    return index
