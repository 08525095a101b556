"""Registry of custom templates known to push data-layer events.

Custom template code runs sandboxed and cannot be analyzed statically, so a
template only counts as an event pusher when its type is registered here.
Each builder owns its registry; nothing is shared between builds.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from tagdag.kernel.config.models import DEFAULT_TEMPLATE_EVENTS
from tagdag.kernel.domain.entities import Entity


class KnownEventPushers:
    """Template type -> events pushed by tags of that type.

    Examples
    --------
    >>> pushers = KnownEventPushers()
    >>> pushers.add("cvt_ABCDE", ["formReady"])
    >>> sorted(pushers.all_events())
    ['formReady', 'gtagApiGet']
    """

    def __init__(self, mapping: Mapping[str, Iterable[str]] | None = None) -> None:
        source = DEFAULT_TEMPLATE_EVENTS if mapping is None else mapping
        self._events: dict[str, tuple[str, ...]] = {
            template_type: tuple(events) for template_type, events in source.items()
        }

    def add(self, template_type: str, events: Iterable[str]) -> None:
        """Register (or replace) the events pushed by ``template_type``."""
        self._events[template_type] = tuple(events)

    def events_for_type(self, template_type: str) -> tuple[str, ...]:
        return self._events.get(template_type, ())

    def events_for(self, tag: Entity, custom_template_prefix: str = "cvt_") -> list[str]:
        """Events pushed by ``tag`` according to its template type."""
        if not tag.entity_type.startswith(custom_template_prefix):
            return []
        return list(self.events_for_type(tag.entity_type))

    def all_events(self) -> set[str]:
        return {event for events in self._events.values() for event in events}

    def __contains__(self, template_type: object) -> bool:
        return template_type in self._events

    def __len__(self) -> int:
        return len(self._events)
