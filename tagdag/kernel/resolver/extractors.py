"""Reference extraction from tag, trigger and variable payloads.

Every function here is total: payloads come straight from an API or an
export file, so each sub-path is probed independently and anything with an
unexpected shape yields no edge instead of an error.

Variables are referenced by display name (``{{Page URL}}``), so variable
edges carry a ``name:`` placeholder. Custom templates are referenced by the
tag's type string and carry a ``cvt:`` placeholder. Both are resolved later
by the graph builder.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, NamedTuple

from tagdag.kernel.domain.dependency import (
    CVT_PREFIX,
    NAME_PREFIX,
    DependencyEdge,
    DependencyType,
)
from tagdag.kernel.domain.entities import Entity, EntityKind, VariableType
from tagdag.kernel.resolver.known_event_pushers import KnownEventPushers

VARIABLE_REF_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

# dataLayer.push({ event: "x" }), quoted or unquoted key, multi-line bodies
DATA_LAYER_PUSH_PATTERN = re.compile(
    r"""dataLayer\.push\s*\(\s*\{[^}]*["']?event["']?\s*:\s*["']([^"']+)["']""",
    re.IGNORECASE,
)

EVENT_MARKER = "{{_event}}"
CUSTOM_EVENT_TRIGGER = "customEvent"
HTML_TAG = "html"

_TRIGGER_FILTER_KEYS = ("filter", "autoEventFilter", "customEventFilter")


class VariableTypeInfo(NamedTuple):
    name: str
    icon: str
    has_internal_refs: bool


_VARIABLE_TYPE_INFO: dict[str, VariableTypeInfo] = {
    VariableType.DATA_LAYER: VariableTypeInfo("Data Layer Variable", "v", False),
    VariableType.JAVASCRIPT: VariableTypeInfo("Custom JavaScript", "jsm", True),
    VariableType.CONSTANT: VariableTypeInfo("Constant", "c", False),
    VariableType.LOOKUP_TABLE: VariableTypeInfo("Lookup Table", "smm", True),
    VariableType.REGEX_TABLE: VariableTypeInfo("Regex Table", "remm", True),
    VariableType.DOM_ELEMENT: VariableTypeInfo("DOM Element", "d", False),
    VariableType.FIRST_PARTY_COOKIE: VariableTypeInfo("1st Party Cookie", "k", False),
    VariableType.URL: VariableTypeInfo("URL Variable", "u", False),
    VariableType.AUTO_EVENT: VariableTypeInfo("Auto-Event Variable", "aev", False),
    VariableType.GA_SETTINGS: VariableTypeInfo("Google Analytics Settings", "gas", True),
    VariableType.GOOGLE_TAG_SETTINGS: VariableTypeInfo("Google Tag Settings", "gtes", True),
}


def get_variable_type_info(variable_type: str) -> VariableTypeInfo:
    """Display metadata for a variable subtype; unknown types get a ``?`` icon."""
    return _VARIABLE_TYPE_INFO.get(variable_type, VariableTypeInfo(variable_type, "?", False))


# ==================== Payload probes ====================


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list | tuple) else []


def _as_id(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, int):
        return str(value)
    return None


def _find_parameter(parameters: Any, key: str) -> Mapping[str, Any] | None:
    for param in _as_list(parameters):
        if isinstance(param, Mapping) and param.get("key") == key:
            return param
    return None


def _parameter_value(parameters: Any, key: str) -> str | None:
    param = _find_parameter(parameters, key)
    if param is None:
        return None
    value = param.get("value")
    return value if isinstance(value, str) else None


def extract_variable_references(text: Any) -> list[str]:
    """Collect ``{{name}}`` markers from one string.

    Names are whitespace-trimmed and de-duplicated within this string only,
    in order of first appearance.

    Examples
    --------
    >>> extract_variable_references("{{Page URL}}?q={{ Query }}&r={{Page URL}}")
    ['Page URL', 'Query']
    """
    if not isinstance(text, str):
        return []
    names: list[str] = []
    for match in VARIABLE_REF_PATTERN.finditer(text):
        name = match.group(1).strip()
        if name and name not in names:
            names.append(name)
    return names


def _variable_edges(
    text: Any,
    dependency_type: DependencyType,
    location: str,
    note: str | None = None,
) -> list[DependencyEdge]:
    return [
        DependencyEdge(
            target_id=f"{NAME_PREFIX}{name}",
            target_kind=EntityKind.VARIABLE,
            dependency_type=dependency_type,
            location=location,
            variable_name=name,
            note=note,
        )
        for name in extract_variable_references(text)
    ]


def _parameter_dependencies(
    parameters: Any,
    base_path: str,
    dependency_type: DependencyType = DependencyType.DIRECT_REFERENCE,
) -> list[DependencyEdge]:
    dependencies: list[DependencyEdge] = []

    for index, param in enumerate(_as_list(parameters)):
        if not isinstance(param, Mapping):
            continue
        key = param.get("key")
        path = f"{base_path}.{key}" if isinstance(key, str) else f"{base_path}[{index}]"

        dependencies.extend(_variable_edges(param.get("value"), dependency_type, path))

        if "list" in param:
            dependencies.extend(
                _parameter_dependencies(param["list"], f"{path}.list", dependency_type)
            )
        if "map" in param:
            dependencies.extend(
                _parameter_dependencies(param["map"], f"{path}.map", dependency_type)
            )

    return dependencies


def _filter_dependencies(filters: Any, base_path: str) -> list[DependencyEdge]:
    dependencies: list[DependencyEdge] = []

    for index, condition in enumerate(_as_list(filters)):
        if not isinstance(condition, Mapping):
            continue
        for param in _as_list(condition.get("parameter")):
            if not isinstance(param, Mapping):
                continue
            dependencies.extend(
                _variable_edges(
                    param.get("value"),
                    DependencyType.TRIGGER_CONDITION,
                    f"{base_path}[{index}].{param.get('key')}",
                )
            )

    return dependencies


def _trigger_edges(
    entries: Any, dependency_type: DependencyType, location: str
) -> list[DependencyEdge]:
    edges = []
    for entry in _as_list(entries):
        trigger_id = _as_id(entry)
        if trigger_id is not None:
            edges.append(
                DependencyEdge(
                    target_id=trigger_id,
                    target_kind=EntityKind.TRIGGER,
                    dependency_type=dependency_type,
                    location=location,
                )
            )
    return edges


def _companion_edges(
    entries: Any, dependency_type: DependencyType, location: str
) -> list[DependencyEdge]:
    edges = []
    for entry in _as_list(entries):
        if not isinstance(entry, Mapping):
            continue
        tag_id = _as_id(entry.get("tagId"))
        tag_name = entry.get("tagName") if isinstance(entry.get("tagName"), str) else None
        target_id = tag_id or (f"{NAME_PREFIX}{tag_name}" if tag_name else None)
        if target_id is None:
            continue
        edges.append(
            DependencyEdge(
                target_id=target_id,
                target_kind=EntityKind.TAG,
                dependency_type=dependency_type,
                location=location,
                tag_name=tag_name,
            )
        )
    return edges


# ==================== Per-kind extractors ====================


def extract_tag_dependencies(
    tag: Entity, custom_template_prefix: str = "cvt_"
) -> list[DependencyEdge]:
    """Triggers, companion tags, variables, config tag and template of a tag."""
    data = tag.data
    dependencies: list[DependencyEdge] = []

    dependencies.extend(
        _trigger_edges(
            data.get("firingTriggerId"), DependencyType.FIRING_TRIGGER, "firingTriggerId"
        )
    )
    dependencies.extend(
        _trigger_edges(
            data.get("blockingTriggerId"), DependencyType.BLOCKING_TRIGGER, "blockingTriggerId"
        )
    )
    dependencies.extend(
        _companion_edges(data.get("setupTag"), DependencyType.SETUP_TAG, "setupTag")
    )
    dependencies.extend(
        _companion_edges(data.get("teardownTag"), DependencyType.TEARDOWN_TAG, "teardownTag")
    )

    parameters = data.get("parameter")
    dependencies.extend(_parameter_dependencies(parameters, "parameter"))

    # GA4 event tags point at their configuration tag by id
    config_tag_id = _parameter_value(parameters, "configTagId")
    if config_tag_id:
        dependencies.append(
            DependencyEdge(
                target_id=config_tag_id,
                target_kind=EntityKind.TAG,
                dependency_type=DependencyType.CONFIG_TAG_REF,
                location="parameter.configTagId",
            )
        )

    # Template-backed tags carry no templateId, the type string is the reference
    if tag.entity_type.startswith(custom_template_prefix):
        dependencies.append(
            DependencyEdge(
                target_id=f"{CVT_PREFIX}{tag.entity_type}",
                target_kind=EntityKind.TEMPLATE,
                dependency_type=DependencyType.TEMPLATE_PARAM,
                location="type",
                note=f"Custom template type: {tag.entity_type}",
            )
        )

    return dependencies


def extract_trigger_dependencies(trigger: Entity) -> list[DependencyEdge]:
    """Variables read by a trigger's parameters and filter conditions."""
    dependencies = _parameter_dependencies(trigger.data.get("parameter"), "parameter")
    for key in _TRIGGER_FILTER_KEYS:
        dependencies.extend(_filter_dependencies(trigger.data.get(key), key))
    return dependencies


def _lookup_table_dependencies(parameters: Any, include_outputs: bool) -> list[DependencyEdge]:
    dependencies = _variable_edges(
        _parameter_value(parameters, "input"), DependencyType.LOOKUP_INPUT, "parameter.input"
    )
    if not include_outputs:
        return dependencies

    table = _find_parameter(parameters, "map")
    for row in _as_list(table.get("list") if table else None):
        if not isinstance(row, Mapping):
            continue
        dependencies.extend(
            _variable_edges(
                _parameter_value(row.get("map"), "value"),
                DependencyType.LOOKUP_OUTPUT,
                "parameter.map.value",
            )
        )
    return dependencies


def extract_variable_dependencies(variable: Entity) -> list[DependencyEdge]:
    """Variables referenced by a variable, including subtype-specific payloads."""
    parameters = variable.data.get("parameter")
    dependencies = _parameter_dependencies(parameters, "parameter")

    match variable.entity_type:
        case VariableType.JAVASCRIPT:
            dependencies.extend(
                _variable_edges(
                    _parameter_value(parameters, "javascript"),
                    DependencyType.JS_INTERNAL_REF,
                    "javascript",
                    note="Reference inside custom JavaScript",
                )
            )
        case VariableType.LOOKUP_TABLE:
            dependencies.extend(_lookup_table_dependencies(parameters, include_outputs=True))
        case VariableType.REGEX_TABLE:
            dependencies.extend(_lookup_table_dependencies(parameters, include_outputs=False))

    return dependencies


def extract_dependencies(
    entity: Entity, custom_template_prefix: str = "cvt_"
) -> list[DependencyEdge]:
    """Outgoing references of any entity; templates and folders are leaves."""
    match entity.kind:
        case EntityKind.TAG:
            return extract_tag_dependencies(entity, custom_template_prefix)
        case EntityKind.TRIGGER:
            return extract_trigger_dependencies(entity)
        case EntityKind.VARIABLE:
            return extract_variable_dependencies(entity)
        case _:
            return []


# ==================== Event detection (reverse tracking only) ====================


def extract_custom_event_name(trigger: Entity) -> str | None:
    """Event name a custom-event trigger listens for.

    Only ``{{_event}} <op> "literal"`` conditions count; a variable on the
    right-hand side cannot be matched against pushers.
    """
    if trigger.kind is not EntityKind.TRIGGER or trigger.entity_type != CUSTOM_EVENT_TRIGGER:
        return None

    for condition in _as_list(trigger.data.get("customEventFilter")):
        if not isinstance(condition, Mapping):
            continue
        arg0 = _parameter_value(condition.get("parameter"), "arg0")
        arg1 = _parameter_value(condition.get("parameter"), "arg1")
        if arg0 == EVENT_MARKER and arg1 and "{{" not in arg1:
            return arg1
    return None


def extract_data_layer_push_events(code: Any) -> list[str]:
    """Literal event names pushed by ``dataLayer.push({event: ...})`` calls."""
    if not isinstance(code, str):
        return []
    events: list[str] = []
    for match in DATA_LAYER_PUSH_PATTERN.finditer(code):
        event_name = match.group(1)
        if "{{" not in event_name and event_name not in events:
            events.append(event_name)
    return events


def extract_pushed_events(
    tag: Entity,
    pushers: KnownEventPushers | None = None,
    custom_template_prefix: str = "cvt_",
) -> list[str]:
    """Events a tag pushes: parsed from custom HTML, or registered for its template."""
    events: list[str] = []

    if tag.entity_type == HTML_TAG:
        html = _parameter_value(tag.data.get("parameter"), "html")
        events.extend(extract_data_layer_push_events(html))

    registry = pushers if pushers is not None else KnownEventPushers()
    for event in registry.events_for(tag, custom_template_prefix):
        if event not in events:
            events.append(event)

    return events
