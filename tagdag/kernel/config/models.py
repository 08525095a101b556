"""Configuration data models for tagDAG."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from tagdag.kernel.exceptions import ValidationError

NameConflictPolicy = Literal["last", "first", "error"]

_NAME_CONFLICT_POLICIES = frozenset({"last", "first", "error"})

# Templates whose sandboxed code pushes known events. Custom template code
# cannot be analyzed statically, so only registered mappings are trusted.
DEFAULT_TEMPLATE_EVENTS: dict[str, tuple[str, ...]] = {
    "cvt_KDDGR": ("gtagApiGet",),
}


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging configuration for tagDAG.

    Attributes
    ----------
    level : str, default="INFO"
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    format : str, default="structured"
        Output format (console, json, structured, dual, rich)
    output_file : str | None, default=None
        Optional file path to write logs to
    use_color : bool, default=True
        Use ANSI color codes (auto-disabled for non-TTY)
    include_timestamp : bool, default=True
        Include timestamp in log output
    use_rich : bool, default=False
        Use Rich library for console output
    dual_sink : bool, default=False
        Rich console plus structured JSON to stdout
    enable_stdlib_bridge : bool, default=False
        Intercept stdlib logging for third-party libraries
    backtrace : bool, default=True
        Enable backtrace for debugging
    diagnose : bool, default=True
        Show variable values in tracebacks

    Examples
    --------
    TOML configuration:

    ```toml
    [tool.tagdag.logging]
    level = "DEBUG"
    format = "rich"
    ```

    Environment variable overrides:

    ```bash
    export TAGDAG_LOG_LEVEL=DEBUG
    export TAGDAG_LOG_FORMAT=json
    ```
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "structured", "dual", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True
    use_rich: bool = False
    dual_sink: bool = False
    enable_stdlib_bridge: bool = False
    backtrace: bool = True
    diagnose: bool = True


@dataclass(frozen=True, slots=True)
class ResolverConfig:
    """Knobs of the dependency resolver.

    Attributes
    ----------
    hub_variable_types : tuple[str, ...]
        Variable subtypes treated as dependency leaves (shared settings
        variables assumed to exist in every target workspace)
    name_conflict_policy : {"last", "first", "error"}
        Which entity a duplicated display name resolves to. ``"error"``
        raises :class:`~tagdag.kernel.exceptions.DuplicateNameError`.
    known_template_events : dict[str, tuple[str, ...]]
        Custom template type -> events its tags push
    custom_template_prefix : str
        Prefix of tag types backed by a custom template
    template_id_sentinel : str
        Placeholder public id found in unpublished template data
    enable_reverse_tracking : bool
        Default for builds that don't pass explicit options
    """

    hub_variable_types: tuple[str, ...] = ("gtes", "gas")
    name_conflict_policy: NameConflictPolicy = "last"
    known_template_events: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_TEMPLATE_EVENTS)
    )
    custom_template_prefix: str = "cvt_"
    template_id_sentinel: str = "cvt_temp_public_id"
    enable_reverse_tracking: bool = False

    def __post_init__(self) -> None:
        """Validate resolver settings.

        Raises
        ------
        ValidationError
            If the policy is unknown, the template prefix is empty, or a list
            setting holds something other than a list
        """
        if self.name_conflict_policy not in _NAME_CONFLICT_POLICIES:
            raise ValidationError(
                "name_conflict_policy",
                f"must be one of {sorted(_NAME_CONFLICT_POLICIES)}",
                self.name_conflict_policy,
            )
        if not self.custom_template_prefix:
            raise ValidationError("custom_template_prefix", "cannot be empty")
        if not isinstance(self.hub_variable_types, (list, tuple)):
            raise ValidationError(
                "hub_variable_types", "must be a list of variable types", self.hub_variable_types
            )
        for template_type, events in self.known_template_events.items():
            if not isinstance(events, (list, tuple)):
                raise ValidationError(
                    f"known_template_events.{template_type}",
                    "must be a list of event names",
                    events,
                )
        object.__setattr__(self, "hub_variable_types", tuple(self.hub_variable_types))
        object.__setattr__(
            self,
            "known_template_events",
            {key: tuple(events) for key, events in self.known_template_events.items()},
        )


@dataclass(slots=True)
class TagDAGConfig:
    """Complete tagDAG configuration.

    Examples
    --------
    TOML configuration in pyproject.toml:

    ```toml
    [tool.tagdag.resolver]
    hub_variable_types = ["gtes", "gas"]
    name_conflict_policy = "first"
    enable_reverse_tracking = true

    [tool.tagdag.resolver.known_template_events]
    cvt_KDDGR = ["gtagApiGet"]

    [tool.tagdag.logging]
    level = "DEBUG"
    ```
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    settings: dict[str, Any] = field(default_factory=dict)
