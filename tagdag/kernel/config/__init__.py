"""Configuration models for tagDAG."""

from tagdag.kernel.config.models import (
    DEFAULT_TEMPLATE_EVENTS,
    LoggingConfig,
    ResolverConfig,
    TagDAGConfig,
)

__all__ = [
    "DEFAULT_TEMPLATE_EVENTS",
    "LoggingConfig",
    "ResolverConfig",
    "TagDAGConfig",
]
