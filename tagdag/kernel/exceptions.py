"""Core exception hierarchy for tagDAG.

All tagDAG exceptions inherit from TagDAGError for easy exception handling.

Resolution itself is total: malformed payloads, unresolved placeholders,
absent entities and cycles never raise. The errors below come from
configuration, from the opt-in strict duplicate-name policy, and from
entity sources.
"""

from __future__ import annotations

# ============================================================================
# Base Exception
# ============================================================================


class TagDAGError(Exception):
    """Base exception for all tagDAG errors.

    Catch this to handle all tagDAG errors.
    """

    pass


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(TagDAGError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("workspace", "snapshot has no containerVersion")
    """

    def __init__(self, component: str, reason: str) -> None:
        """Initialize configuration error.

        Args
        ----
            component: Name of the component with invalid configuration
            reason: Explanation of what's wrong
        """
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class ValidationError(TagDAGError):
    """Raised when data validation fails.

    Examples
    --------
    Example usage::

        raise ValidationError("name_conflict_policy", "must be last, first or error", "any")
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        """Initialize validation error.

        Args
        ----
            field: Name of the field that failed validation
            constraint: Description of the validation constraint
            value: The invalid value (optional)
        """
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


# ============================================================================
# Resource & Entity Errors
# ============================================================================


class ResourceNotFoundError(TagDAGError):
    """Raised when a required resource cannot be found.

    Examples
    --------
    Example usage::

        raise ResourceNotFoundError("tag", "42", ["7", "12"])
    """

    def __init__(
        self, resource_type: str, resource_id: str, available: list[str] | None = None
    ) -> None:
        """Initialize resource not found error.

        Args
        ----
            resource_type: Type of resource (e.g., "tag", "workspace", "config")
            resource_id: Identifier of the missing resource
            available: List of available resources (optional)
        """
        msg = f"{resource_type.title()} '{resource_id}' not found"
        if available:
            msg += f". Available: {', '.join(available[:5])}"
            if len(available) > 5:
                msg += f" ... and {len(available) - 5} more"
        super().__init__(msg)
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.available = available


class EntityFetchError(TagDAGError):
    """Raised by an entity source when one entity cannot be fetched.

    The graph builder treats this as "entity absent" and keeps going.
    Any other exception escaping a source aborts the build.

    Examples
    --------
    Example usage::

        raise EntityFetchError("variable", "31", "HTTP 404")
    """

    def __init__(self, kind: str, entity_id: str, reason: str) -> None:
        """Initialize entity fetch error.

        Args
        ----
            kind: Entity kind that was requested
            entity_id: Identifier (or display name) that was requested
            reason: What went wrong
        """
        super().__init__(f"Failed to fetch {kind} '{entity_id}': {reason}")
        self.kind = kind
        self.entity_id = entity_id
        self.reason = reason


class DuplicateNameError(TagDAGError):
    """Raised when a display name maps to several entities under the strict policy."""

    def __init__(self, kind: str, name: str, ids: list[str]) -> None:
        super().__init__(f"Ambiguous {kind} name '{name}': matches {', '.join(ids)}")
        self.kind = kind
        self.name = name
        self.ids = ids
