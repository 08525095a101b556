"""Userspace loaders for tagDAG.

Turns configuration files and workspace snapshots into kernel objects.
"""

from .workspace_loader import WorkspaceSnapshot, load_workspace, parse_workspace


def __getattr__(name: str) -> object:
    """Lazy imports for config loader symbols to avoid circular imports."""
    _config_names = {
        "ConfigLoader",
        "clear_config_cache",
        "get_default_config",
        "load_config",
    }
    if name in _config_names:
        from tagdag.compiler import config_loader

        return getattr(config_loader, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["WorkspaceSnapshot", "load_workspace", "parse_workspace"]
