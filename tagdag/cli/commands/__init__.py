"""CLI command modules."""

from . import config_cmd, resolve_cmd

__all__ = ["config_cmd", "resolve_cmd"]
