"""Adapter implementations of the kernel ports."""

from .memory import InMemoryEntitySource

__all__ = ["InMemoryEntitySource"]
