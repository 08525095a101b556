"""Command-line interface for tagDAG."""
