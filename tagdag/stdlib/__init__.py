"""Built-in adapters shipped with tagDAG."""
