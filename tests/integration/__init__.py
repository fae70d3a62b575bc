"""Integration tests running the stores, the engine and the CLI on SQLite."""
