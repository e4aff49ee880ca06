"""Core migration logic: configuration, ledger storage and orchestration."""

__all__ = [
    "channel_processor",
    "config",
    "context",
    "database",
    "ledger",
    "migrator",
    "state",
]
