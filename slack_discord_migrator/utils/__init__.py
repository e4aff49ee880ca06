"""Shared utilities for logging and message formatting."""

__all__ = [
    "formatting",
    "logging",
]
