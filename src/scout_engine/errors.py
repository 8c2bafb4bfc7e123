"""Error types for scout-engine flows."""

from __future__ import annotations


class ScoutEngineError(RuntimeError):
    """Base error for scout-engine operations."""


class SessionStoreError(ScoutEngineError):
    """Raised by session stores on read/write/delete failure."""


class CLIError(ScoutEngineError):
    """User-facing CLI error."""
