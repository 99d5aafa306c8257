"""
Exception classes for habitsync.
"""

from __future__ import annotations


class HabitSyncError(Exception):
    """Base exception for all habitsync errors."""


class ConfigurationError(HabitSyncError):
    """Raised when a required credential or setting is missing."""


class TransportError(HabitSyncError):
    """Raised when a call to the source or target service fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DataError(HabitSyncError):
    """Raised when the history file exists but cannot be parsed."""


class UnexpectedResponseError(HabitSyncError):
    """Raised when a write call returns no usable body."""
