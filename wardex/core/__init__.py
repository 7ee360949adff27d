"""Core types, configuration and errors shared by the organizer."""

from .config import CleanRule, WardexSettings, load_settings
from .errors import (
    ArchiveUnreadable,
    ClassificationError,
    ConfigError,
    DestinationCreateError,
    LockTimeout,
    LogAppendError,
    LogStoreError,
    MoveIOError,
    NoActiveEvent,
    UndoConflict,
    WardexError,
)
from .types import Entry

__all__ = [
    "ArchiveUnreadable",
    "ClassificationError",
    "CleanRule",
    "ConfigError",
    "DestinationCreateError",
    "Entry",
    "LockTimeout",
    "LogAppendError",
    "LogStoreError",
    "MoveIOError",
    "NoActiveEvent",
    "UndoConflict",
    "WardexError",
    "WardexSettings",
    "load_settings",
]
