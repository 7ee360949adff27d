"""
Error types raised by the organizer.

Per-entry errors (classification, destination, move, undo conflict) are
collected into run summaries. Lock timeouts and an unreadable log store
abort the whole invocation.
"""


class WardexError(Exception):
    """Base error for the project."""


class ConfigError(WardexError):
    """Configuration file or value is invalid."""


class ClassificationError(WardexError):
    """Entry could not be classified."""


class ArchiveUnreadable(ClassificationError):
    """Archive content inspection failed; the entry falls back to misc."""


class DestinationCreateError(WardexError):
    """Destination directory could not be created."""


class MoveIOError(WardexError):
    """Rename or cross-device copy failed."""


class LogAppendError(WardexError):
    """Move happened on disk but could not be recorded in the log."""


class LogStoreError(WardexError):
    """Transaction log exists but cannot be read or rewritten."""


class UndoConflict(WardexError):
    """Live filesystem no longer matches a recorded move."""


class LockTimeout(WardexError, TimeoutError):
    """Exclusive log lock was not acquired within the bounded wait."""


class NoActiveEvent(WardexError):
    """No CTF event context could be determined for a smart import."""
