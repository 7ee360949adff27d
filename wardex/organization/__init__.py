"""
Organization module: classify inbox entries, move them safely and undo moves.

Moves are recorded in an append-only transaction log so any number of them
can be reverted later, even after the filesystem has changed.
"""

from .archive import ArchiveLister, TarLister, ZipLister, get_lister, register_lister
from .classifier import (
    Classification,
    ClassificationSource,
    HeuristicClassifier,
    PatternClassifier,
)
from .mover import MoveExecutor, MoveResult, MoveStatus
from .organizer import (
    CleanSummary,
    Organizer,
    run_clean,
    run_smart_import,
    run_undo,
    scan_inbox,
)
from .transaction import MoveOperation, OperationOutcome, TransactionLog
from .undo import UndoEngine, UndoItem, UndoStatus, UndoSummary

__all__ = [
    "ArchiveLister",
    "Classification",
    "ClassificationSource",
    "CleanSummary",
    "HeuristicClassifier",
    "MoveExecutor",
    "MoveOperation",
    "MoveResult",
    "MoveStatus",
    "OperationOutcome",
    "Organizer",
    "PatternClassifier",
    "TarLister",
    "TransactionLog",
    "UndoEngine",
    "UndoItem",
    "UndoStatus",
    "UndoSummary",
    "ZipLister",
    "get_lister",
    "register_lister",
    "run_clean",
    "run_smart_import",
    "run_undo",
    "scan_inbox",
]
