"""
Undo recorded moves, most recent first.

Each candidate is checked against the live filesystem before it is moved
back. Entries that no longer match are reported as conflicts and the batch
continues. Reverted operations stay in the log and are never undone twice.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import LogStoreError, UndoConflict
from .mover import MoveExecutor, MoveStatus
from .transaction import MoveOperation, OperationOutcome, TransactionLog

logger = logging.getLogger(__name__)


class UndoStatus(str, Enum):
    """Outcome of undoing one operation."""

    REVERTED = "reverted"
    CONFLICT = "conflict"
    FAILED = "failed"


class UndoItem(BaseModel):
    """Result for one undo candidate."""

    operation_id: int
    source_path: Path = Field(description="Where the entry was moved to")
    destination_path: Path = Field(description="Where it was (or would be) restored")
    status: UndoStatus
    reason: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class UndoSummary(BaseModel):
    """Result of an undo batch."""

    reverted: int = 0
    conflicted: int = 0
    failed: int = 0
    restored_paths: List[Path] = Field(default_factory=list)
    items: List[UndoItem] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    no_log_found: bool = False
    nothing_to_undo: bool = False


class UndoEngine:
    """Reverse recorded moves through the move executor."""

    def __init__(self, log: TransactionLog, executor: Optional[MoveExecutor] = None):
        self.log = log
        self.executor = executor or MoveExecutor()

    def undo(self, count: int = 1, operation_id: Optional[int] = None) -> UndoSummary:
        """
        Revert the count most recent applied moves, or one specific move.

        Args:
            count: Number of applied operations to revert
            operation_id: Revert exactly this operation instead

        Returns:
            Summary of reverted, conflicted and failed operations

        Raises:
            LockTimeout: If the log lock cannot be acquired
            LogStoreError: If the log cannot be read
        """
        summary = UndoSummary()

        if not self.log.log_path.exists():
            summary.no_log_found = True
            return summary

        with self.log.locked():
            candidates = self._candidates(count, operation_id, summary)
            if not candidates:
                return summary

            logger.info(f"Undoing {len(candidates)} operation(s)")
            for op in candidates:
                item = self._revert(op)
                summary.items.append(item)

                if item.status == UndoStatus.REVERTED:
                    summary.reverted += 1
                    summary.restored_paths.append(item.destination_path)
                elif item.status == UndoStatus.CONFLICT:
                    summary.conflicted += 1
                    summary.errors.append(f"Conflict: {item.reason}")
                else:
                    summary.failed += 1
                    summary.errors.append(f"Failed: {item.reason}")

        return summary

    def _candidates(
        self, count: int, operation_id: Optional[int], summary: UndoSummary
    ) -> List[MoveOperation]:
        if operation_id is not None:
            op = self.log.get(operation_id)
            if op is None:
                summary.errors.append(f"Operation {operation_id} not found")
                return []
            if op.outcome == OperationOutcome.REVERTED:
                summary.errors.append(f"Operation {operation_id} is already reverted")
                return []
            return [op]

        if count < 1:
            raise ValueError(f"Undo count must be at least 1, got {count}")

        candidates = self.log.recent_applied(count)
        if not candidates:
            summary.nothing_to_undo = True
        return candidates

    def verify(self, op: MoveOperation) -> None:
        """
        Check the live filesystem still holds what the operation recorded.

        Raises:
            UndoConflict: If the destination vanished or changed kind
        """
        destination = op.destination_path
        if not os.path.lexists(destination):
            raise UndoConflict(f"{destination} no longer exists")

        is_directory = destination.is_dir() and not destination.is_symlink()
        if is_directory and not op.is_directory:
            raise UndoConflict(f"{destination} is now a directory, expected a file")
        if op.is_directory and not is_directory:
            raise UndoConflict(f"{destination} is no longer a directory")

    def _revert(self, op: MoveOperation) -> UndoItem:
        item = UndoItem(
            operation_id=op.operation_id,
            source_path=op.destination_path,
            destination_path=op.source_path,
            status=UndoStatus.FAILED,
        )

        try:
            self.verify(op)
        except UndoConflict as e:
            logger.warning(f"Cannot undo operation {op.operation_id}: {e}")
            item.status = UndoStatus.CONFLICT
            item.reason = str(e)
            return item

        result = self.executor.relocate(
            op.destination_path, op.source_path, category=op.category
        )
        if result.status != MoveStatus.MOVED or result.destination_path is None:
            item.reason = result.reason or "move back failed"
            return item

        item.destination_path = result.destination_path
        try:
            self.log.mark_reverted(op.operation_id, result.destination_path)
        except (LogStoreError, KeyError) as e:
            item.reason = (
                f"Restored {result.destination_path} but could not mark "
                f"operation {op.operation_id} reverted: {e}"
            )
            return item

        if result.collision_suffix:
            item.reason = (
                "original location occupied, restored as "
                f"{result.destination_path.name}"
            )
        item.status = UndoStatus.REVERTED
        logger.info(f"Reverted {op.destination_path} → {result.destination_path}")
        return item
