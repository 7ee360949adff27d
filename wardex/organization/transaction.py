"""
Transaction log for move operations.

Append-only JSON Lines file; the only in-place change is flipping an
operation from applied to reverted, done by rewriting to a temp file and
atomically renaming it over the log. Mutating passes hold an exclusive
advisory lock on a sibling .lock file.
"""

import fcntl
import json
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, TextIO

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import LockTimeout, LogAppendError, LogStoreError

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL = 0.1


class OperationOutcome(str, Enum):
    """State of a recorded move."""

    APPLIED = "applied"
    REVERTED = "reverted"


class MoveOperation(BaseModel):
    """A single recorded relocation, the unit of undo."""

    operation_id: int = Field(description="Strictly increasing identifier")
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the move was applied",
    )
    source_path: Path = Field(description="Original location")
    destination_path: Path = Field(description="Actual destination, post-suffix")
    outcome: OperationOutcome = Field(default=OperationOutcome.APPLIED)
    collision_suffix: Optional[str] = Field(
        default=None, description="Suffix added to avoid a name collision"
    )
    category: Optional[str] = None
    is_directory: bool = False
    size_bytes: Optional[int] = None
    reverted_at: Optional[datetime] = None
    restored_path: Optional[Path] = Field(
        default=None, description="Where undo put the entry back"
    )

    # Unknown fields written by newer versions are kept on rewrite
    model_config = ConfigDict(use_enum_values=True, extra="allow")


class TransactionLog:
    """Durable ordered record of applied moves."""

    def __init__(self, log_path: Path, lock_timeout: float = 30.0):
        """
        Initialize transaction log.

        Args:
            log_path: JSON Lines file holding the operations
            lock_timeout: Maximum seconds to wait for the exclusive lock
        """
        self.log_path = Path(log_path)
        self.lock_path = self.log_path.with_name(self.log_path.name + ".lock")
        self.lock_timeout = lock_timeout

        self._lock_fd: Optional[TextIO] = None
        self._lock_depth = 0
        self._last_id: Optional[int] = None

    # Locking

    def acquire_lock(self, timeout: Optional[float] = None) -> None:
        """
        Acquire the exclusive log lock, waiting at most timeout seconds.

        Re-entrant within this instance.

        Raises:
            LockTimeout: If another process keeps the lock past the timeout
        """
        if self._lock_depth:
            self._lock_depth += 1
            return

        timeout = self.lock_timeout if timeout is None else timeout
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_fd = open(self.lock_path, "w")

        deadline = time.monotonic() + timeout
        waiting_logged = False
        while True:
            try:
                fcntl.flock(lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    lock_fd.close()
                    raise LockTimeout(
                        f"Could not acquire log lock {self.lock_path} "
                        f"within {timeout}s"
                    )
                if not waiting_logged:
                    logger.warning(f"Waiting for log lock (timeout: {timeout}s)")
                    waiting_logged = True
                time.sleep(LOCK_POLL_INTERVAL)

        self._lock_fd = lock_fd
        self._lock_depth = 1
        self._last_id = None
        logger.debug("Acquired log lock")

    def release_lock(self) -> None:
        """Release one level of the log lock."""
        if not self._lock_depth:
            return
        self._lock_depth -= 1
        if self._lock_depth:
            return

        if self._lock_fd:
            try:
                fcntl.flock(self._lock_fd.fileno(), fcntl.LOCK_UN)
            finally:
                self._lock_fd.close()
                self._lock_fd = None
                self._last_id = None
            logger.debug("Released log lock")

    @property
    def is_locked(self) -> bool:
        return self._lock_depth > 0

    @contextmanager
    def locked(self, timeout: Optional[float] = None) -> Iterator["TransactionLog"]:
        """Hold the lock for a whole read-modify-write cycle."""
        self.acquire_lock(timeout)
        try:
            yield self
        finally:
            self.release_lock()

    # Reading

    def read_operations(self) -> List[MoveOperation]:
        """
        Read every recorded operation in application order.

        Raises:
            LogStoreError: If the log exists but cannot be parsed
        """
        if not self.log_path.exists():
            return []

        try:
            with open(self.log_path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise LogStoreError(
                f"Cannot read transaction log {self.log_path}: {e}"
            ) from e

        lines = content.split(b"\n")
        operations: List[MoveOperation] = []
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line.decode("utf-8"))
                operations.append(MoveOperation.model_validate(record))
            except (ValueError, ValidationError) as e:
                if number == len(lines):
                    # Final line without newline: an append that never finished
                    logger.warning(
                        f"Ignoring incomplete last record in {self.log_path}"
                    )
                    continue
                raise LogStoreError(
                    f"Corrupt record on line {number} of {self.log_path}: {e}"
                ) from e

        return operations

    def get(self, operation_id: int) -> Optional[MoveOperation]:
        for op in self.read_operations():
            if op.operation_id == operation_id:
                return op
        return None

    def recent_applied(self, count: int = 1) -> List[MoveOperation]:
        """Most recent applied operations, newest first."""
        applied = [
            op
            for op in self.read_operations()
            if op.outcome == OperationOutcome.APPLIED
        ]
        applied.reverse()
        return applied[:count]

    def get_statistics(self) -> Dict[str, int]:
        """Operation counts by outcome."""
        stats = {"total": 0, "applied": 0, "reverted": 0}
        for op in self.read_operations():
            outcome = OperationOutcome(op.outcome).value
            stats["total"] += 1
            stats[outcome] = stats.get(outcome, 0) + 1
        return stats

    # Writing

    def _next_id(self) -> int:
        if self._last_id is None:
            operations = self.read_operations()
            self._last_id = max((op.operation_id for op in operations), default=0)
        self._last_id += 1
        return self._last_id

    def append(
        self,
        source_path: Path,
        destination_path: Path,
        collision_suffix: Optional[str] = None,
        category: Optional[str] = None,
        is_directory: bool = False,
        size_bytes: Optional[int] = None,
    ) -> MoveOperation:
        """
        Record an applied move.

        Returns:
            The recorded operation

        Raises:
            LogAppendError: If the record could not be persisted
        """
        with self.locked():
            try:
                operation = MoveOperation(
                    operation_id=self._next_id(),
                    source_path=source_path,
                    destination_path=destination_path,
                    collision_suffix=collision_suffix,
                    category=category,
                    is_directory=is_directory,
                    size_bytes=size_bytes,
                )
                self._write_line(operation)
            except (OSError, LogStoreError) as e:
                self._last_id = None
                raise LogAppendError(
                    f"Moved {source_path} → {destination_path} but could not "
                    f"record it: {e}"
                ) from e

        logger.debug(f"Recorded operation {operation.operation_id}")
        return operation

    def _truncate_torn_tail(self) -> None:
        """Drop an incomplete last record so the next append starts clean."""
        with open(self.log_path, "rb+") as f:
            content = f.read()
            if not content or content.endswith(b"\n"):
                return
            keep = content.rfind(b"\n") + 1
            logger.warning(
                f"Truncating incomplete last record in {self.log_path} "
                f"({len(content) - keep} bytes)"
            )
            f.truncate(keep)

    def _write_line(self, operation: MoveOperation) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        if self.log_path.exists():
            self._truncate_torn_tail()
        line = json.dumps(operation.model_dump(mode="json"), default=str)
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())

    def mark_reverted(
        self, operation_id: int, restored_path: Optional[Path] = None
    ) -> MoveOperation:
        """
        Flip one operation to reverted.

        Raises:
            KeyError: If the operation does not exist
            LogStoreError: If the log cannot be rewritten
        """
        with self.locked():
            operations = self.read_operations()
            for op in operations:
                if op.operation_id == operation_id:
                    op.outcome = OperationOutcome.REVERTED
                    op.reverted_at = datetime.now()
                    op.restored_path = restored_path
                    break
            else:
                raise KeyError(operation_id)

            self._rewrite(operations)

        logger.debug(f"Marked operation {operation_id} reverted")
        return op

    def _rewrite(self, operations: List[MoveOperation]) -> None:
        # Write to temp file first, then atomic rename
        temp_file = self.log_path.with_name(self.log_path.name + ".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                for op in operations:
                    f.write(json.dumps(op.model_dump(mode="json"), default=str))
                    f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            temp_file.replace(self.log_path)
        except OSError as e:
            logger.error(f"Error rewriting transaction log: {e}")
            if temp_file.exists():
                temp_file.unlink()
            raise LogStoreError(f"Cannot rewrite transaction log: {e}") from e
