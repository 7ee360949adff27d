"""
Single-entry relocation.

Renames in place when source and destination share a filesystem. Across
devices the entry is copied, the copy's size is checked against the source,
and only then is the source deleted, so an interrupted move never loses data.
"""

import errno
import logging
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import DestinationCreateError, MoveIOError
from ..core.types import split_name, tree_size

logger = logging.getLogger(__name__)

MAX_COLLISION_ATTEMPTS = 9999


class MoveStatus(str, Enum):
    """Outcome of relocating one entry."""

    MOVED = "moved"
    SKIPPED = "skipped"
    FAILED = "failed"


class MoveResult(BaseModel):
    """Result of relocating (or planning to relocate) one entry."""

    source_path: Path
    destination_path: Optional[Path] = Field(
        default=None, description="Final destination, including any suffix"
    )
    status: MoveStatus
    reason: Optional[str] = None
    category: Optional[str] = None
    collision_suffix: Optional[str] = None
    used_copy_fallback: bool = False
    dry_run: bool = False
    is_directory: bool = False
    size_bytes: int = 0
    recorded: bool = Field(default=False, description="Appended to the log")
    operation_id: Optional[int] = None

    model_config = ConfigDict(use_enum_values=True)


def collision_name(name: str, counter: int, is_directory: bool = False) -> str:
    """
    Name used for the n-th collision: "report (1).pdf", "ctf (2).tar.gz", "dir (1)".
    """
    if is_directory:
        return f"{name} ({counter})"
    stem, suffix = split_name(name)
    return f"{stem} ({counter}){suffix}"


class MoveExecutor:
    """Relocate entries one at a time."""

    def __init__(self, dry_run: bool = False):
        """
        Initialize move executor.

        Args:
            dry_run: Resolve destinations without touching the filesystem
        """
        self.dry_run = dry_run
        # Destinations planned earlier in the same dry run
        self._reserved: Set[Path] = set()

    def _occupied(self, path: Path) -> bool:
        return os.path.lexists(path) or path in self._reserved

    def resolve_collision(
        self, target: Path, is_directory: bool = False
    ) -> Tuple[Path, Optional[str]]:
        """
        Find a free destination path.

        Args:
            target: Preferred destination
            is_directory: Directories get the suffix appended to the whole name

        Returns:
            (free path, suffix applied or None)

        Raises:
            MoveIOError: If no free name is found
        """
        if not self._occupied(target):
            return target, None

        for counter in range(1, MAX_COLLISION_ATTEMPTS + 1):
            candidate = target.with_name(
                collision_name(target.name, counter, is_directory)
            )
            if not self._occupied(candidate):
                return candidate, f" ({counter})"

        raise MoveIOError(f"Too many naming conflicts for {target}")

    def move(
        self, source: Path, destination_dir: Path, category: Optional[str] = None
    ) -> MoveResult:
        """Move source into destination_dir, keeping its base name."""
        source = Path(source)
        return self.relocate(source, Path(destination_dir) / source.name, category)

    def relocate(
        self, source: Path, target: Path, category: Optional[str] = None
    ) -> MoveResult:
        """
        Move source to target, suffixing target if it is occupied.

        Args:
            source: Existing file or directory
            target: Preferred final path
            category: Carried into the result for reporting

        Returns:
            Move result; failures are reported, not raised
        """
        source = Path(source).absolute()
        target = Path(target).absolute()

        if not os.path.lexists(source):
            return MoveResult(
                source_path=source,
                status=MoveStatus.SKIPPED,
                reason="source no longer exists",
                category=category,
                dry_run=self.dry_run,
            )

        if source == target:
            return MoveResult(
                source_path=source,
                destination_path=target,
                status=MoveStatus.SKIPPED,
                reason="same location",
                category=category,
                dry_run=self.dry_run,
            )

        is_directory = source.is_dir() and not source.is_symlink()
        result = MoveResult(
            source_path=source,
            status=MoveStatus.MOVED,
            category=category,
            dry_run=self.dry_run,
            is_directory=is_directory,
        )

        try:
            result.size_bytes = tree_size(source)
            final, suffix = self.resolve_collision(target, is_directory)
        except (OSError, MoveIOError) as e:
            result.status = MoveStatus.FAILED
            result.reason = str(e)
            return result

        result.destination_path = final
        result.collision_suffix = suffix
        if suffix:
            result.reason = f"destination exists, renamed with suffix '{suffix}'"

        if self.dry_run:
            self._reserved.add(final)
            logger.info(f"[DRY RUN] Would move {source} → {final}")
            return result

        try:
            self._ensure_directory(final.parent)
            result.used_copy_fallback = self._transfer(source, final)
        except (DestinationCreateError, MoveIOError) as e:
            logger.error(f"Failed to move {source}: {e}")
            result.status = MoveStatus.FAILED
            result.reason = str(e)
            return result

        logger.info(f"Moved {source} → {final}")
        return result

    def _ensure_directory(self, directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DestinationCreateError(
                f"Failed to create destination directory {directory}: {e}"
            ) from e

    def _transfer(self, source: Path, target: Path) -> bool:
        """
        Rename, falling back to copy + verify + delete across devices.

        Returns:
            True if the copy fallback was used
        """
        try:
            os.rename(source, target)
            return False
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise MoveIOError(f"Failed to move {source}: {e}") from e

        logger.debug(f"Cross-device move, copying {source} → {target}")
        self._copy_verified(source, target)
        self._remove_source(source, target)
        return True

    def _copy_verified(self, source: Path, target: Path) -> None:
        expected = tree_size(source)
        try:
            if source.is_dir() and not source.is_symlink():
                shutil.copytree(source, target, symlinks=True)
            else:
                shutil.copy2(source, target, follow_symlinks=False)
        except OSError as e:
            self._discard_partial(target)
            raise MoveIOError(f"Copy of {source} to {target} failed: {e}") from e

        copied = tree_size(target)
        if copied != expected:
            self._discard_partial(target)
            raise MoveIOError(
                f"Size mismatch after copy of {source}: "
                f"expected {expected} bytes, got {copied}"
            )

    def _remove_source(self, source: Path, target: Path) -> None:
        try:
            if source.is_dir() and not source.is_symlink():
                shutil.rmtree(source)
            else:
                source.unlink()
        except OSError as e:
            # The verified copy stays in place; nothing is lost
            raise MoveIOError(
                f"Copied to {target} but could not remove source {source}: {e}"
            ) from e

    def _discard_partial(self, target: Path) -> None:
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif os.path.lexists(target):
                target.unlink()
        except OSError as e:
            logger.error(f"Could not remove partial copy {target}: {e}")
