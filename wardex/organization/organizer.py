"""
Organizer entry points.

run_clean routes inbox entries by pattern rules, run_smart_import routes a
challenge archive into the active CTF event by heuristics, and run_undo
reverses recorded moves. Mutating runs hold the transaction log lock for the
whole batch; dry runs never take it.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from ..core.config import WardexSettings, load_settings
from ..core.errors import LogAppendError
from ..core.state import ImportContext
from ..core.types import Entry
from .classifier import (
    Classification,
    ClassificationSource,
    HeuristicClassifier,
    PatternClassifier,
)
from .mover import MoveExecutor, MoveResult, MoveStatus
from .transaction import TransactionLog
from .undo import UndoEngine, UndoSummary

logger = logging.getLogger(__name__)


class CleanSummary(BaseModel):
    """Result of a clean or smart import run."""

    total_entries: int = 0
    moved: int = 0
    skipped: int = 0
    unmatched: int = 0
    failed: int = 0
    unrecorded: int = 0
    dry_run: bool = False
    inbox_not_found: bool = False
    inbox_empty: bool = False
    items: List[MoveResult] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def scan_inbox(inbox: Path, ignore: Iterable[Path] = ()) -> List[Entry]:
    """
    Snapshot the direct children of the inbox.

    Hidden names and the given paths (log, lock) are left alone.
    """
    ignored = {Path(p).absolute() for p in ignore}
    entries: List[Entry] = []
    for path in sorted(Path(inbox).iterdir()):
        if path.name.startswith(".") or path.absolute() in ignored:
            continue
        try:
            entries.append(Entry.from_path(path))
        except OSError as e:
            # Vanished between listing and stat
            logger.warning(f"Skipping {path}: {e}")
    return entries


def challenge_name(entry: Entry) -> str:
    """Directory name for an imported challenge: the lower-cased stem."""
    return entry.stem.lower() or "unknown_chall"


class Organizer:
    """Classify, move and record entries; undo recorded moves."""

    def __init__(
        self,
        settings: WardexSettings,
        log: Optional[TransactionLog] = None,
    ):
        """
        Initialize organizer.

        Args:
            settings: Loaded configuration, treated as read-only
            log: Transaction log (default: the configured undo log)
        """
        self.settings = settings
        self.log = log or TransactionLog(
            settings.undo_log_path, lock_timeout=settings.lock_timeout
        )
        self.pattern_classifier = PatternClassifier(
            settings.rules.clean, settings.resolve_target
        )
        self.heuristic_classifier = HeuristicClassifier(
            settings.ctf.filename_tokens,
            settings.ctf.content_signatures,
            settings.ctf.extension_hints,
        )

    def clean(
        self, entries: Optional[Iterable[Entry]] = None, dry_run: bool = False
    ) -> CleanSummary:
        """
        Route entries by the clean rules.

        Args:
            entries: Candidates (default: everything in the inbox)
            dry_run: Report the exact moves without performing them

        Returns:
            Summary of moved, skipped, unmatched and failed entries

        Raises:
            LockTimeout: If another run holds the log lock too long
            LogStoreError: If the existing log cannot be read
        """
        logger.info(f"Starting clean ({'DRY RUN' if dry_run else 'LIVE'})")
        summary = CleanSummary(dry_run=dry_run)
        summary.errors.extend(self.pattern_classifier.errors)

        if entries is None:
            inbox = self.settings.resolve_path("inbox")
            if not inbox.exists():
                summary.inbox_not_found = True
                summary.errors.append(f"Inbox path not found: {inbox}")
                return summary
            entries = scan_inbox(
                inbox, ignore=[self.log.log_path, self.log.lock_path]
            )
            if not entries:
                summary.inbox_empty = True
                return summary

        entries = list(entries)
        summary.total_entries = len(entries)
        logger.info(f"Processing {len(entries)} entries")

        planned: List[Tuple[Entry, Classification]] = []
        for entry in entries:
            classification = self.pattern_classifier.classify(entry)
            if classification is None:
                logger.debug(f"Skipping {entry.name}: no matching rule")
                summary.unmatched += 1
                summary.skipped += 1
                summary.items.append(
                    MoveResult(
                        source_path=entry.source_path,
                        status=MoveStatus.SKIPPED,
                        reason="No matching rule",
                        dry_run=dry_run,
                    )
                )
                continue
            planned.append((entry, classification))

        self._execute(planned, dry_run, summary)
        return summary

    def smart_import(
        self, entry: Entry, context: ImportContext, dry_run: bool = False
    ) -> CleanSummary:
        """
        Import a challenge file into <event>/<category>/<challenge>/.

        Args:
            entry: Archive (or any file) to import
            context: Active event and optional category override
            dry_run: Report the move without performing it
        """
        if context.category_override:
            classification = Classification(
                category=context.category_override,
                source=ClassificationSource.OVERRIDE,
            )
        else:
            classification = self.heuristic_classifier.classify(entry)

        classification.destination_dir = (
            context.event_root / classification.category / challenge_name(entry)
        )
        logger.info(
            f"Importing {entry.name} as {classification.category} "
            f"({classification.source.value})"
        )

        summary = CleanSummary(dry_run=dry_run, total_entries=1)
        self._execute([(entry, classification)], dry_run, summary)
        return summary

    def undo(self, count: int = 1, operation_id: Optional[int] = None) -> UndoSummary:
        return UndoEngine(self.log).undo(count=count, operation_id=operation_id)

    def _execute(
        self,
        planned: Sequence[Tuple[Entry, Classification]],
        dry_run: bool,
        summary: CleanSummary,
    ) -> None:
        executor = MoveExecutor(dry_run=dry_run)

        if dry_run:
            for entry, classification in planned:
                self._apply(executor, entry, classification, summary, record=False)
            return

        if not planned:
            return

        with self.log.locked():
            # Unreadable log aborts before anything moves
            self.log.read_operations()
            for entry, classification in planned:
                self._apply(executor, entry, classification, summary, record=True)

    def _apply(
        self,
        executor: MoveExecutor,
        entry: Entry,
        classification: Classification,
        summary: CleanSummary,
        record: bool,
    ) -> None:
        if classification.warning:
            summary.warnings.append(f"{entry.name}: {classification.warning}")

        assert classification.destination_dir is not None
        try:
            result = executor.move(
                entry.source_path,
                classification.destination_dir,
                category=classification.category,
            )
        except Exception as e:
            logger.error(f"Error processing {entry.source_path}: {e}")
            result = MoveResult(
                source_path=entry.source_path,
                status=MoveStatus.FAILED,
                reason=str(e),
                category=classification.category,
                dry_run=executor.dry_run,
            )

        if result.status == MoveStatus.MOVED and record:
            self._record(result, summary)

        summary.items.append(result)
        if result.status == MoveStatus.MOVED:
            summary.moved += 1
        elif result.status == MoveStatus.SKIPPED:
            summary.skipped += 1
        else:
            summary.failed += 1
            summary.errors.append(
                f"Failed to move {result.source_path}: {result.reason}"
            )

    def _record(self, result: MoveResult, summary: CleanSummary) -> None:
        assert result.destination_path is not None
        try:
            operation = self.log.append(
                source_path=result.source_path,
                destination_path=result.destination_path,
                collision_suffix=result.collision_suffix,
                category=result.category,
                is_directory=result.is_directory,
                size_bytes=result.size_bytes,
            )
        except LogAppendError as e:
            logger.error(str(e))
            result.status = MoveStatus.FAILED
            result.reason = f"moved but unrecorded: {e}"
            summary.unrecorded += 1
            summary.warnings.append(
                f"Moved but unrecorded, undo is not available: "
                f"{result.source_path} → {result.destination_path}"
            )
            return

        result.recorded = True
        result.operation_id = operation.operation_id


def run_clean(
    entries: Optional[Iterable[Entry]] = None,
    dry_run: bool = False,
    settings: Optional[WardexSettings] = None,
) -> CleanSummary:
    """Clean the given entries, or the whole inbox."""
    return Organizer(settings or load_settings()).clean(entries, dry_run=dry_run)


def run_smart_import(
    archive_entry: Entry,
    context: ImportContext,
    dry_run: bool = False,
    settings: Optional[WardexSettings] = None,
) -> CleanSummary:
    """Import one challenge archive into the event given by context."""
    return Organizer(settings or load_settings()).smart_import(
        archive_entry, context, dry_run=dry_run
    )


def run_undo(
    count: int = 1,
    operation_id: Optional[int] = None,
    settings: Optional[WardexSettings] = None,
) -> UndoSummary:
    """Undo the count most recent moves, or the one with operation_id."""
    return Organizer(settings or load_settings()).undo(
        count=count, operation_id=operation_id
    )
