"""
Inbox watcher.

Monitors the inbox and runs one clean per debounced burst of filesystem
events. Cleans never overlap: events arriving while a clean runs are
batched into the next one.
"""

import logging
import threading
import time
from pathlib import Path
from threading import Thread
from typing import Any, Callable, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .core.config import WardexSettings
from .core.errors import WardexError
from .organization.organizer import CleanSummary, Organizer

logger = logging.getLogger(__name__)

# Seconds to let an in-flight clean finish when the watcher stops
BATCH_JOIN_TIMEOUT = 60.0


class InboxEventHandler(FileSystemEventHandler):
    """Debounces inbox events into clean batches."""

    def __init__(
        self,
        run_batch: Callable[[], Any],
        debounce_seconds: float = 2.0,
    ):
        """
        Initialize inbox event handler.

        Args:
            run_batch: Called once per debounced batch (normally a clean run)
            debounce_seconds: Quiet period before a batch runs
        """
        super().__init__()
        self.run_batch = run_batch
        self.debounce_seconds = debounce_seconds
        self.pending_paths: Set[Path] = set()
        self.processing = False
        self._state_lock = threading.Lock()
        self._thread: Optional[Thread] = None

    def on_created(self, event: FileSystemEvent) -> None:
        self._queue(Path(str(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        self._queue(Path(str(event.dest_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory modifications only mirror changes to their children
        if not event.is_directory:
            self._queue(Path(str(event.src_path)))

    def _queue(self, path: Path) -> None:
        if path.name.startswith("."):
            return

        with self._state_lock:
            self.pending_paths.add(path)
            if self.processing:
                return
            self.processing = True
            self._thread = Thread(target=self._process_pending, daemon=True)
            self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for an in-flight batch to finish."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _process_pending(self) -> None:
        """Run batches until no events are pending."""
        while True:
            time.sleep(self.debounce_seconds)

            with self._state_lock:
                if not self.pending_paths:
                    self.processing = False
                    return
                count = len(self.pending_paths)
                self.pending_paths.clear()

            logger.info(f"Change detected ({count} path(s)), cleaning inbox")
            try:
                result = self.run_batch()
            except WardexError as e:
                logger.error(f"Auto-clean failed: {e}")
                continue
            except Exception:
                logger.exception("Unexpected error during auto-clean")
                continue

            if isinstance(result, CleanSummary):
                logger.info(
                    f"Auto-clean: {result.moved} moved, {result.skipped} skipped, "
                    f"{result.failed} failed"
                )
                for error in result.errors:
                    logger.error(error)
                for warning in result.warnings:
                    logger.warning(warning)


def watch_inbox(
    settings: WardexSettings,
    debounce_seconds: float = 2.0,
    stop_event: Optional[threading.Event] = None,
) -> None:
    """
    Watch the inbox until interrupted or stop_event is set.

    Raises:
        WardexError: If the inbox does not exist
    """
    inbox = settings.resolve_path("inbox")
    if not inbox.exists():
        raise WardexError(f"Inbox path not found: {inbox}")

    organizer = Organizer(settings)
    handler = InboxEventHandler(
        lambda: organizer.clean(dry_run=False), debounce_seconds=debounce_seconds
    )
    stop_event = stop_event or threading.Event()

    observer = Observer()
    observer.schedule(handler, str(inbox), recursive=False)
    observer.start()
    logger.info(f"Watching for changes in {inbox}")

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Watcher interrupted")
    finally:
        observer.stop()
        observer.join()
        handler.join(timeout=BATCH_JOIN_TIMEOUT)
