"""
Active CTF event context.

Smart import needs to know which event an archive belongs to. The context is
an explicit ImportContext value; this module only helps the CLI derive one
from the working directory or from the persisted AppState.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import NoActiveEvent

logger = logging.getLogger(__name__)

EVENT_META_FILE = ".ctf_meta.json"


class ImportContext(BaseModel):
    """Where a smart import lands."""

    event_root: Path = Field(description="CTF event directory")
    category_override: Optional[str] = Field(
        default=None, description="Skip classification and use this category"
    )


class AppState(BaseModel):
    """Persisted user state between invocations."""

    current_event_path: Optional[Path] = None

    @staticmethod
    def state_path() -> Path:
        override = os.environ.get("WX_STATE_FILE")
        if override:
            return Path(override)
        data_home = Path(
            os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")
        )
        return data_home / "wardex" / "state.json"

    @classmethod
    def load(cls) -> "AppState":
        """Load state, returning an empty state if missing or unreadable."""
        path = cls.state_path()
        if not path.exists():
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                return cls.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable state file {path}: {e}")
            return cls()

    def save(self) -> None:
        path = self.state_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)

    def set_event(self, path: Path) -> None:
        """Make an existing event directory the active one."""
        if not path.exists():
            raise NoActiveEvent(f"Event path does not exist: {path}")
        if not (path / EVENT_META_FILE).exists():
            raise NoActiveEvent(f"{path} is not a CTF event (no {EVENT_META_FILE})")
        self.current_event_path = path.resolve()
        self.save()

    def get_event(self) -> Optional[Path]:
        if self.current_event_path and self.current_event_path.exists():
            return self.current_event_path
        return None


def find_event_root(start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from start (default: cwd) to the directory holding event metadata."""
    current = Path(start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / EVENT_META_FILE).exists():
            return candidate
    return None


def get_active_event_root(start: Optional[Path] = None) -> Path:
    """
    Determine the active event: local directory context first, then saved state.

    Raises:
        NoActiveEvent: If neither yields an event directory
    """
    root = find_event_root(start)
    if root:
        return root

    saved = AppState.load().get_event()
    if saved and (saved / EVENT_META_FILE).exists():
        return saved

    raise NoActiveEvent(
        "No active CTF event found. Run inside an event directory "
        "or pass --event."
    )
