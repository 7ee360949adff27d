"""
Entry classification.

Two modes:
    - pattern mode (clean): ordered regex rules against the base name
    - heuristic mode (smart import): filename tokens, then archive contents
      or extension hints, then the misc default
"""

import fnmatch
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from pydantic import BaseModel, Field

from ..core.config import CleanRule
from ..core.errors import ArchiveUnreadable
from ..core.types import Entry
from .archive import ArchiveLister, get_lister

logger = logging.getLogger(__name__)

# Heuristic categories in priority order; misc is the fallback
CATEGORY_PRIORITY: Tuple[str, ...] = ("web", "pwn", "crypto", "rev")
DEFAULT_CATEGORY = "misc"

_GLOB_CHARS = re.compile(r"[*?\[]")


class ClassificationSource(str, Enum):
    """Which stage produced a classification."""

    RULE = "rule"
    FILENAME = "filename"
    CONTENT = "content"
    EXTENSION = "extension"
    DEFAULT = "default"
    OVERRIDE = "override"


class Classification(BaseModel):
    """Where an entry belongs."""

    category: str = Field(description="Rule target or heuristic category")
    destination_dir: Optional[Path] = Field(
        default=None, description="Absolute destination directory"
    )
    source: ClassificationSource
    rule_index: Optional[int] = Field(
        default=None, description="Position of the matching rule"
    )
    warning: Optional[str] = Field(
        default=None, description="Non-fatal problem, e.g. unreadable archive"
    )


class PatternClassifier:
    """First matching rule wins."""

    def __init__(
        self,
        rules: Sequence[CleanRule],
        resolve_target: Callable[[str], Path],
    ):
        """
        Initialize pattern classifier.

        Args:
            rules: Ordered rules; list position is priority
            resolve_target: Maps a target template to an absolute directory
        """
        self.resolve_target = resolve_target
        self.errors: List[str] = []
        self._compiled: List[Tuple[int, Pattern[str], CleanRule]] = []

        for index, rule in enumerate(rules):
            try:
                self._compiled.append((index, re.compile(rule.pattern), rule))
            except re.error as e:
                message = f"Invalid regex pattern '{rule.pattern}': {e}"
                logger.error(message)
                self.errors.append(message)

    def classify(self, entry: Entry) -> Optional[Classification]:
        """Return the first matching rule's destination, or None if unmatched."""
        for index, regex, rule in self._compiled:
            if regex.search(entry.name):
                return Classification(
                    category=rule.target,
                    destination_dir=self.resolve_target(rule.target),
                    source=ClassificationSource.RULE,
                    rule_index=index,
                )
        return None


def _ordered_categories(categories: Iterable[str]) -> List[str]:
    present = list(categories)
    ordered = [c for c in CATEGORY_PRIORITY if c in present]
    ordered += [c for c in present if c not in ordered and c != DEFAULT_CATEGORY]
    if DEFAULT_CATEGORY in present:
        ordered.append(DEFAULT_CATEGORY)
    return ordered


def matches_signature(name: str, pattern: str) -> bool:
    """
    Match one token or glob against a (member) name, case-insensitively.

    Globs are tried against the full path and its last component.
    """
    name = name.lower()
    pattern = pattern.lower()
    if _GLOB_CHARS.search(pattern):
        basename = name.rstrip("/").rsplit("/", 1)[-1]
        return fnmatch.fnmatchcase(name, pattern) or fnmatch.fnmatchcase(
            basename, pattern
        )
    return pattern in name


class HeuristicClassifier:
    """Filename tokens first, content second, misc last."""

    def __init__(
        self,
        filename_tokens: Dict[str, List[str]],
        content_signatures: Dict[str, List[str]],
        extension_hints: Optional[Dict[str, str]] = None,
        lister_for: Callable[[Entry], Optional[ArchiveLister]] = get_lister,
    ):
        self.filename_tokens = filename_tokens
        self.content_signatures = content_signatures
        self.extension_hints = {
            ext.lower().lstrip("."): category
            for ext, category in (extension_hints or {}).items()
        }
        self.lister_for = lister_for

    def _match_filename(self, name: str) -> Optional[str]:
        for category in _ordered_categories(self.filename_tokens):
            if any(token.lower() in name for token in self.filename_tokens[category]):
                return category
        return None

    def _match_members(self, members: List[str]) -> Optional[str]:
        for category in _ordered_categories(self.content_signatures):
            patterns = self.content_signatures[category]
            if any(matches_signature(m, p) for m in members for p in patterns):
                return category
        return None

    def classify(self, entry: Entry) -> Classification:
        """
        Classify an entry for smart import.

        Never raises for unreadable archives: the entry falls back to misc
        and the problem is reported in Classification.warning.
        """
        category = self._match_filename(entry.name.lower())
        if category:
            return Classification(
                category=category, source=ClassificationSource.FILENAME
            )

        lister = self.lister_for(entry)
        if lister is not None:
            try:
                members = entry.list_members(lister)
            except ArchiveUnreadable as e:
                logger.warning(f"{e}; falling back to {DEFAULT_CATEGORY}")
                return Classification(
                    category=DEFAULT_CATEGORY,
                    source=ClassificationSource.DEFAULT,
                    warning=str(e),
                )

            category = self._match_members(members)
            if category:
                return Classification(
                    category=category, source=ClassificationSource.CONTENT
                )
        else:
            hinted = self.extension_hints.get(entry.extension.lstrip("."))
            if hinted:
                return Classification(
                    category=hinted, source=ClassificationSource.EXTENSION
                )

        return Classification(
            category=DEFAULT_CATEGORY, source=ClassificationSource.DEFAULT
        )
