"""
Type definitions for inbox entries.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

if TYPE_CHECKING:
    from ..organization.archive import ArchiveLister

# Multi-part suffixes that are kept whole when splitting a name
COMPOUND_SUFFIXES: Tuple[str, ...] = (".tar.gz", ".tar.bz2", ".tar.xz")


def split_name(name: str) -> Tuple[str, str]:
    """
    Split a file name into stem and suffix, keeping compound archive suffixes.

    Args:
        name: File name (no directory part)

    Returns:
        (stem, suffix) where suffix may be empty
    """
    lowered = name.lower()
    for compound in COMPOUND_SUFFIXES:
        if lowered.endswith(compound) and len(name) > len(compound):
            return name[: -len(compound)], name[-len(compound) :]

    stem, suffix = os.path.splitext(name)
    return stem, suffix


def tree_size(path: Path) -> int:
    """Total size in bytes of a file, or of every file below a directory."""
    if not path.is_dir() or path.is_symlink():
        return path.lstat().st_size

    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            total += (Path(root) / name).lstat().st_size
    return total


class Entry(BaseModel):
    """A candidate file or directory considered for relocation."""

    source_path: Path = Field(description="Absolute path of the entry")
    name: str = Field(description="Base name")
    extension: str = Field(default="", description="Lower-cased suffix")
    size_bytes: int = Field(default=0, description="Size (total for directories)")
    is_directory: bool = Field(default=False)

    model_config = ConfigDict(frozen=True)

    _members: Optional[List[str]] = PrivateAttr(default=None)

    @classmethod
    def from_path(cls, path: Path) -> "Entry":
        """
        Snapshot an existing path.

        Args:
            path: File or directory

        Returns:
            Entry describing the path at this moment
        """
        path = Path(path).absolute()
        _stem, suffix = split_name(path.name)
        is_directory = path.is_dir() and not path.is_symlink()

        return cls(
            source_path=path,
            name=path.name,
            extension="" if is_directory else suffix.lower(),
            size_bytes=tree_size(path),
            is_directory=is_directory,
        )

    @property
    def stem(self) -> str:
        return split_name(self.name)[0]

    def list_members(self, lister: "ArchiveLister") -> List[str]:
        """
        Return the archive's member names, fetching them on first use.

        Raises:
            ArchiveUnreadable: If the lister cannot open the archive
        """
        if self._members is None:
            self._members = lister.list_members(self.source_path)
        return self._members
