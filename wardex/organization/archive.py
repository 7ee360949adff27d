"""
Archive member listing.

The classifier only needs to know "can this entry list member names". Each
format registers a lister for its suffixes; new formats plug in through
register_lister without touching classification logic.
"""

import logging
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from ..core.errors import ArchiveUnreadable
from ..core.types import Entry

logger = logging.getLogger(__name__)

# Only the first members are inspected; large archives are not walked fully
MEMBER_SCAN_LIMIT = 50


class ArchiveLister(Protocol):
    """Anything that can list an archive's member names."""

    def list_members(self, path: Path) -> List[str]: ...


class ZipLister:
    def __init__(self, limit: int = MEMBER_SCAN_LIMIT):
        self.limit = limit

    def list_members(self, path: Path) -> List[str]:
        try:
            with zipfile.ZipFile(path) as archive:
                return archive.namelist()[: self.limit]
        except (zipfile.BadZipFile, OSError, ValueError, NotImplementedError) as e:
            raise ArchiveUnreadable(f"Cannot read zip archive {path}: {e}") from e


class TarLister:
    """Lists plain and compressed tar archives (gz, bz2, xz)."""

    def __init__(self, limit: int = MEMBER_SCAN_LIMIT):
        self.limit = limit

    def list_members(self, path: Path) -> List[str]:
        names: List[str] = []
        try:
            with tarfile.open(path, mode="r:*") as archive:
                for member in archive:
                    names.append(member.name)
                    if len(names) >= self.limit:
                        break
        except (tarfile.TarError, OSError, EOFError, ValueError) as e:
            raise ArchiveUnreadable(f"Cannot read tar archive {path}: {e}") from e
        return names


_LISTERS: Dict[str, ArchiveLister] = {}


def register_lister(suffix: str, lister: ArchiveLister) -> None:
    """Register a lister for a lower-case suffix such as ".zip" or ".tar.gz"."""
    _LISTERS[suffix.lower()] = lister


def get_lister(entry: Entry) -> Optional[ArchiveLister]:
    """Return the lister for an entry, or None if it is not a known archive."""
    if entry.is_directory:
        return None

    name = entry.name.lower()
    # Longest suffix first so ".tar.gz" wins over ".gz"
    for suffix in sorted(_LISTERS, key=len, reverse=True):
        if name.endswith(suffix):
            return _LISTERS[suffix]
    return None


register_lister(".zip", ZipLister())
for _suffix in (".tar", ".tar.gz", ".tgz", ".gz", ".tar.bz2", ".tar.xz"):
    register_lister(_suffix, TarLister())
