"""Listing records shared by the sources, the snapshot files and the readers."""

from dataclasses import dataclass
from datetime import datetime

from blobcache.utils import to_utc


@dataclass(frozen=True)
class CacheEntry:
    """Metadata for one remote object as stored in a snapshot.

    Attributes:
        name: Full object name, unique within a snapshot
        size_bytes: Object size in bytes
        last_modified: Last modification time (UTC, whole seconds)
    """

    name: str
    size_bytes: int
    last_modified: datetime

    def __post_init__(self):
        """Normalize the timestamp to UTC at the on-disk resolution."""
        object.__setattr__(
            self, "last_modified", to_utc(self.last_modified).replace(microsecond=0)
        )

    def to_dir_entry(self) -> "DirEntry":
        """Convert to the record returned to directory listings."""
        return DirEntry(
            name=self.name,
            size=self.size_bytes,
            modified=self.last_modified,
        )


@dataclass(frozen=True)
class DirEntry:
    """A directory-listing entry as consumed by the listing facade."""

    name: str
    size: int
    modified: datetime
    is_dir: bool = False

    @property
    def basename(self) -> str:
        """Last '/'-separated segment of the name."""
        return self.name.rsplit("/", 1)[-1]
