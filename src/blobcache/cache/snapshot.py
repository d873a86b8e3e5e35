"""Snapshot file naming and the on-disk record format.

A snapshot is a CSV file with one record per remote object:

    name,size_bytes,last_modified

``last_modified`` uses the fixed ``YYYY-MM-DDThh:mm:ssZ`` UTC format. Names
are written with standard CSV quoting, so commas, quotes and newlines inside
an object name survive a round trip.
"""

import csv
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Iterable, Iterator, List

from blobcache.cache.errors import SnapshotCorruptError
from blobcache.entries import CacheEntry
from blobcache.utils import (
    STAGING_SUFFIX_FORMAT,
    format_timestamp,
    parse_timestamp,
    to_utc,
)


@dataclass(frozen=True)
class SnapshotPaths:
    """Locations of the snapshot artifacts of one container."""

    storage_path: Path
    container: str

    @classmethod
    def for_container(cls, storage_path, container: str) -> "SnapshotPaths":
        return cls(Path(storage_path), container)

    @property
    def current(self) -> Path:
        """Snapshot served to readers."""
        return self.storage_path / f"cache-{self.container}.csv"

    @property
    def previous(self) -> Path:
        """Snapshot demoted by the last promotion, kept for rollback."""
        return self.storage_path / f"cache-{self.container}-old.csv"

    @property
    def lock(self) -> Path:
        return self.storage_path / f"cache-{self.container}.lock"

    @property
    def metadata(self) -> Path:
        return self.storage_path / f".cache-{self.container}.json"

    def staging(self, started_at: datetime) -> Path:
        """Snapshot being written by the refresh that started at started_at."""
        suffix = to_utc(started_at).strftime(STAGING_SUFFIX_FORMAT)
        return self.storage_path / f"cache-{self.container}-{suffix}.csv"

    def stale_staging(self) -> List[Path]:
        """Staging files left behind by interrupted cycles."""
        prefix = f"cache-{self.container}-"
        found = []
        for path in self.storage_path.glob(f"{prefix}*.csv"):
            suffix = path.name[len(prefix) : -len(".csv")]
            if len(suffix) == 14 and suffix.isdigit():
                found.append(path)
        return sorted(found)


class SnapshotWriter:
    """Appends CacheEntry records to an open snapshot file."""

    def __init__(self, handle: IO[str]):
        self._writer = csv.writer(handle, lineterminator="\n")
        self.count = 0

    def write(self, entry: CacheEntry) -> None:
        self._writer.writerow(
            [entry.name, str(entry.size_bytes), format_timestamp(entry.last_modified)]
        )
        self.count += 1

    def write_all(self, entries: Iterable[CacheEntry]) -> None:
        for entry in entries:
            self.write(entry)


def read_entries(handle: IO[str], source: str = "<snapshot>") -> Iterator[CacheEntry]:
    """Yield the records of an open snapshot file in file order.

    Args:
        handle: Text handle opened with newline=""
        source: File name used in error messages

    Raises:
        SnapshotCorruptError: On the first malformed record
    """
    reader = csv.reader(handle)
    try:
        for record in reader:
            if len(record) != 3:
                raise SnapshotCorruptError(
                    f"{source} line {reader.line_num}: expected 3 fields, "
                    f"got {len(record)}"
                )
            name, size_text, modified_text = record
            try:
                size = int(size_text)
            except ValueError as e:
                raise SnapshotCorruptError(
                    f"{source} line {reader.line_num}: invalid size {size_text!r}"
                ) from e
            try:
                modified = parse_timestamp(modified_text)
            except ValueError as e:
                raise SnapshotCorruptError(
                    f"{source} line {reader.line_num}: invalid timestamp "
                    f"{modified_text!r}"
                ) from e
            yield CacheEntry(name, size, modified)
    except csv.Error as e:
        raise SnapshotCorruptError(f"{source} line {reader.line_num}: {e}") from e
