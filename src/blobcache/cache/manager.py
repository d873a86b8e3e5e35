"""Snapshot cache for the listing of one remote container.

A refresh cycle writes the full remote listing into a staging file and then
promotes it in two steps:

    current  -> previous   (hard link, current stays in place)
    staging  -> current    (atomic replace)

Readers only ever open ``current``, which is always a complete file, so a
query sees either the snapshot from before a promotion or the one after it.
``previous`` is kept until the promotion succeeded so a failed replace can
be rolled back, then it is pruned. Whole cycles run under a file lock so
several processes can share one storage directory.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Iterator, List, Optional

from filelock import FileLock, Timeout

from blobcache.cache.config import CacheConfig
from blobcache.cache.errors import (
    CacheError,
    CacheIOError,
    CacheLockError,
    CacheUnavailableError,
    RefreshCancelledError,
    RemoteListingError,
    UnrecoverableCacheError,
)
from blobcache.cache.metadata import CacheMetadata
from blobcache.cache.retry import RetryingFileOps
from blobcache.cache.snapshot import SnapshotPaths, SnapshotWriter, read_entries
from blobcache.entries import CacheEntry, DirEntry
from blobcache.storage.backend import ListingSource, build_listing_source
from blobcache.utils import compile_wildcard, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of one completed refresh cycle."""

    container: str
    entries: int
    pages: int
    started_at: datetime
    completed_at: datetime
    recovered: bool = False
    pruned: bool = True

    @property
    def duration(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


class ContainerCache:
    """Locally cached listing of one container.

    The refresh fields (``last_refresh_at``, ``continuation_marker`` and the
    refresh guard) are only changed by ``refresh()``. Queries read nothing
    but the immutable configuration and the snapshot files, so any number of
    threads may query while a refresh runs.

    Examples:
        >>> cache = ContainerCache(CacheConfig("media", 15, local_root="/data"))
        >>> cache.refresh()
        >>> cache.query(prefix="2024/", limit=100)
    """

    def __init__(self, config: CacheConfig, source: Optional[ListingSource] = None):
        """Initialize the cache.

        Args:
            config: Container configuration
            source: Listing source; built from config on first refresh if None
        """
        self.config = config
        self.name = config.name
        self.refresh_interval = config.refresh_interval
        self.storage_path = config.storage_path
        self.paths = SnapshotPaths.for_container(config.storage_path, config.name)

        self._source = source
        self._refresh_lock = threading.Lock()
        self.stop_event = threading.Event()
        self.last_refresh_at: Optional[datetime] = None
        self.continuation_marker: Optional[str] = None

        self.files = RetryingFileOps(config.retry_policy, cancel_event=self.stop_event)
        # Rollback must run to completion even when a stop was requested
        self._rollback_files = RetryingFileOps(config.retry_policy)

    def __repr__(self) -> str:
        return f"ContainerCache(name={self.name!r}, storage_path={str(self.storage_path)!r})"

    @property
    def source(self) -> ListingSource:
        if self._source is None:
            self._source = build_listing_source(self.config)
        return self._source

    @property
    def refreshing(self) -> bool:
        """True while a refresh cycle is running."""
        return self._refresh_lock.locked()

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """Check whether the refresh interval has elapsed since the last refresh."""
        if self.last_refresh_at is None:
            return True
        now = now or utc_now()
        elapsed_minutes = (now - self.last_refresh_at).total_seconds() / 60.0
        return elapsed_minutes >= self.refresh_interval

    # =========================================================================
    # Refresh cycle
    # =========================================================================

    def refresh(self) -> Optional[RefreshResult]:
        """Run one refresh cycle: fetch, write staging, promote, prune.

        Returns:
            RefreshResult, or None if another cycle was already running

        Raises:
            RemoteListingError: If the remote listing failed (current untouched)
            CacheIOError: If a local file operation kept failing
            CacheLockError: If another process kept the cache lock
            RefreshCancelledError: If stop_event was set during the cycle
            UnrecoverableCacheError: If promotion and rollback both failed
        """
        if not self._refresh_lock.acquire(blocking=False):
            logger.info(f"[{self.name}] refresh already in progress, skipping")
            return None

        try:
            result = self._refresh_locked()
        except CacheError as e:
            self._record_failure(e)
            raise
        finally:
            self.continuation_marker = None
            self._refresh_lock.release()

        self._record_refresh(result)
        return result

    def _refresh_locked(self) -> RefreshResult:
        logger.info(f"[{self.name}] updating")
        started_at = utc_now()

        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(
                f"Cannot create storage directory {self.storage_path}: {e}"
            ) from e

        # Serializes whole cycles of every process sharing this storage path
        try:
            with FileLock(str(self.paths.lock), timeout=self.config.lock_timeout):
                return self._run_cycle(started_at)
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring cache lock for {self.name} after "
                f"{self.config.lock_timeout} seconds; another process is "
                f"refreshing it"
            ) from e

    def _run_cycle(self, started_at: datetime) -> RefreshResult:
        # Leftovers of crashed cycles; no other cycle can be writing now
        self._remove_stale_staging()

        staging = self.paths.staging(started_at)
        entries, pages = self._write_staging(staging)
        completed_at = utc_now()
        self.last_refresh_at = completed_at
        logger.info(f"[{self.name}] updated: {entries} entries in {pages} pages")

        try:
            recovered = self._promote(staging)
        except UnrecoverableCacheError:
            # Let the next scheduler tick retry straight away
            self.last_refresh_at = None
            raise
        pruned = self._prune()

        return RefreshResult(
            container=self.name,
            entries=entries,
            pages=pages,
            started_at=started_at,
            completed_at=completed_at,
            recovered=recovered,
            pruned=pruned,
        )

    def _write_staging(self, staging: Path) -> tuple[int, int]:
        """Write the full remote listing into the staging file.

        Returns:
            Tuple of (entries written, pages fetched)
        """
        try:
            handle = self.files.create(staging)
        except OSError as e:
            raise CacheIOError(f"Cannot create staging file {staging}: {e}") from e

        pages = 0
        try:
            with handle:
                writer = SnapshotWriter(handle)
                self.continuation_marker = None
                while True:
                    if self.stop_event.is_set():
                        raise RefreshCancelledError(
                            f"Refresh of {self.name} stopped after {pages} pages"
                        )
                    try:
                        page = self.source.list_page(self.continuation_marker)
                    except Exception as e:
                        raise RemoteListingError(
                            f"Listing container {self.name} failed: {e}"
                        ) from e
                    pages += 1
                    writer.write_all(page.entries)
                    self.continuation_marker = page.next_marker
                    if page.done:
                        break
        except OSError as e:
            self._discard(staging)
            raise CacheIOError(f"Cannot write staging file {staging}: {e}") from e
        except Exception:
            self._discard(staging)
            raise

        return writer.count, pages

    def _promote(self, staging: Path) -> bool:
        """Make the staging file the current snapshot.

        Returns:
            True if the promotion failed but the previous snapshot was restored
        """
        current = self.paths.current
        previous = self.paths.previous

        if current.exists():
            # previous becomes a second name for current, so current itself
            # stays in place until the replace below swaps it atomically
            try:
                self.files.link(current, previous)
            except (OSError, RefreshCancelledError) as e:
                self._discard(staging)
                if isinstance(e, RefreshCancelledError):
                    raise
                raise CacheIOError(
                    f"Cannot demote current snapshot of {self.name}: {e}"
                ) from e

        try:
            self.files.rename(staging, current)
        except (OSError, RefreshCancelledError) as e:
            logger.error(f"[{self.name}] promoting {staging.name} failed: {e}")
            try:
                self._rollback()
            except OSError as rollback_error:
                logger.critical(
                    f"[{self.name}] rollback failed, no current snapshot: "
                    f"{rollback_error}"
                )
                raise UnrecoverableCacheError(
                    f"Promotion of {staging.name} failed ({e}) and rollback "
                    f"failed ({rollback_error}); container {self.name} has no "
                    f"current snapshot"
                ) from rollback_error

            if not current.exists():
                logger.critical(
                    f"[{self.name}] promotion failed with no previous snapshot "
                    f"to roll back to"
                )
                raise UnrecoverableCacheError(
                    f"Promotion of {staging.name} failed ({e}); container "
                    f"{self.name} has no current snapshot"
                ) from e

            logger.error(
                f"[{self.name}] rolled back to previous cache file due to {e}"
            )
            self._discard(staging)
            return True

        return False

    def _rollback(self) -> None:
        """Restore previous as current if a failed promotion lost current."""
        previous = self.paths.previous
        current = self.paths.current
        if previous.exists() and not current.exists():
            self._rollback_files.rename(previous, current)

    def _prune(self) -> bool:
        """Delete the previous snapshot. Failure leaves a harmless stale file."""
        previous = self.paths.previous
        if not previous.exists():
            return True
        try:
            self.files.delete(previous)
        except (OSError, RefreshCancelledError) as e:
            logger.warning(f"[{self.name}] could not remove {previous.name}: {e}")
            return False
        return True

    def _discard(self, path: Path) -> None:
        """Best-effort removal of an unusable staging file."""
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[{self.name}] failed to clean up {path.name}: {e}")

    def _remove_stale_staging(self) -> None:
        for path in self.paths.stale_staging():
            logger.debug(f"[{self.name}] removing stale staging file {path.name}")
            self._discard(path)

    def _record_refresh(self, result: RefreshResult) -> None:
        try:
            snapshot_bytes = self.paths.current.stat().st_size
        except OSError:
            snapshot_bytes = None
        try:
            CacheMetadata(self.paths.metadata, self.name).record_refresh(
                result.started_at,
                result.completed_at,
                result.entries,
                result.pages,
                snapshot_bytes,
                result.recovered,
            )
        except OSError as e:
            # Not critical - the snapshot is in place even if metadata is stale
            logger.warning(f"[{self.name}] failed to update cache metadata: {e}")

    def _record_failure(self, error: CacheError) -> None:
        try:
            CacheMetadata(self.paths.metadata, self.name).record_failure(error)
        except OSError as e:
            logger.warning(f"[{self.name}] failed to update cache metadata: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    def has_snapshot(self) -> bool:
        return self.paths.current.exists()

    def _open_snapshot(self) -> tuple[IO[str], Path]:
        """Open the current snapshot for reading."""
        path = self.paths.current
        try:
            return self.files.open(path), path
        except FileNotFoundError:
            logger.error(f"[{self.name}] no snapshot at {path}")
            raise CacheUnavailableError(
                f"No snapshot available for container {self.name} "
                f"(expected {path})"
            ) from None
        except OSError as e:
            logger.error(f"[{self.name}] cannot open {path.name}: {e}")
            raise CacheIOError(f"Cannot open snapshot {path}: {e}") from e

    def query(
        self,
        prefix: str = "",
        cursor: str = "",
        limit: int = 0,
        pattern: Optional[str] = None,
    ) -> List[DirEntry]:
        """Read entries from the current snapshot.

        Callers page through a container by passing the name of the last
        entry they received as the next cursor. A page shorter than limit
        means the end of the listing was reached.

        Args:
            prefix: Only entries whose name starts with prefix
            cursor: Only entries whose name sorts after cursor
            limit: Maximum number of entries (<= 0 for no limit)
            pattern: Optional wildcard filter on the full name (fnmatch syntax)

        Returns:
            Matching entries in snapshot (name) order

        Raises:
            CacheUnavailableError: If the container has no snapshot
            SnapshotCorruptError: If a record in the snapshot is malformed
            CacheIOError: If the snapshot cannot be opened
        """
        matches = compile_wildcard(pattern) if pattern else None
        results: List[DirEntry] = []

        handle, path = self._open_snapshot()
        with handle:
            for entry in read_entries(handle, str(path)):
                if prefix and not entry.name.startswith(prefix):
                    continue
                if cursor and entry.name <= cursor:
                    continue
                if matches is not None and not matches(entry.name):
                    continue
                results.append(entry.to_dir_entry())
                if limit > 0 and len(results) >= limit:
                    break

        return results

    def iter_entries(
        self,
        prefix: str = "",
        pattern: Optional[str] = None,
        page_size: int = 1000,
    ) -> Iterator[DirEntry]:
        """Iterate over all matching entries, one query per page of page_size."""
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        cursor = ""
        while True:
            page = self.query(prefix=prefix, cursor=cursor, limit=page_size, pattern=pattern)
            yield from page
            if len(page) < page_size:
                return
            cursor = page[-1].name

    def read_snapshot(self) -> List[CacheEntry]:
        """Every record of the current snapshot."""
        handle, path = self._open_snapshot()
        with handle:
            return list(read_entries(handle, str(path)))

    def metadata(self) -> CacheMetadata:
        """Refresh metadata recorded by the last cycles."""
        return CacheMetadata(self.paths.metadata, self.name)
