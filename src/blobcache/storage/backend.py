"""Remote listing sources.

A listing source returns the objects of one container one page at a time
using a continuation-marker protocol: each call takes the marker returned by
the previous call (``None`` for the first page) and returns a page of
entries plus the next marker, which is empty once the listing is complete.

Two sources are provided: Azure Blob Storage (via azure-storage-blob) and a
local directory tree, which serves offline setups and tests.
"""

import bisect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Union

from blobcache.entries import CacheEntry

if TYPE_CHECKING:
    from blobcache.cache.config import CacheConfig

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 5000


@dataclass(frozen=True)
class ListingPage:
    """One page of a container listing."""

    entries: List[CacheEntry] = field(default_factory=list)
    next_marker: Optional[str] = None

    @property
    def done(self) -> bool:
        """True when no further pages follow this one."""
        return not self.next_marker


class ListingSource(ABC):
    """Paginated listing of the objects in one container.

    Implementations must return names in ascending order; cursors handed out
    by the cache rely on it.
    """

    container: str

    @abstractmethod
    def list_page(
        self,
        marker: Optional[str] = None,
        prefix: str = "",
        page_size: Optional[int] = None,
    ) -> ListingPage:
        """Fetch the page that starts at marker.

        Args:
            marker: Marker returned by the previous page, None for the first
            prefix: Only list names starting with prefix
            page_size: Maximum entries per page (source default if None)

        Returns:
            ListingPage with the entries and the next marker
        """

    def iter_entries(self, prefix: str = "") -> Iterator[CacheEntry]:
        """Iterate over every entry by following markers to the end."""
        marker = None
        while True:
            page = self.list_page(marker, prefix=prefix)
            yield from page.entries
            if page.done:
                return
            marker = page.next_marker


class AzureListingSource(ListingSource):
    """Azure Blob Storage container listing.

    Examples:
        >>> source = AzureListingSource("media", account_name="acct", account_key="...")
        >>> page = source.list_page()
        >>> page.done
        False
    """

    def __init__(
        self,
        container: str,
        account_name: Optional[str] = None,
        account_key: Optional[str] = None,
        connection_string: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        container_client: Any = None,
    ):
        self.container = container
        self.page_size = page_size

        if container_client is not None:
            self._container = container_client
            return

        try:
            from azure.storage.blob import ContainerClient
        except ImportError as e:
            raise ImportError(
                "azure-storage-blob is required for Azure listings. "
                "Install it with: pip install azure-storage-blob"
            ) from e

        if connection_string:
            self._container = ContainerClient.from_connection_string(
                connection_string, container_name=container
            )
        elif account_name and account_key:
            account_url = f"https://{account_name}.blob.core.windows.net"
            self._container = ContainerClient(
                account_url,
                container_name=container,
                credential={"account_name": account_name, "account_key": account_key},
            )
        else:
            raise ValueError(
                "Azure storage requires either connection_string or both "
                f"account_name and account_key (container {container})"
            )

    def list_page(
        self,
        marker: Optional[str] = None,
        prefix: str = "",
        page_size: Optional[int] = None,
    ) -> ListingPage:
        pages = self._container.list_blobs(
            name_starts_with=prefix or None,
            results_per_page=page_size or self.page_size,
        ).by_page(continuation_token=marker)

        try:
            page = next(pages)
        except StopIteration:
            return ListingPage()

        entries = [
            CacheEntry(
                name=blob.name,
                size_bytes=blob.size or 0,
                last_modified=blob.last_modified,
            )
            for blob in page
        ]
        return ListingPage(entries, pages.continuation_token or None)


class DirectoryListingSource(ListingSource):
    """Lists the files below a local directory as if they were blobs.

    Names are POSIX-style paths relative to root, sorted. The tree is scanned
    once when a listing starts (marker None); later pages of that listing are
    served from the scan. Markers are the last name of the previous page, so
    they stay valid even when files change between pages.
    """

    def __init__(
        self,
        root: Union[str, Path],
        container: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.root = Path(root).expanduser()
        self.container = container or self.root.name
        self.page_size = page_size
        self._scan_prefix: Optional[str] = None
        self._names: List[str] = []

    def _scan(self, prefix: str) -> List[str]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Listing root not found: {self.root}")
        names = (
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*")
            if p.is_file()
        )
        return sorted(name for name in names if name.startswith(prefix))

    def list_page(
        self,
        marker: Optional[str] = None,
        prefix: str = "",
        page_size: Optional[int] = None,
    ) -> ListingPage:
        if marker is None or self._scan_prefix != prefix:
            self._names = self._scan(prefix)
            self._scan_prefix = prefix
        size = page_size or self.page_size

        start = bisect.bisect_right(self._names, marker) if marker else 0
        chunk = self._names[start : start + size]
        entries = []
        for name in chunk:
            try:
                stat = (self.root / name).stat()
            except FileNotFoundError:
                logger.debug(f"{name} removed during listing, skipping")
                continue
            entries.append(
                CacheEntry(
                    name=name,
                    size_bytes=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, timezone.utc),
                )
            )

        more = start + len(chunk) < len(self._names)
        return ListingPage(entries, chunk[-1] if more else None)

def build_listing_source(config: "CacheConfig") -> ListingSource:
    """Create the listing source described by a cache configuration."""
    if config.local_root is not None:
        logger.debug(f"[{config.name}] listing local directory {config.local_root}")
        return DirectoryListingSource(
            config.local_root, container=config.name, page_size=config.page_size
        )

    return AzureListingSource(
        config.name,
        account_name=config.account_name,
        account_key=config.account_key,
        connection_string=config.connection_string,
        page_size=config.page_size,
    )
