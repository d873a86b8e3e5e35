"""Directory listings that prefer the local snapshot cache.

Containers with a registered cache are listed from their snapshot; all
other containers are listed live from the listing source with the same
prefix, cursor, wildcard and limit semantics.
"""

import logging
from typing import List, Optional

from blobcache.cache.registry import CacheRegistry, get_registry
from blobcache.entries import DirEntry
from blobcache.storage.backend import ListingSource
from blobcache.utils import compile_wildcard

logger = logging.getLogger(__name__)


def list_directory(
    container: str,
    prefix: str = "",
    pattern: Optional[str] = None,
    cursor: str = "",
    limit: int = 0,
    registry: Optional[CacheRegistry] = None,
    source: Optional[ListingSource] = None,
) -> List[DirEntry]:
    """List the entries of a container below a path prefix.

    Args:
        container: Container name
        prefix: Path prefix (e.g. 'logs/2024/')
        pattern: Optional wildcard filter on the full name
        cursor: Name of the last entry of the previous page
        limit: Maximum number of entries (<= 0 for no limit)
        registry: Cache registry to consult (global if None)
        source: Live listing source for uncached containers

    Returns:
        Matching entries in name order

    Raises:
        ValueError: If the container is not cached and no source was given
    """
    registry = registry if registry is not None else get_registry()
    cache = registry.find(container)
    if cache is not None:
        return cache.query(prefix=prefix, cursor=cursor, limit=limit, pattern=pattern)

    if source is None:
        raise ValueError(
            f"Container {container} is not cached and no listing source was given"
        )
    logger.debug(f"[{container}] not cached, listing live")
    return list_live(source, prefix=prefix, pattern=pattern, cursor=cursor, limit=limit)


def list_live(
    source: ListingSource,
    prefix: str = "",
    pattern: Optional[str] = None,
    cursor: str = "",
    limit: int = 0,
) -> List[DirEntry]:
    """List entries straight from a listing source, following its markers."""
    matches = compile_wildcard(pattern) if pattern else None
    results: List[DirEntry] = []
    for entry in source.iter_entries(prefix=prefix):
        if cursor and entry.name <= cursor:
            continue
        if matches is not None and not matches(entry.name):
            continue
        results.append(entry.to_dir_entry())
        if limit > 0 and len(results) >= limit:
            break
    return results
