"""blobcache: Local snapshot cache for listing very large blob containers."""

__version__ = "0.1.0"

from blobcache.cache import CacheConfig, ContainerCache, get_registry
from blobcache.entries import CacheEntry, DirEntry
from blobcache.listing import list_directory

__all__ = [
    "CacheConfig",
    "ContainerCache",
    "CacheEntry",
    "DirEntry",
    "get_registry",
    "list_directory",
    "__version__",
]
