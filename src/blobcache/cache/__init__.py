"""Local snapshot cache for large container listings.

This module keeps a periodically refreshed CSV snapshot of a container's
listing on local disk and serves prefix/cursor queries from it.

Key components:
- ContainerCache: Refresh cycle (write, promote, roll back, prune) and queries
- RefreshScheduler: Background refresh thread per container
- CacheRegistry: Process-wide container name -> cache mapping
- CacheConfig: Configuration management
"""

from blobcache.cache.config import CacheConfig, load_cache_configs
from blobcache.cache.errors import (
    CacheConfigError,
    CacheError,
    CacheIOError,
    CacheLockError,
    CacheNotRegisteredError,
    CacheUnavailableError,
    RefreshCancelledError,
    RemoteListingError,
    SnapshotCorruptError,
    UnrecoverableCacheError,
)
from blobcache.cache.manager import ContainerCache, RefreshResult
from blobcache.cache.registry import (
    CacheRegistry,
    InitResult,
    create_container_cache,
    get_container_cache,
    get_registry,
    init_cached_containers,
    register_cache,
    shutdown_schedulers,
)
from blobcache.cache.retry import RetryingFileOps, RetryPolicy, retry_call
from blobcache.cache.scheduler import RefreshScheduler

__all__ = [
    "CacheConfig",
    "load_cache_configs",
    "ContainerCache",
    "RefreshResult",
    "RefreshScheduler",
    "CacheRegistry",
    "InitResult",
    "create_container_cache",
    "get_container_cache",
    "get_registry",
    "init_cached_containers",
    "register_cache",
    "shutdown_schedulers",
    "RetryPolicy",
    "RetryingFileOps",
    "retry_call",
    "CacheError",
    "CacheConfigError",
    "CacheIOError",
    "CacheLockError",
    "CacheNotRegisteredError",
    "CacheUnavailableError",
    "RefreshCancelledError",
    "RemoteListingError",
    "SnapshotCorruptError",
    "UnrecoverableCacheError",
]
