"""Process-wide registry of cached containers.

The registry maps container names to their ContainerCache. It is filled
when cached containers are initialized and read by every listing request,
possibly from many threads while other containers are still initializing,
so all access goes through a lock.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from blobcache.cache.config import CacheConfig
from blobcache.cache.errors import CacheError, CacheNotRegisteredError
from blobcache.cache.manager import ContainerCache
from blobcache.cache.scheduler import RefreshScheduler
from blobcache.storage.backend import ListingSource, build_listing_source

logger = logging.getLogger(__name__)


class CacheRegistry:
    """Thread-safe mapping of container name -> ContainerCache.

    Examples:
        >>> registry = CacheRegistry()
        >>> registry.register(cache)
        >>> registry.get('media') is cache
        True
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._caches: Dict[str, ContainerCache] = {}
        self._lock = threading.Lock()

    def register(self, cache: ContainerCache) -> None:
        """Register a cache.

        Raises:
            ValueError: If a cache for the same container is registered
        """
        with self._lock:
            if cache.name in self._caches:
                raise ValueError(
                    f"Cache already registered for container: {cache.name}"
                )
            self._caches[cache.name] = cache

    def get(self, name: str) -> ContainerCache:
        """Get the cache of a container.

        Raises:
            CacheNotRegisteredError: If the container is not cached
        """
        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                available = ", ".join(sorted(self._caches)) or "none"
                raise CacheNotRegisteredError(
                    f"No cache registered for container '{name}'. "
                    f"Cached containers: {available}"
                )
            return cache

    def find(self, name: str) -> Optional[ContainerCache]:
        """Get the cache of a container, or None if it is not cached."""
        with self._lock:
            return self._caches.get(name)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._caches)

    def caches(self) -> List[ContainerCache]:
        with self._lock:
            return list(self._caches.values())

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._caches

    def __len__(self) -> int:
        with self._lock:
            return len(self._caches)


# Global singleton registry
_registry = CacheRegistry()


def get_registry() -> CacheRegistry:
    """Get the global cache registry."""
    return _registry


def register_cache(cache: ContainerCache) -> None:
    """Register a cache in the global registry."""
    _registry.register(cache)


def get_container_cache(name: str) -> ContainerCache:
    """Get a container's cache from the global registry.

    Raises:
        CacheNotRegisteredError: If the container is not cached
    """
    return _registry.get(name)


def create_container_cache(
    config: CacheConfig,
    source: Optional[ListingSource] = None,
    registry: Optional[CacheRegistry] = None,
) -> ContainerCache:
    """Create a container cache, take its first snapshot and register it.

    The first refresh runs synchronously so the cache can answer queries as
    soon as it is registered. If it fails nothing is registered.

    Args:
        config: Container configuration (already validated)
        source: Listing source; built from config if None
        registry: Registry to add the cache to (global if None)

    Returns:
        The registered ContainerCache

    Raises:
        CacheError: If the initial refresh failed
        ValueError: If the container is already registered
    """
    registry = registry if registry is not None else _registry
    if config.name in registry:
        raise ValueError(f"Cache already registered for container: {config.name}")

    if source is None:
        try:
            source = build_listing_source(config)
        except (ImportError, ValueError) as e:
            raise CacheError(
                f"Cannot create listing source for container {config.name}: {e}"
            ) from e

    cache = ContainerCache(config, source=source)
    cache.refresh()
    registry.register(cache)
    logger.info(f"[{config.name}] cached listing ready at {cache.paths.current}")
    return cache


@dataclass
class InitResult:
    """Outcome of initializing a set of cached containers."""

    schedulers: List[RefreshScheduler] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)

    @property
    def caches(self) -> List[ContainerCache]:
        return [s.cache for s in self.schedulers]


def init_cached_containers(
    configs: Iterable[CacheConfig],
    registry: Optional[CacheRegistry] = None,
    start: bool = True,
    source_factory: Optional[Callable[[CacheConfig], ListingSource]] = None,
) -> InitResult:
    """Initialize every cached container and start its refresh scheduler.

    Each container is initialized independently: a failure is logged and
    recorded, and the remaining containers are still set up.

    Args:
        configs: Container configurations
        registry: Registry to add caches to (global if None)
        start: Start each scheduler thread after its first refresh
        source_factory: Builds the listing source per config (default from config)

    Returns:
        InitResult with the schedulers of the ready containers and the
        errors of the failed ones
    """
    result = InitResult()
    for config in configs:
        try:
            source = source_factory(config) if source_factory else None
            cache = create_container_cache(config, source=source, registry=registry)
        except Exception as e:
            logger.error(f"[{config.name}] cache initialization failed: {e}")
            result.failures[config.name] = e
            continue

        scheduler = RefreshScheduler(cache)
        if start:
            scheduler.start()
        result.schedulers.append(scheduler)

    return result


def shutdown_schedulers(
    schedulers: Iterable[RefreshScheduler], timeout: Optional[float] = None
) -> bool:
    """Stop every scheduler and wait for them.

    Returns:
        True if all scheduler threads finished within the timeout
    """
    schedulers = list(schedulers)
    for scheduler in schedulers:
        scheduler.stop_event.set()
    return all([scheduler.stop(timeout) for scheduler in schedulers])
