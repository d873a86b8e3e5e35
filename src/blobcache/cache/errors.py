"""Exceptions raised by the snapshot cache."""


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CacheConfigError(CacheError, ValueError):
    """Raised when a cached container configuration is invalid."""

    pass


class CacheIOError(CacheError):
    """Raised when a local file operation fails after all retry attempts."""

    pass


class RemoteListingError(CacheError):
    """Raised when the remote listing source fails during a refresh cycle."""

    pass


class UnrecoverableCacheError(CacheError):
    """Raised when promotion and rollback both failed.

    The container has no usable current snapshot until a later cycle
    promotes a new one.
    """

    pass


class RefreshCancelledError(CacheError):
    """Raised when a stop was requested while a refresh cycle was running."""

    pass


class CacheLockError(CacheError):
    """Raised when another cycle kept the cache lock past lock_timeout."""

    pass


class CacheUnavailableError(CacheError, FileNotFoundError):
    """Raised when a container has no snapshot that can be read."""

    pass


class SnapshotCorruptError(CacheError, ValueError):
    """Raised when a snapshot record cannot be parsed."""

    pass


class CacheNotRegisteredError(CacheError, KeyError):
    """Raised when looking up a container that is not cached."""

    def __str__(self):
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""
