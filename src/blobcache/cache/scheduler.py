"""Background refresh scheduling for cached containers."""

import logging
import threading
from typing import Optional

from blobcache.cache.errors import UnrecoverableCacheError
from blobcache.cache.manager import ContainerCache

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Periodically refreshes one ContainerCache on a background thread.

    Every ``tick`` seconds the scheduler checks whether the cache's refresh
    interval has elapsed and, unless a cycle is already running, runs one
    refresh. A failed cycle is logged and the loop keeps ticking.

    Stopping sets the cache's stop_event, which ends the loop and also
    interrupts any retry wait inside a running cycle.

    Examples:
        >>> scheduler = RefreshScheduler(cache)
        >>> scheduler.start()
        >>> ...
        >>> scheduler.stop(timeout=10)
    """

    def __init__(self, cache: ContainerCache, tick: Optional[float] = None):
        self.cache = cache
        self.tick_interval = cache.config.check_interval if tick is None else tick
        self._thread: Optional[threading.Thread] = None

    @property
    def stop_event(self) -> threading.Event:
        return self.cache.stop_event

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> bool:
        """Run one refresh if it is due and none is in progress.

        Returns:
            True if a refresh cycle was attempted
        """
        cache = self.cache
        if cache.refreshing:
            logger.debug(f"[{cache.name}] refresh still running, skipping tick")
            return False
        if not cache.is_due():
            return False

        try:
            return cache.refresh() is not None
        except UnrecoverableCacheError as e:
            # Already logged as critical; the next tick retries immediately
            logger.error(f"[{cache.name}] cache unavailable until next cycle: {e}")
        except Exception as e:
            logger.error(f"[{cache.name}] refresh cycle failed: {e}")
        return True

    def run(self) -> None:
        """Tick until stop_event is set."""
        logger.info(
            f"[{self.cache.name}] refreshing every {self.cache.refresh_interval} "
            f"minutes (checking every {self.tick_interval}s)"
        )
        while not self.stop_event.wait(self.tick_interval):
            self.tick()
        logger.info(f"[{self.cache.name}] refresh scheduler stopped")

    def start(self) -> None:
        """Start the background thread."""
        if self.running:
            raise RuntimeError(f"Scheduler for {self.cache.name} already running")
        self._thread = threading.Thread(
            target=self.run,
            name=f"blobcache-refresh-{self.cache.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Request a stop and wait for the thread to finish.

        Returns:
            True if the thread has finished
        """
        self.stop_event.set()
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()
