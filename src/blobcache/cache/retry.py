"""Bounded retry for local snapshot file operations.

Every durable-state operation of the cache (create, open, rename, link, delete)
goes through ``retry_call``: a fixed number of attempts with a fixed delay
between them. This absorbs transient local storage faults such as disk
contention or a file briefly held open by another process. Remote listing
errors are never retried here.

Usage:
    files = RetryingFileOps(RetryPolicy(max_attempts=10, delay=5.0))
    handle = files.create(path)
    files.rename(staging_path, current_path)
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, Optional, TypeVar, Union

from blobcache.cache.errors import RefreshCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PathLike = Union[str, Path]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for file operations.

    Attributes:
        max_attempts: Total number of attempts, including the first one
        delay: Fixed seconds to wait between attempts
    """

    max_attempts: int = 10
    delay: float = 5.0


DEFAULT_POLICY = RetryPolicy()


def retry_call(
    operation: Callable[[], T],
    description: str,
    policy: RetryPolicy = DEFAULT_POLICY,
    cancel_event: Optional[threading.Event] = None,
    giveup_on: tuple[type[BaseException], ...] = (),
) -> T:
    """Run a file operation with bounded retry and a fixed delay.

    Args:
        operation: Zero-argument callable performing the file operation
        description: Human readable description used in log messages
        policy: Attempt count and delay
        cancel_event: If given, waits use it and a set event aborts the retry
        giveup_on: OSError subclasses raised immediately without retrying

    Returns:
        The operation's result on the first successful attempt

    Raises:
        OSError: The last error once all attempts are exhausted
        RefreshCancelledError: If cancel_event was set while waiting

    Example:
        >>> retry_call(lambda: os.remove("/tmp/x"), "delete /tmp/x",
        ...            RetryPolicy(max_attempts=3, delay=0.1))
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except giveup_on:
            raise
        except OSError as e:
            if attempt >= policy.max_attempts:
                logger.error(
                    f"Unable to {description} after {attempt} attempts: {e}"
                )
                raise

            logger.warning(
                f"Unable to {description} on attempt {attempt}/"
                f"{policy.max_attempts}, retrying in {policy.delay}s: {e}"
            )

            if cancel_event is None:
                time.sleep(policy.delay)
            elif cancel_event.wait(policy.delay):
                raise RefreshCancelledError(
                    f"Stopped while retrying to {description}"
                ) from e


class RetryingFileOps:
    """The file primitives used by the cache, each wrapped in retry_call."""

    def __init__(
        self,
        policy: RetryPolicy = DEFAULT_POLICY,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.policy = policy
        self.cancel_event = cancel_event

    def _call(self, operation: Callable[[], T], description: str, **kwargs) -> T:
        return retry_call(
            operation,
            description,
            policy=self.policy,
            cancel_event=self.cancel_event,
            **kwargs,
        )

    def create(self, path: PathLike) -> IO[str]:
        """Create (or truncate) a text file for writing."""
        return self._call(
            lambda: open(path, "w", newline="", encoding="utf-8"),
            f"create cache file {path}",
        )

    def open(self, path: PathLike) -> IO[str]:
        """Open a text file for reading. A missing file is not retried."""
        return self._call(
            lambda: open(path, "r", newline="", encoding="utf-8"),
            f"open cache file {path}",
            giveup_on=(FileNotFoundError,),
        )

    def rename(self, src: PathLike, dst: PathLike) -> None:
        """Rename src to dst, replacing dst if it exists."""
        self._call(lambda: os.replace(src, dst), f"rename cache file {src}")

    def link(self, src: PathLike, dst: PathLike) -> None:
        """Make dst a hard link to src, replacing dst if it exists."""

        def _link():
            if os.path.lexists(dst):
                os.remove(dst)
            os.link(src, dst)

        self._call(_link, f"link cache file {src}")

    def delete(self, path: PathLike) -> None:
        """Delete a file."""
        self._call(lambda: os.remove(path), f"remove cache file {path}")
