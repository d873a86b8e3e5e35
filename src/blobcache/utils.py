"""Utility functions for blobcache."""

import fnmatch
import re
from datetime import datetime, timezone
from typing import Callable, Optional

# Snapshot record timestamp, always UTC
SNAPSHOT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
# Suffix of staging snapshot file names
STAGING_SUFFIX_FORMAT = "%Y%m%d%H%M%S"

_CONTAINER_NAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9]|-(?=[a-z0-9]))*$")


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime in the snapshot record format.

    Examples:
        >>> format_timestamp(datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc))
        '2024-01-15T10:30:00Z'
    """
    return to_utc(value).strftime(SNAPSHOT_DATE_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """Parse a snapshot record timestamp.

    Raises:
        ValueError: If text does not match the snapshot format
    """
    return datetime.strptime(text, SNAPSHOT_DATE_FORMAT).replace(tzinfo=timezone.utc)


def format_age(seconds: Optional[float]) -> str:
    """Render an age in seconds as a short human string (e.g. '4m 12s')."""
    if seconds is None:
        return "never"
    seconds = int(max(0, seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def compile_wildcard(pattern: str) -> Callable[[str], bool]:
    """Compile a wildcard filter into a predicate on full object names.

    Uses fnmatch syntax ('*', '?', '[seq]') and is case sensitive. '*' also
    matches '/', so 'logs/*.gz' selects every .gz object below logs/.

    Examples:
        >>> matches = compile_wildcard('logs/*.gz')
        >>> matches('logs/2024/app.gz')
        True
        >>> matches('logs/app.txt')
        False
    """
    regex = re.compile(fnmatch.translate(pattern))
    return lambda name: regex.match(name) is not None


def validate_container_name(name: str) -> None:
    """Validate a container name against the blob service naming rules.

    A container name must be 3 to 63 characters long, contain only lowercase
    letters, digits and dashes, start and end with a letter or digit, and
    never contain consecutive dashes. The name also ends up in snapshot file
    names, so these rules keep those names filesystem-safe.

    Args:
        name: Container name to validate

    Raises:
        ValueError: If the name is empty or breaks a naming rule

    Examples:
        >>> validate_container_name('media-assets')  # OK
        >>> validate_container_name('Media')
        Traceback (most recent call last):
            ...
        ValueError: Container name 'Media' may only contain lowercase letters, digits and single dashes
    """
    if not name:
        raise ValueError("Container name cannot be empty")

    if not isinstance(name, str):
        raise TypeError(f"Container name must be a string, got {type(name).__name__}")

    if not 3 <= len(name) <= 63:
        raise ValueError(
            f"Container name '{name}' must be between 3 and 63 characters long"
        )

    if not _CONTAINER_NAME_RE.match(name):
        raise ValueError(
            f"Container name '{name}' may only contain lowercase letters, "
            f"digits and single dashes"
        )
