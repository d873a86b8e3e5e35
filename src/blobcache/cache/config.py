"""Cached container configuration management."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from blobcache.cache.errors import CacheConfigError
from blobcache.cache.retry import RetryPolicy
from blobcache.utils import validate_container_name

logger = logging.getLogger(__name__)

# Alternative spellings accepted in configuration files
_FIELD_ALIASES = {
    "refresh_interval_minutes": "refresh_interval",
    "cycle": "refresh_interval",
    "path": "storage_path",
}


def default_storage_path() -> Path:
    """Platform temporary directory, used when no storage path is configured."""
    return Path(tempfile.gettempdir())


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for one cached container.

    Attributes:
        name: Container name
        refresh_interval: Minutes between refresh cycles (must be > 0)
        storage_path: Directory holding the snapshot files. Defaults to the
            platform temporary directory.
        account_name: Storage account name (with account_key)
        account_key: Storage account shared key
        connection_string: Alternative to account_name/account_key
        local_root: List this local directory instead of a remote container
        page_size: Results requested per listing page
        check_interval: Seconds between scheduler checks (60)
        max_attempts: Total attempts per retried file operation (10)
        retry_delay: Seconds between file operation attempts (5)
        lock_timeout: Seconds to wait for the cache lock held by another cycle (30)
    """

    name: str
    refresh_interval: float
    storage_path: Path = field(default_factory=default_storage_path)
    account_name: Optional[str] = None
    account_key: Optional[str] = field(default=None, repr=False)
    connection_string: Optional[str] = field(default=None, repr=False)
    local_root: Optional[Path] = None
    page_size: int = 5000
    check_interval: float = 60.0
    max_attempts: int = 10
    retry_delay: float = 5.0
    lock_timeout: float = 30.0

    def __post_init__(self):
        """Normalize paths and validate the configuration.

        Raises:
            CacheConfigError: If any field is invalid
        """
        if not self.storage_path:
            object.__setattr__(self, "storage_path", default_storage_path())
        elif not isinstance(self.storage_path, Path):
            object.__setattr__(self, "storage_path", Path(self.storage_path))
        object.__setattr__(self, "storage_path", self.storage_path.expanduser())

        if self.local_root is not None and not isinstance(self.local_root, Path):
            object.__setattr__(self, "local_root", Path(self.local_root).expanduser())

        try:
            validate_container_name(self.name)
        except (TypeError, ValueError) as e:
            raise CacheConfigError(
                f"Invalid name for cached container: {e}"
            ) from e

        try:
            interval = float(self.refresh_interval)
        except (TypeError, ValueError) as e:
            raise CacheConfigError(
                f"Invalid value for cache cycle {self.refresh_interval!r} "
                f"on container {self.name}"
            ) from e
        if not interval > 0:
            raise CacheConfigError(
                f"Invalid value for cache cycle {self.refresh_interval} "
                f"on container {self.name}"
            )
        object.__setattr__(self, "refresh_interval", interval)

        if self.local_root is None and not self.connection_string:
            if not self.account_name:
                raise CacheConfigError(
                    f"account_name not specified for cached container {self.name}"
                )
            if not self.account_key:
                raise CacheConfigError(
                    f"account_key not specified for cached container {self.name}"
                )

        if self.page_size <= 0:
            raise CacheConfigError(
                f"page_size must be positive for cached container {self.name}"
            )
        if self.max_attempts < 1:
            raise CacheConfigError(
                f"max_attempts must be at least 1 for cached container {self.name}"
            )
        if self.retry_delay < 0 or self.check_interval < 0 or self.lock_timeout < 0:
            raise CacheConfigError(
                f"Delays and timeouts cannot be negative for cached container "
                f"{self.name}"
            )

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, delay=self.retry_delay)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation with secrets redacted."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Path):
                value = str(value)
            if f.name in ("account_key", "connection_string") and value:
                value = "***"
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        """Build a configuration from a config-file entry.

        Credentials and the storage path missing from the entry fall back to
        environment variables:
            BLOBCACHE_ACCOUNT_NAME: Storage account name
            BLOBCACHE_ACCOUNT_KEY: Storage account key
            BLOBCACHE_CONNECTION_STRING: Storage connection string
            BLOBCACHE_STORAGE_PATH: Snapshot directory

        Raises:
            CacheConfigError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            key = _FIELD_ALIASES.get(key, key)
            if key not in known:
                raise CacheConfigError(
                    f"Unknown option '{key}' for cached container "
                    f"{data.get('name', '<unnamed>')}"
                )
            kwargs[key] = value

        if "name" not in kwargs:
            raise CacheConfigError("container name missing from cached container config")
        if "refresh_interval" not in kwargs:
            raise CacheConfigError(
                f"refresh interval missing for cached container {kwargs['name']}"
            )

        if not kwargs.get("local_root"):
            env_defaults = {
                "account_name": "BLOBCACHE_ACCOUNT_NAME",
                "account_key": "BLOBCACHE_ACCOUNT_KEY",
                "connection_string": "BLOBCACHE_CONNECTION_STRING",
            }
            for key, env_name in env_defaults.items():
                if not kwargs.get(key) and os.getenv(env_name):
                    kwargs[key] = os.getenv(env_name)

        if not kwargs.get("storage_path") and os.getenv("BLOBCACHE_STORAGE_PATH"):
            kwargs["storage_path"] = Path(os.getenv("BLOBCACHE_STORAGE_PATH"))

        try:
            return cls(**kwargs)
        except TypeError as e:
            raise CacheConfigError(f"Invalid cached container config: {e}") from e


def load_cache_configs(
    config_path: Union[str, Path],
) -> Tuple[List[CacheConfig], Dict[str, CacheConfigError]]:
    """Load every cached container configuration from a JSON file.

    The file holds ``{"containers": [{...}, ...]}``. Each entry is validated
    independently so one bad entry never prevents the others from loading.

    Args:
        config_path: Path to the JSON config file

    Returns:
        Tuple of (valid configs, mapping of entry label to its error)

    Raises:
        CacheConfigError: If the file itself cannot be read or has no
            containers list
    """
    config_path = Path(config_path).expanduser()
    try:
        with open(config_path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CacheConfigError(f"Cannot read config file {config_path}: {e}") from e

    containers = data.get("containers") if isinstance(data, dict) else None
    if not isinstance(containers, list):
        raise CacheConfigError(
            f"Config file {config_path} must contain a 'containers' list"
        )

    configs: List[CacheConfig] = []
    failures: Dict[str, CacheConfigError] = {}
    seen = set()
    for index, entry in enumerate(containers):
        label = entry.get("name") if isinstance(entry, dict) else None
        label = label or f"containers[{index}]"
        try:
            if not isinstance(entry, dict):
                raise CacheConfigError(f"{label} must be an object")
            config = CacheConfig.from_dict(entry)
            if config.name in seen:
                raise CacheConfigError(f"container {config.name} configured twice")
        except CacheConfigError as e:
            logger.error(f"Skipping cached container {label}: {e}")
            failures[label] = e
            continue
        seen.add(config.name)
        configs.append(config)

    return configs, failures
