"""Refresh metadata sidecar for a cached container."""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import orjson

from blobcache.utils import to_utc

logger = logging.getLogger(__name__)


class CacheMetadata:
    """Manages the refresh metadata of one container.

    The metadata file (.cache-<container>.json) tracks:
    - Last successful refresh (start, completion, duration)
    - Snapshot statistics (entries, pages, bytes on disk)
    - Refresh counters and the last cycle error

    It is informational only: readers never depend on it, and a missing or
    corrupt file is treated as empty.
    """

    def __init__(self, meta_path: Path, container: str):
        self.meta_path = Path(meta_path)
        self.container = container
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        """Load metadata from file or create new."""
        try:
            with open(self.meta_path, "rb") as f:
                self._data = orjson.loads(f.read())
        except FileNotFoundError:
            self._initialize_new()
        except (orjson.JSONDecodeError, OSError) as e:
            logger.warning(f"[{self.container}] ignoring unreadable metadata: {e}")
            self._initialize_new()

    def _initialize_new(self) -> None:
        self._data = {
            "schema_version": "1.0",
            "container": self.container,
            "last_refresh_started": None,
            "last_refresh_completed": None,
            "last_refresh_seconds": None,
            "entry_count": None,
            "page_count": None,
            "snapshot_bytes": None,
            "recovered": False,
            "refresh_count": 0,
            "failure_count": 0,
            "last_error": None,
        }

    def save(self) -> None:
        """Write metadata atomically (temp file then rename)."""
        self.meta_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.meta_path.with_suffix(".json.tmp")
        with open(temp_path, "wb") as f:
            f.write(orjson.dumps(self._data, option=orjson.OPT_INDENT_2))
        os.replace(temp_path, self.meta_path)

    def record_refresh(
        self,
        started_at: datetime,
        completed_at: datetime,
        entries: int,
        pages: int,
        snapshot_bytes: Optional[int],
        recovered: bool,
    ) -> None:
        """Record a completed refresh cycle."""
        self._data.update(
            {
                "last_refresh_started": to_utc(started_at).isoformat(),
                "last_refresh_completed": to_utc(completed_at).isoformat(),
                "last_refresh_seconds": round(
                    (completed_at - started_at).total_seconds(), 3
                ),
                "entry_count": entries,
                "page_count": pages,
                "snapshot_bytes": snapshot_bytes,
                "recovered": recovered,
                "last_error": None,
            }
        )
        self._data["refresh_count"] = self._data.get("refresh_count", 0) + 1
        self.save()

    def record_failure(self, error: BaseException) -> None:
        """Record a failed refresh cycle."""
        self._data["failure_count"] = self._data.get("failure_count", 0) + 1
        self._data["last_error"] = f"{type(error).__name__}: {error}"
        self.save()

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def last_refresh_completed(self) -> Optional[datetime]:
        value = self._data.get("last_refresh_completed")
        return datetime.fromisoformat(value) if value else None

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._data)
