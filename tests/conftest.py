"""Shared fixtures for blobcache tests."""

from datetime import datetime, timezone

import pytest

from blobcache.cache.config import CacheConfig
from blobcache.cache.manager import ContainerCache
from blobcache.entries import CacheEntry
from blobcache.storage.backend import ListingPage, ListingSource

MODIFIED = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


class FakeListingSource(ListingSource):
    """In-memory listing source with offset markers and failure injection."""

    def __init__(self, entries=(), page_size=2, fail_on_page=None, container="media"):
        self.container = container
        self.entries = list(entries)
        self.page_size = page_size
        self.fail_on_page = fail_on_page
        self.calls = []

    def list_page(self, marker=None, prefix="", page_size=None):
        self.calls.append(marker)
        if self.fail_on_page is not None and len(self.calls) == self.fail_on_page:
            raise ConnectionError("service unavailable")
        size = page_size or self.page_size
        matching = [e for e in self.entries if e.name.startswith(prefix)]
        offset = int(marker) if marker else 0
        chunk = matching[offset : offset + size]
        next_offset = offset + len(chunk)
        next_marker = str(next_offset) if next_offset < len(matching) else None
        return ListingPage(chunk, next_marker)


def make_entries(*names, size=10):
    return [CacheEntry(name, size, MODIFIED) for name in names]


@pytest.fixture
def make_config(tmp_path):
    """Factory for configs that keep snapshots in tmp_path and never sleep."""

    def _make(name="media", **overrides):
        options = dict(
            refresh_interval=5,
            storage_path=tmp_path / "snapshots",
            account_name="testaccount",
            account_key="dGVzdGtleQ==",
            max_attempts=3,
            retry_delay=0,
            check_interval=0.01,
            lock_timeout=5,
        )
        options.update(overrides)
        return CacheConfig(name=name, **options)

    return _make


@pytest.fixture
def make_cache(make_config):
    """Factory for caches backed by a FakeListingSource."""

    def _make(entries=(), name="media", source=None, **overrides):
        if source is None:
            source = FakeListingSource(entries, container=name)
        return ContainerCache(make_config(name, **overrides), source=source)

    return _make
