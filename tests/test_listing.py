"""Tests for directory listings."""

import pytest
from conftest import FakeListingSource, make_entries

from blobcache.cache.registry import CacheRegistry
from blobcache.listing import list_directory, list_live

NAMES = ["docs/a.txt", "docs/b.csv", "docs/c.txt", "img/d.png"]


@pytest.fixture
def registry():
    return CacheRegistry()


@pytest.fixture
def cached(registry, make_cache):
    cache = make_cache(make_entries(*NAMES))
    cache.refresh()
    registry.register(cache)
    return cache


class TestCachedListing:
    """Test listings served from a snapshot."""

    def test_uses_snapshot_not_source(self, registry, cached):
        live = FakeListingSource(make_entries("other"))
        calls_before = list(cached._source.calls)

        entries = list_directory("media", registry=registry, source=live)

        assert [e.name for e in entries] == NAMES
        assert live.calls == []
        assert cached._source.calls == calls_before

    def test_prefix_and_wildcard(self, registry, cached):
        entries = list_directory("media", prefix="docs/", pattern="*.txt", registry=registry)
        assert [e.name for e in entries] == ["docs/a.txt", "docs/c.txt"]

    def test_paging_with_cursor(self, registry, cached):
        first = list_directory("media", limit=3, registry=registry)
        second = list_directory("media", cursor=first[-1].name, limit=3, registry=registry)

        assert [e.name for e in first] == NAMES[:3]
        assert [e.name for e in second] == NAMES[3:]

    def test_dir_entry_fields(self, registry, cached):
        entry = list_directory("media", prefix="img/", registry=registry)[0]
        assert entry.size == 10
        assert entry.basename == "d.png"
        assert entry.is_dir is False


class TestLiveListing:
    """Test listings of containers without a cache."""

    def test_uncached_container_lists_live(self, registry):
        source = FakeListingSource(make_entries(*NAMES), container="photos")

        entries = list_directory("photos", prefix="docs/", registry=registry, source=source)

        assert [e.name for e in entries] == ["docs/a.txt", "docs/b.csv", "docs/c.txt"]
        assert source.calls == [None, "2"]

    def test_uncached_without_source(self, registry):
        with pytest.raises(ValueError, match="not cached"):
            list_directory("photos", registry=registry)

    def test_live_cursor_pattern_and_limit(self):
        source = FakeListingSource(make_entries(*NAMES))

        entries = list_live(source, pattern="*.txt", cursor="docs/a.txt", limit=1)

        assert [e.name for e in entries] == ["docs/c.txt"]

    def test_live_limit_stops_paging(self):
        source = FakeListingSource(make_entries(*NAMES))

        entries = list_live(source, limit=1)

        assert len(entries) == 1
        assert source.calls == [None]

    def test_live_and_cached_agree(self, registry, cached):
        live = list_live(FakeListingSource(make_entries(*NAMES)), prefix="docs/", pattern="*.csv")
        snapshot = list_directory("media", prefix="docs/", pattern="*.csv", registry=registry)
        assert live == snapshot
