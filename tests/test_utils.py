"""Tests for utility functions."""

from datetime import datetime, timedelta, timezone

import pytest

from blobcache.utils import (
    compile_wildcard,
    format_age,
    format_timestamp,
    parse_timestamp,
    to_utc,
    validate_container_name,
)


class TestTimestamps:
    """Tests for snapshot timestamp handling."""

    def test_format_converts_to_utc(self):
        """Test offsets are converted before formatting."""
        value = datetime(2024, 1, 15, 12, 30, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "2024-01-15T10:30:00Z"

    def test_naive_is_utc(self):
        """Test naive datetimes are treated as UTC."""
        assert to_utc(datetime(2024, 1, 15)).tzinfo == timezone.utc

    def test_parse(self):
        """Test parsing yields an aware UTC datetime."""
        parsed = parse_timestamp("2024-01-15T10:30:00Z")
        assert parsed == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_parse_rejects_other_formats(self):
        """Test non-snapshot formats are rejected."""
        with pytest.raises(ValueError):
            parse_timestamp("2024-01-15 10:30:00")


class TestFormatAge:
    """Tests for human-readable ages."""

    @pytest.mark.parametrize(
        "seconds, expected",
        [(None, "never"), (-3, "0s"), (42, "42s"), (252, "4m 12s"), (7260, "2h 1m")],
    )
    def test_format_age(self, seconds, expected):
        assert format_age(seconds) == expected


class TestWildcard:
    """Tests for wildcard filters."""

    def test_star_crosses_directories(self):
        """Test '*' matches across '/' separators."""
        matches = compile_wildcard("logs/*.gz")
        assert matches("logs/2024/app.gz") is True
        assert matches("logs/app.txt") is False

    def test_whole_name_must_match(self):
        """Test a pattern does not match a name prefix only."""
        assert compile_wildcard("a?c")("abcd") is False
        assert compile_wildcard("a?c")("abc") is True

    def test_case_sensitive(self):
        """Test matching keeps case."""
        assert compile_wildcard("*.CSV")("data.csv") is False


class TestContainerNames:
    """Tests for container name validation."""

    @pytest.mark.parametrize("name", ["abc", "media-assets", "a1b2", "x" * 63])
    def test_valid(self, name):
        validate_container_name(name)

    @pytest.mark.parametrize(
        "name", ["ab", "x" * 64, "Media", "media_assets", "-media", "media-", "me--dia"]
    )
    def test_invalid(self, name):
        with pytest.raises(ValueError):
            validate_container_name(name)

    def test_empty(self):
        """Test empty names are rejected."""
        with pytest.raises(ValueError, match="cannot be empty"):
            validate_container_name("")

    def test_non_string(self):
        """Test non-string names raise TypeError."""
        with pytest.raises(TypeError):
            validate_container_name(123)
