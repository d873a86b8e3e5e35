"""Tests for cached container configuration."""

import json
import tempfile
from pathlib import Path

import pytest

from blobcache.cache.config import CacheConfig, load_cache_configs
from blobcache.cache.errors import CacheConfigError
from blobcache.cache.retry import RetryPolicy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in [
        "BLOBCACHE_ACCOUNT_NAME",
        "BLOBCACHE_ACCOUNT_KEY",
        "BLOBCACHE_CONNECTION_STRING",
        "BLOBCACHE_STORAGE_PATH",
    ]:
        monkeypatch.delenv(name, raising=False)


class TestCacheConfig:
    """Test configuration validation."""

    def test_defaults(self):
        config = CacheConfig("media", 15, account_name="acct", account_key="key")

        assert config.storage_path == Path(tempfile.gettempdir())
        assert config.check_interval == 60
        assert config.retry_policy == RetryPolicy(max_attempts=10, delay=5.0)
        assert config.refresh_interval == 15.0

    def test_string_paths_are_converted(self, tmp_path):
        config = CacheConfig(
            "media", 1, storage_path=str(tmp_path), local_root=str(tmp_path / "data")
        )
        assert config.storage_path == tmp_path
        assert config.local_root == tmp_path / "data"

    def test_empty_storage_path_uses_temp_dir(self):
        config = CacheConfig("media", 1, storage_path="", account_name="a", account_key="k")
        assert config.storage_path == Path(tempfile.gettempdir())

    @pytest.mark.parametrize("interval", [0, -1, "soon", None])
    def test_invalid_interval(self, interval):
        with pytest.raises(CacheConfigError, match="cache cycle"):
            CacheConfig("media", interval, account_name="a", account_key="k")

    @pytest.mark.parametrize("name", ["", "ab", "Media", "my--container", "-media", "a/b"])
    def test_invalid_name(self, name):
        with pytest.raises(CacheConfigError):
            CacheConfig(name, 5, account_name="a", account_key="k")

    def test_missing_account_key(self):
        with pytest.raises(CacheConfigError, match="account_key not specified"):
            CacheConfig("media", 5, account_name="acct")

    def test_missing_account_name(self):
        with pytest.raises(CacheConfigError, match="account_name not specified"):
            CacheConfig("media", 5, account_key="key")

    def test_connection_string_replaces_account(self):
        config = CacheConfig("media", 5, connection_string="DefaultEndpointsProtocol=https")
        assert config.account_name is None

    @pytest.mark.parametrize(
        "overrides",
        [{"page_size": 0}, {"max_attempts": 0}, {"retry_delay": -1}, {"check_interval": -5}],
    )
    def test_invalid_tuning(self, overrides):
        with pytest.raises(CacheConfigError):
            CacheConfig("media", 5, account_name="a", account_key="k", **overrides)

    def test_config_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            CacheConfig("media", 0, account_name="a", account_key="k")

    def test_to_dict_redacts_secrets(self):
        data = CacheConfig("media", 5, account_name="acct", account_key="secret").to_dict()
        assert data["account_key"] == "***"
        assert data["account_name"] == "acct"
        assert isinstance(data["storage_path"], str)

    def test_repr_hides_key(self):
        config = CacheConfig("media", 5, account_name="acct", account_key="secret")
        assert "secret" not in repr(config)


class TestFromDict:
    """Test building configs from config-file entries."""

    def test_aliases(self, tmp_path):
        config = CacheConfig.from_dict(
            {
                "name": "media",
                "cycle": 30,
                "path": str(tmp_path),
                "account_name": "acct",
                "account_key": "key",
            }
        )
        assert config.refresh_interval == 30
        assert config.storage_path == tmp_path

    def test_unknown_key(self):
        with pytest.raises(CacheConfigError, match="Unknown option 'colour'"):
            CacheConfig.from_dict({"name": "media", "refresh_interval": 5, "colour": "red"})

    def test_missing_name(self):
        with pytest.raises(CacheConfigError, match="container name missing"):
            CacheConfig.from_dict({"refresh_interval": 5})

    def test_missing_interval(self):
        with pytest.raises(CacheConfigError, match="refresh interval missing"):
            CacheConfig.from_dict({"name": "media"})

    def test_credentials_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BLOBCACHE_ACCOUNT_NAME", "envacct")
        monkeypatch.setenv("BLOBCACHE_ACCOUNT_KEY", "envkey")
        monkeypatch.setenv("BLOBCACHE_STORAGE_PATH", str(tmp_path))

        config = CacheConfig.from_dict({"name": "media", "refresh_interval": 5})

        assert config.account_name == "envacct"
        assert config.account_key == "envkey"
        assert config.storage_path == tmp_path

    def test_file_values_win_over_environment(self, monkeypatch):
        monkeypatch.setenv("BLOBCACHE_ACCOUNT_NAME", "envacct")
        config = CacheConfig.from_dict(
            {"name": "media", "refresh_interval": 5, "account_name": "fileacct", "account_key": "k"}
        )
        assert config.account_name == "fileacct"


class TestLoadCacheConfigs:
    """Test loading the config file."""

    def write(self, tmp_path, data):
        path = tmp_path / "blobcache.json"
        path.write_text(json.dumps(data))
        return path

    def test_load_valid_and_invalid_entries(self, tmp_path):
        path = self.write(
            tmp_path,
            {
                "containers": [
                    {"name": "media", "refresh_interval_minutes": 10, "local_root": str(tmp_path)},
                    {"name": "photos", "refresh_interval": 0, "local_root": str(tmp_path)},
                    {"name": "logs", "refresh_interval": 5, "account_name": "acct"},
                    "not-an-object",
                ]
            },
        )

        configs, failures = load_cache_configs(path)

        assert [c.name for c in configs] == ["media"]
        assert configs[0].refresh_interval == 10
        assert sorted(failures) == ["containers[3]", "logs", "photos"]

    def test_duplicate_container(self, tmp_path):
        entry = {"name": "media", "refresh_interval": 5, "local_root": str(tmp_path)}
        path = self.write(tmp_path, {"containers": [entry, entry]})

        configs, failures = load_cache_configs(path)

        assert len(configs) == 1
        assert "configured twice" in str(failures["media"])

    def test_missing_file(self, tmp_path):
        with pytest.raises(CacheConfigError, match="Cannot read config file"):
            load_cache_configs(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "blobcache.json"
        path.write_text("{not json")
        with pytest.raises(CacheConfigError):
            load_cache_configs(path)

    def test_missing_containers_list(self, tmp_path):
        path = self.write(tmp_path, {"caches": []})
        with pytest.raises(CacheConfigError, match="'containers' list"):
            load_cache_configs(path)
