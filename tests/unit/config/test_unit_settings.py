# tests/unit/config/test_unit_settings.py — v2
"""Tests for config/settings.py: typed Settings and validation rules."""

from __future__ import annotations

from datetime import timedelta

import pytest

from seoanalyzer.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_cache(self):
        s = Settings(_env_file=None)
        assert s.cache_enabled is True
        assert s.cache_backend == "json"
        assert s.cache_key_prefix == "seo-analyzer-cache-v1"

    def test_default_limits(self):
        s = Settings(_env_file=None)
        assert s.cache_ttl == timedelta(days=7)
        assert s.cache_max_entries == 50
        assert s.cache_evict_batch == 5
        assert s.cache_cleanup_interval == timedelta(hours=1)
        assert s.cache_max_bytes is None

    def test_default_pipeline(self):
        s = Settings(_env_file=None)
        assert s.pipeline_max_urls == 100
        assert s.pipeline_strict_transitions is True

    def test_default_logging(self):
        s = Settings(_env_file=None)
        assert s.log_level == "INFO"
        assert s.log_format == "json"
        assert s.log_file is None


class TestSettingsValidation:
    def test_redis_without_url(self):
        with pytest.raises(ConfigurationError, match="CACHE_REDIS_URL"):
            Settings(_env_file=None, cache_backend="redis")

    def test_redis_with_url(self):
        s = Settings(_env_file=None, cache_backend="redis", cache_redis_url="redis://r:6379/0")
        assert s.cache_redis_url == "redis://r:6379/0"

    def test_non_positive_quota(self):
        with pytest.raises(ConfigurationError, match="CACHE_MAX_BYTES"):
            Settings(_env_file=None, cache_max_bytes=0)

    @pytest.mark.parametrize(
        "field",
        ["cache_max_entries", "cache_evict_batch", "cache_cleanup_interval_seconds", "pipeline_max_urls"],
    )
    def test_limits_must_be_positive(self, field):
        with pytest.raises(ValueError, match=field):
            Settings(_env_file=None, **{field: 0})

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError, match="cache_ttl_days"):
            Settings(_env_file=None, cache_ttl_days=0)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, cache_backend="floppy")

    def test_fractional_ttl(self):
        s = Settings(_env_file=None, cache_ttl_days=0.5)
        assert s.cache_ttl == timedelta(hours=12)


class TestEnvironment:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CACHE_BACKEND", "sqlite")
        monkeypatch.setenv("PIPELINE_MAX_URLS", "25")
        s = Settings(_env_file=None)
        assert s.cache_backend == "sqlite"
        assert s.pipeline_max_urls == 25

    def test_reads_env_file(self, tmp_path, monkeypatch):
        env = tmp_path / ".env"
        env.write_text("CACHE_TTL_DAYS=3\nLOG_FORMAT=text\nUNRELATED=1\n", encoding="utf-8")
        s = Settings(_env_file=env)
        assert s.cache_ttl == timedelta(days=3)
        assert s.log_format == "text"


class TestLoadSettings:
    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        s = load_settings(cache_backend="memory", pipeline_strict_transitions=False)
        assert s.cache_backend == "memory"
        assert s.pipeline_strict_transitions is False
