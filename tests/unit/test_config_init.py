"""Tests for docai.config module."""

import os
from pathlib import Path

import pytest

from docai.config import (
    CACHE_FILE_NAME,
    Config,
    _getenv_float,
    _getenv_int,
    _parse_bool,
    default_cache_dir,
    get_config,
    reset_config,
)
from docai.errors import ConfigurationError


class TestConfigDefaults:
    """Test default values when no environment variables are set."""

    def test_defaults(self):
        """Test the documented defaults."""
        config = Config()

        assert config.api_key is None
        assert config.base_url == "https://api.openai.com/v1"
        assert config.default_model == "gpt-3.5-turbo"
        assert config.timeout == 30.0
        assert config.mock_mode is False
        assert config.max_retries == 3
        assert config.retry_delay == 1.0
        assert config.max_delay == 10.0
        assert config.max_concurrent_requests == 3
        assert config.batch_size == 5
        assert config.batch_delay == 0.1
        assert config.max_cache_size == 1000
        assert config.max_age == 7 * 24 * 60 * 60
        assert config.compression_enabled is True
        assert config.cache_dir == default_cache_dir()

    def test_cache_file_location(self, tmp_path):
        """Test the snapshot file lives directly in the cache directory."""
        config = Config(cache_dir=str(tmp_path))

        assert isinstance(config.cache_dir, Path)
        assert config.cache_file == tmp_path / CACHE_FILE_NAME

    def test_default_cache_dir_is_per_user(self):
        """Test the default cache directory is under the home directory."""
        assert default_cache_dir().parts[-2:] == ("docai", "cache")
        assert Path.home() in default_cache_dir().parents


class TestConfigEnvironment:
    """Test environment variable handling."""

    def test_env_overrides(self, monkeypatch):
        """Test DOCAI_* variables are picked up."""
        monkeypatch.setenv("DOCAI_DEFAULT_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("DOCAI_MAX_CONCURRENT_REQUESTS", "7")
        monkeypatch.setenv("DOCAI_RETRY_DELAY", "0.25")
        monkeypatch.setenv("DOCAI_MOCK_MODE", "yes")
        monkeypatch.setenv("DOCAI_LOG_LEVEL", "debug")

        config = Config()

        assert config.default_model == "gpt-4o-mini"
        assert config.max_concurrent_requests == 7
        assert config.retry_delay == 0.25
        assert config.mock_mode is True
        assert config.log_level == "DEBUG"

    def test_api_key_from_openai_variable(self, monkeypatch):
        """Test fallback to OPENAI_API_KEY."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-from-openai")

        assert Config().api_key == "sk-from-openai"

    def test_invalid_integer_raises(self, monkeypatch):
        """Test unparseable integers fail loudly."""
        monkeypatch.setenv("DOCAI_MAX_RETRIES", "three")

        with pytest.raises(ValueError, match="DOCAI_MAX_RETRIES"):
            Config()

    def test_getenv_helpers(self, monkeypatch):
        """Test numeric helpers fall back to defaults when unset."""
        assert _getenv_int("DOCAI_UNSET_INT", 4) == 4
        assert _getenv_float("DOCAI_UNSET_FLOAT", 2.5) == 2.5
        monkeypatch.setenv("DOCAI_SOME_FLOAT", "abc")
        with pytest.raises(ValueError):
            _getenv_float("DOCAI_SOME_FLOAT", 1.0)

    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("1", True), ("On", True), ("enabled", True), ("false", False), ("", False), (None, False)],
    )
    def test_parse_bool(self, raw, expected):
        """Test boolean parsing of environment strings."""
        assert _parse_bool(raw) is expected


class TestConfigValidation:
    """Test range checks."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_retries": 0},
            {"max_concurrent_requests": 0},
            {"batch_size": 0},
            {"max_cache_size": 0},
            {"retry_delay": -1},
            {"batch_timeout": -5},
            {"timeout": 0},
            {"max_age": 0},
            {"mock_delay_min": 0.5, "mock_delay_max": 0.1},
        ],
    )
    def test_out_of_range_values_rejected(self, overrides):
        """Test invalid values raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            Config(**overrides)

    def test_with_overrides_returns_copy(self):
        """Test overrides do not mutate the original."""
        base = Config()
        changed = base.with_overrides(default_model="gpt-4", max_retries=5)

        assert changed.default_model == "gpt-4"
        assert changed.max_retries == 5
        assert base.default_model == "gpt-3.5-turbo"

    def test_with_overrides_rejects_unknown_option(self):
        """Test typos are reported instead of ignored."""
        with pytest.raises(ConfigurationError, match="max_retrys"):
            Config().with_overrides(max_retrys=2)

    def test_with_overrides_validates(self):
        """Test overrides go through validation."""
        with pytest.raises(ConfigurationError):
            Config().with_overrides(max_concurrent_requests=0)


class TestConfigRepresentation:
    """Test that the API key never leaks."""

    def test_repr_redacts_api_key(self):
        """Test repr masks the key."""
        config = Config(api_key="sk-super-secret-value")

        assert "sk-super-secret-value" not in repr(config)
        assert "***REDACTED***" in repr(config)

    def test_to_dict_redaction_optional(self):
        """Test unredacted export on request."""
        config = Config(api_key="sk-super-secret-value")

        assert config.to_dict()["api_key"] == "***REDACTED***"
        assert config.to_dict(redact=False)["api_key"] == "sk-super-secret-value"
        assert isinstance(config.to_dict()["cache_dir"], str)


class TestGetConfig:
    """Test the process-wide configuration accessor."""

    def test_get_config_is_cached(self):
        """Test repeated calls return the same instance."""
        assert get_config() is get_config()

    def test_reset_config_reloads(self, monkeypatch):
        """Test reset_config picks up environment changes."""
        first = get_config()
        monkeypatch.setenv("DOCAI_DEFAULT_MODEL", "gpt-4")
        reset_config()

        second = get_config()
        assert second is not first
        assert second.default_model == "gpt-4"

    def test_get_config_reads_dotenv(self, tmp_path, monkeypatch):
        """Test a .env file in the working directory is loaded."""
        (tmp_path / ".env").write_text("DOCAI_BATCH_SIZE=9\n")
        monkeypatch.chdir(tmp_path)
        reset_config()

        try:
            assert get_config().batch_size == 9
        finally:
            os.environ.pop("DOCAI_BATCH_SIZE", None)
