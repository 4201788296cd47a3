"""
Tests for configuration defaults and environment loading.
"""

import pytest
from pydantic import ValidationError

from prompthive.config import Config, DiffConfig, LogConfig, RegistryConfig, StorageConfig


class TestDefaults:
    """Tests for default configuration values."""

    def test_section_defaults(self) -> None:
        config = Config()
        assert config.storage.base_dir == "~/.prompthive"
        assert config.registry.max_retries == 3
        assert config.lock.timeout == 5.0
        assert config.diff.context_lines == 3
        assert config.diff.column_width == 40
        assert config.logging.level == "WARNING"
        assert not config.logging.enable_file_logging

    def test_base_path_expands_home(self, tmp_path, monkeypatch) -> None:
        """Test ~ is expanded and the path made absolute."""
        monkeypatch.setenv("HOME", str(tmp_path))
        path = StorageConfig(base_dir="~/hive").base_path
        assert path == (tmp_path / "hive").resolve()

    def test_author_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("PROMPTHIVE_AUTHOR", "carol")
        assert StorageConfig().author == "carol"


class TestFromEnv:
    """Tests for Config.from_env."""

    def test_reads_environment(self, tmp_path, monkeypatch) -> None:
        """Test each section picks up its variables."""
        monkeypatch.setenv("PROMPTHIVE_BASE_DIR", str(tmp_path))
        monkeypatch.setenv("PROMPTHIVE_REGISTRY_URL", "https://hive.internal")
        monkeypatch.setenv("PROMPTHIVE_API_KEY", "k-123")
        monkeypatch.setenv("PROMPTHIVE_MAX_RETRIES", "5")
        monkeypatch.setenv("PROMPTHIVE_LOCK_TIMEOUT", "1.5")
        monkeypatch.setenv("PROMPTHIVE_DIFF_CONTEXT", "1")
        monkeypatch.setenv("PROMPTHIVE_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("PROMPTHIVE_LOG_FILES", "1")

        config = Config.from_env()

        assert config.storage.base_path == tmp_path.resolve()
        assert config.registry.url == "https://hive.internal"
        assert config.registry.api_key == "k-123"
        assert config.registry.max_retries == 5
        assert config.lock.timeout == 1.5
        assert config.diff.context_lines == 1
        assert config.logging.level == "DEBUG"
        assert config.logging.enable_file_logging
        assert config.logging.log_path == tmp_path / "logs"

    def test_invalid_log_level(self, monkeypatch) -> None:
        monkeypatch.setenv("PROMPTHIVE_LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError):
            Config.from_env()


class TestValidation:
    """Tests for field constraints."""

    def test_retries_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            RegistryConfig(max_retries=0)

    def test_negative_context_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DiffConfig(context_lines=-1)

    def test_narrow_columns_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DiffConfig(column_width=4)

    def test_unknown_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LogConfig(level="VERBOSE")
