"""Tests for the typed configuration system."""

import pytest
from pydantic import ValidationError

from logship.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Ensure each test starts with a fresh Settings instance."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestDefaults:
    def test_loads_without_env_overrides(self):
        s = Settings()
        assert s.tail.whence == "oldest"
        assert s.tail.ignore_hidden is True
        assert s.tail.vanished_retries == 3
        assert s.sender.max_batch_bytes == 2 * 1024 * 1024
        assert s.sender.validation == "drop_field"
        assert s.logging.level == "INFO"
        assert s.logging.format == "json"

    def test_retry_delays(self):
        s = Settings()
        assert s.tail.reopen_delay == 3.0
        assert s.tail.vanished_delay == 0.1
        assert s.tail.done_file_delay == 3.0


class TestEnvOverrides:
    def test_tail_whence(self, monkeypatch):
        monkeypatch.setenv("LOGSHIP_TAIL__WHENCE", "newest")
        assert Settings().tail.whence == "newest"

    def test_sender_max_batch_bytes(self, monkeypatch):
        monkeypatch.setenv("LOGSHIP_SENDER__MAX_BATCH_BYTES", "1048576")
        assert Settings().sender.max_batch_bytes == 1048576

    def test_logging_level_uppercase_normalisation(self, monkeypatch):
        monkeypatch.setenv("LOGSHIP_LOGGING__LEVEL", "debug")
        assert Settings().logging.level == "DEBUG"

    def test_ignore_suffixes_from_json(self, monkeypatch):
        monkeypatch.setenv("LOGSHIP_TAIL__IGNORE_SUFFIXES", '[".gz", ".tmp"]')
        assert Settings().tail.ignore_suffixes == [".gz", ".tmp"]


class TestConfigFile:
    def test_explicit_config_file(self, monkeypatch, tmp_path):
        conf = tmp_path / "custom.toml"
        conf.write_text('[sender]\nrepo = "nginx_access"\nuser_schema = "host, status"\n')
        monkeypatch.setenv("LOGSHIP_CONFIG_FILE", str(conf))
        s = Settings()
        assert s.sender.repo == "nginx_access"
        assert s.sender.user_schema == "host, status"

    def test_env_beats_config_file(self, monkeypatch, tmp_path):
        conf = tmp_path / "custom.toml"
        conf.write_text('[tail]\nwhence = "newest"\n')
        monkeypatch.setenv("LOGSHIP_CONFIG_FILE", str(conf))
        monkeypatch.setenv("LOGSHIP_TAIL__WHENCE", "oldest")
        assert Settings().tail.whence == "oldest"

    def test_missing_config_file_raises(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LOGSHIP_CONFIG_FILE", str(tmp_path / "absent.toml"))
        with pytest.raises(FileNotFoundError, match="LOGSHIP_CONFIG_FILE"):
            Settings()


class TestValidation:
    def test_invalid_log_level_raises(self):
        with pytest.raises(ValidationError, match="level must be one of"):
            Settings(logging={"level": "NONSENSE"})

    def test_invalid_log_format_raises(self):
        with pytest.raises(ValidationError):
            Settings(logging={"format": "xml"})

    def test_valid_log_formats(self):
        assert Settings(logging={"format": "json"}).logging.format == "json"
        assert Settings(logging={"format": "text"}).logging.format == "text"

    def test_invalid_whence_raises(self):
        with pytest.raises(ValidationError):
            Settings(tail={"whence": "middle"})

    def test_vanished_retries_must_be_positive(self):
        with pytest.raises(ValidationError, match="vanished_retries"):
            Settings(tail={"vanished_retries": 0})

    def test_negative_batch_bound_raises(self):
        with pytest.raises(ValidationError, match=">= 0"):
            Settings(sender={"max_batch_bytes": -1})

    def test_unknown_validation_policy_raises(self):
        with pytest.raises(ValidationError):
            Settings(sender={"validation": "ignore"})


class TestCaching:
    def test_get_settings_returns_same_instance(self):
        s1 = get_settings()
        s2 = get_settings()
        assert s1 is s2

    def test_cache_clear_returns_new_instance(self):
        s1 = get_settings()
        get_settings.cache_clear()
        s2 = get_settings()
        # Different instances after cache clear.
        assert s1 is not s2
