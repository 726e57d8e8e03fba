# tests/test_config.py
"""
Configuration Tests
===================

Tests for settings loading from files and environment variables, and for
configuration validation.
"""

import json
import logging
import os

import pytest
import yaml

from gradian.config import (
    AppSettings, ConfigurationLoader, ConfigurationManager, DataSource, DatabaseSettings,
    Environment, LoggingSettings, LogLevel, StorageSettings, parse_bool, setup_logging,
)

MAPPED_ENV_VARS = (
    "GRADIAN_ENV", "GRADIAN_DEBUG", "GRADIAN_HOST", "GRADIAN_PORT", "GRADIAN_CONFIG",
    "DATA_SOURCE", "DATA_DIR", "DEMO_MODE", "UNIQUE_RELATIONS",
    "DATABASE_URL", "DATABASE_ECHO", "CACHE_ENABLED", "CACHE_TTL_SECONDS",
    "PEPPER", "LOG_LEVEL", "LOG_FILE",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from the developer's environment and working directory."""
    for name in MAPPED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def loader():
    return ConfigurationLoader()


def load(loader, tmp_path, config_file=None):
    return loader.load_configuration(config_file, env_file=str(tmp_path / "missing.env"))


class TestConfigurationLoader:
    """Test cases for ConfigurationLoader."""

    def test_defaults(self, clean_env, loader):
        settings = load(loader, clean_env)

        assert settings.environment == Environment.DEVELOPMENT
        assert settings.debug is True
        assert settings.storage.data_source == DataSource.MOCK
        assert settings.storage.enforce_unique_relations is False
        assert settings.cache.ttl_seconds == 60
        assert settings.logging.level == LogLevel.DEBUG

    def test_environment_variables(self, clean_env, loader, monkeypatch):
        monkeypatch.setenv("DATA_SOURCE", "DATABASE")
        monkeypatch.setenv("DATA_DIR", "/srv/gradian")
        monkeypatch.setenv("UNIQUE_RELATIONS", "yes")
        monkeypatch.setenv("DEMO_MODE", "false")
        monkeypatch.setenv("DATABASE_URL", "postgresql://user:secret@db/gradian")
        monkeypatch.setenv("CACHE_TTL_SECONDS", "5")
        monkeypatch.setenv("PEPPER", "spice")
        monkeypatch.setenv("GRADIAN_PORT", "9000")
        monkeypatch.setenv("LOG_FILE", "logs/custom.log")

        settings = load(loader, clean_env)

        assert settings.storage.data_source == DataSource.DATABASE
        assert settings.storage.data_dir == "/srv/gradian"
        assert settings.storage.enforce_unique_relations is True
        assert settings.storage.demo_mode is False
        assert settings.database.url == "postgresql://user:secret@db/gradian"
        assert settings.cache.ttl_seconds == 5
        assert settings.security.pepper == "spice"
        assert settings.port == 9000
        assert settings.logging.file_enabled is True
        assert settings.logging.file_path == "logs/custom.log"

    def test_invalid_integer_is_ignored(self, clean_env, loader, monkeypatch):
        monkeypatch.setenv("GRADIAN_PORT", "eighty")

        assert load(loader, clean_env).port == 8000

    def test_yaml_file_is_deep_merged(self, clean_env, loader, monkeypatch):
        config_path = clean_env / "gradian.yml"
        config_path.write_text(yaml.safe_dump({
            "app_name": "Procurement",
            "storage": {"data_dir": "from-file", "soft_delete_policies": {}},
            "cache": {"ttl_seconds": 30},
        }), encoding="utf-8")
        monkeypatch.setenv("CACHE_TTL_SECONDS", "10")

        settings = load(loader, clean_env, str(config_path))

        assert settings.app_name == "Procurement"
        assert settings.storage.data_dir == "from-file"
        assert settings.storage.soft_delete_policies == {}
        assert settings.storage.data_source == DataSource.MOCK
        assert settings.cache.ttl_seconds == 10

    def test_json_file(self, clean_env, loader):
        config_path = clean_env / "config.json"
        config_path.write_text(json.dumps({"host": "0.0.0.0", "database": {"echo": True}}), encoding="utf-8")

        settings = load(loader, clean_env, str(config_path))

        assert settings.host == "0.0.0.0"
        assert settings.database.echo is True

    def test_env_file(self, clean_env, loader):
        env_path = clean_env / ".env"
        env_path.write_text("PEPPER=from-dotenv\n", encoding="utf-8")

        try:
            settings = loader.load_configuration(env_file=str(env_path))
        finally:
            os.environ.pop("PEPPER", None)

        assert settings.security.pepper == "from-dotenv"

    def test_missing_config_file(self, clean_env, loader):
        with pytest.raises(FileNotFoundError):
            load(loader, clean_env, str(clean_env / "nope.yml"))

    def test_unknown_data_source(self, clean_env, loader, monkeypatch):
        monkeypatch.setenv("DATA_SOURCE", "cloud")

        with pytest.raises(ValueError):
            load(loader, clean_env)


class TestValidation:
    """Test cases for AppSettings validation."""

    def test_default_settings_are_valid(self):
        settings = AppSettings()

        assert settings.is_valid()
        assert settings.get_validation_summary() == "Configuration is valid"

    def test_invalid_port(self):
        errors = AppSettings(port=70000).validate_configuration()

        assert [e.field for e in errors] == ["port"]

    def test_production_requires_pepper(self):
        settings = AppSettings(environment=Environment.PRODUCTION, debug=True)

        fields = {e.field for e in settings.validate_configuration()}
        assert fields == {"debug", "security.pepper"}
        assert "2 error(s)" in settings.get_validation_summary()

    def test_database_checked_only_in_database_mode(self):
        settings = AppSettings(database=DatabaseSettings(url=""))
        assert settings.is_valid()

        settings.storage.data_source = DataSource.DATABASE
        assert [e.field for e in settings.validate_configuration()] == ["database.url"]

    def test_soft_delete_policy_shape(self):
        settings = AppSettings(storage=StorageSettings(soft_delete_policies={"tenders": {"field": "status"}}))

        assert [e.field for e in settings.validate_configuration()] == ["storage.soft_delete_policies.tenders"]

    def test_to_dict_masks_pepper(self):
        data = AppSettings().to_dict()
        assert data["security"]["pepper"] == ""
        assert data["storage"]["data_source"] == "mock"

        settings = AppSettings()
        settings.security.pepper = "secret"
        assert settings.to_dict()["security"]["pepper"] == "***"

    def test_manager_raises_on_invalid_configuration(self, clean_env, monkeypatch):
        monkeypatch.setenv("GRADIAN_PORT", "0")

        with pytest.raises(ValueError, match="Configuration validation failed"):
            ConfigurationManager().load_config(env_file=str(clean_env / "missing.env"))


class TestHelpers:
    """Test cases for parse_bool and setup_logging."""

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("1", True), ("YES", True), ("on", True),
        ("false", False), ("0", False), ("", False), (None, False), (True, True),
    ])
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected

    def test_setup_logging_replaces_own_handlers(self, tmp_path):
        settings = LoggingSettings(
            level=LogLevel.WARNING,
            file_enabled=True,
            file_path=str(tmp_path / "logs" / "gradian.log"),
            logger_levels={"gradian.repository": "ERROR"},
        )
        root = logging.getLogger()
        before = list(root.handlers)
        previous_level = root.level

        try:
            setup_logging(settings)
            setup_logging(settings)

            own = [h for h in root.handlers if getattr(h, "_gradian_handler", False)]
            assert len(own) == 2
            assert (tmp_path / "logs").is_dir()
            assert logging.getLogger("gradian.repository").level == logging.ERROR
        finally:
            for handler in list(root.handlers):
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()
            logging.getLogger("gradian.repository").setLevel(logging.NOTSET)
            root.setLevel(previous_level)
