"""
Gradian Configuration Module
============================

Configuration management for the Gradian backend. Settings come from
built-in environment defaults, a ``.env`` file, a YAML/JSON configuration
file and environment variables, merged in that order.

Author: Gradian Development Team
Version: 1.0.0
License: MIT
"""

import os
import json
import logging
import logging.handlers
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Tuple, Union
from pathlib import Path
from enum import Enum
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv, find_dotenv

# ==================== ENUMS AND CONSTANTS ====================

class Environment(Enum):
    """Supported environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class DataSource(Enum):
    """Where entity collections are persisted."""
    MOCK = "mock"
    DATABASE = "database"


class LogLevel(Enum):
    """Supported log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# Configuration file names searched in DEFAULT_CONFIG_PATHS
CONFIG_FILE_PATTERNS = [
    "gradian.yml", "gradian.yaml",
    "gradian.json",
    "config.yml", "config.yaml",
    "config.json",
]

DEFAULT_CONFIG_PATHS = [
    Path.cwd(),
    Path.cwd() / "config",
    Path.home() / ".gradian",
]

TRUTHY_VALUES = ("true", "1", "yes", "on")

# ==================== VALIDATION UTILITIES ====================

class ValidationError(Exception):
    """Configuration validation error."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        self.message = message
        super().__init__(f"Validation error for field '{field}': {message}")


class ConfigValidator:
    """Configuration validation utilities."""

    @staticmethod
    def validate_port(port: int, field_name: str = "port") -> None:
        """Validate port number."""
        if not isinstance(port, int) or port < 1 or port > 65535:
            raise ValidationError(field_name, port, "Port must be between 1 and 65535")

    @staticmethod
    def validate_database_url(url: str, field_name: str = "url") -> None:
        """Validate an SQLAlchemy database URL."""
        if not url:
            raise ValidationError(field_name, url, "Database URL is required")

        parsed = urlparse(url)
        if not parsed.scheme:
            raise ValidationError(field_name, url, "Invalid database URL format")

    @staticmethod
    def validate_path(path: Union[str, Path], field_name: str = "path") -> None:
        """Validate file/directory path."""
        if not path:
            raise ValidationError(field_name, path, "Path cannot be empty")

        if "\x00" in str(path):
            raise ValidationError(field_name, path, "Path contains a null byte")

    @staticmethod
    def validate_positive_int(value: int, field_name: str) -> None:
        """Validate positive integer."""
        if not isinstance(value, int) or value <= 0:
            raise ValidationError(field_name, value, "Must be a positive integer")

    @staticmethod
    def validate_non_negative_int(value: int, field_name: str) -> None:
        """Validate non-negative integer."""
        if not isinstance(value, int) or value < 0:
            raise ValidationError(field_name, value, "Must be a non-negative integer")


def parse_bool(value: Union[str, bool, None], default: bool = False) -> bool:
    """Interpret an environment-style boolean."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY_VALUES


# ==================== STORAGE SETTINGS ====================

@dataclass
class StorageSettings:
    """Entity storage settings."""

    data_source: DataSource = DataSource.MOCK
    data_dir: str = "data"

    # Serve data routes locally (the only supported mode)
    demo_mode: bool = True

    # Reject a second relation with the same source, target and type
    enforce_unique_relations: bool = False

    # schema id -> {"field": ..., "value": ...}; everything else is hard-deleted
    soft_delete_policies: Dict[str, Dict[str, str]] = field(default_factory=lambda: {
        "purchase-orders": {"field": "status", "value": "CANCELLED"},
        "tenders": {"field": "status", "value": "CANCELLED"},
    })

    def validate(self) -> None:
        """Validate storage settings."""
        ConfigValidator.validate_path(self.data_dir, "data_dir")

        for schema_id, policy in self.soft_delete_policies.items():
            if not isinstance(policy, dict) or not policy.get("field") or "value" not in policy:
                raise ValidationError(
                    f"soft_delete_policies.{schema_id}", policy,
                    "Soft delete policy needs 'field' and 'value'"
                )


# ==================== DATABASE SETTINGS ====================

@dataclass
class DatabaseSettings:
    """Database connection settings, used when data_source is 'database'."""

    url: str = "sqlite:///gradian.db"
    echo: bool = False
    pool_pre_ping: bool = True
    pool_recycle: int = 3600

    # Create tables on startup instead of relying on migrations
    auto_create_tables: bool = True

    def validate(self) -> None:
        """Validate database settings."""
        ConfigValidator.validate_database_url(self.url, "url")
        ConfigValidator.validate_positive_int(self.pool_recycle, "pool_recycle")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


# ==================== CACHE SETTINGS ====================

@dataclass
class CacheSettings:
    """Cache configuration settings."""

    enabled: bool = True
    ttl_seconds: int = 60

    def validate(self) -> None:
        """Validate cache settings."""
        ConfigValidator.validate_non_negative_int(self.ttl_seconds, "ttl_seconds")


# ==================== SECURITY SETTINGS ====================

@dataclass
class SecuritySettings:
    """Password hashing settings."""

    pepper: str = ""
    password_scheme: str = "argon2"

    def validate(self) -> None:
        """Validate security settings."""
        if self.password_scheme != "argon2":
            raise ValidationError("password_scheme", self.password_scheme, "Only 'argon2' is supported")


# ==================== LOGGING SETTINGS ====================

@dataclass
class LoggingSettings:
    """Logging configuration settings."""

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    # File logging
    file_enabled: bool = False
    file_path: str = "logs/gradian.log"
    file_max_size: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5

    # Console logging
    console_enabled: bool = True

    # Logger-specific levels
    logger_levels: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate logging settings."""
        if self.file_enabled:
            ConfigValidator.validate_path(self.file_path, "file_path")
            ConfigValidator.validate_positive_int(self.file_max_size, "file_max_size")
            ConfigValidator.validate_positive_int(self.file_backup_count, "file_backup_count")

        valid_levels = {level.value for level in LogLevel}
        for logger_name, level in self.logger_levels.items():
            if level not in valid_levels:
                raise ValidationError(f"logger_levels.{logger_name}", level, f"Must be one of: {valid_levels}")


# ==================== MAIN APP SETTINGS ====================

@dataclass
class AppSettings:
    """Main application settings container."""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    app_name: str = "Gradian"
    app_version: str = "1.0.0"

    # Server settings
    host: str = "127.0.0.1"
    port: int = 8000

    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Component settings
    storage: StorageSettings = field(default_factory=StorageSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def validate_configuration(self) -> List[ValidationError]:
        """Validate all configuration settings and return list of errors."""
        errors = []

        try:
            ConfigValidator.validate_port(self.port, "port")
            if not self.app_name:
                raise ValidationError("app_name", self.app_name, "Application name cannot be empty")
        except ValidationError as e:
            errors.append(e)

        components = {
            "storage": self.storage,
            "database": self.database,
            "cache": self.cache,
            "security": self.security,
            "logging": self.logging,
        }
        for prefix, component in components.items():
            if prefix == "database" and self.storage.data_source != DataSource.DATABASE:
                continue
            try:
                component.validate()
            except ValidationError as e:
                errors.append(ValidationError(f"{prefix}.{e.field}", e.value, e.message))

        if self.environment == Environment.PRODUCTION:
            if self.debug:
                errors.append(ValidationError("debug", True, "Debug mode should be disabled in production"))

            if not self.security.pepper:
                errors.append(ValidationError("security.pepper", "", "Password pepper is required in production"))

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate_configuration()) == 0

    def get_validation_summary(self) -> str:
        """Get a summary of validation results."""
        errors = self.validate_configuration()

        if not errors:
            return "Configuration is valid"

        summary = f"Configuration has {len(errors)} error(s):\n"
        for i, error in enumerate(errors, 1):
            summary += f"  {i}. {error}\n"

        return summary

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary view with enums flattened and secrets masked."""
        data = asdict(self)
        data["environment"] = self.environment.value
        data["storage"]["data_source"] = self.storage.data_source.value
        data["logging"]["level"] = self.logging.level.value
        if data["security"]["pepper"]:
            data["security"]["pepper"] = "***"
        return data


# ==================== CONFIGURATION LOADER ====================

class ConfigurationLoader:
    """Loads configuration from multiple sources with priority order."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def load_configuration(
        self,
        config_file: Optional[str] = None,
        env_file: Optional[str] = None
    ) -> AppSettings:
        """
        Load configuration from multiple sources in priority order:
        1. Environment variables (highest priority)
        2. Configuration file (YAML/JSON)
        3. .env file
        4. Default values (lowest priority)
        """
        env_path = env_file or find_dotenv(usecwd=True)
        if env_path:
            self._load_env_file(env_path)
            self.logger.info(f"Loaded environment file: {env_path}")

        config_data = self._get_default_config()

        config_file_data = self._load_config_file(config_file)
        if config_file_data:
            config_data = self._deep_merge(config_data, config_file_data)
            self.logger.info("Loaded configuration file")

        env_data = self._load_from_env_vars()
        if env_data:
            config_data = self._deep_merge(config_data, env_data)
            self.logger.debug("Loaded environment variables")

        return self._create_app_settings(config_data)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration based on environment."""
        env = Environment(os.getenv("GRADIAN_ENV", Environment.DEVELOPMENT.value))

        if env == Environment.DEVELOPMENT:
            return {
                "environment": env.value,
                "debug": True,
                "logging": {"level": "DEBUG"},
            }
        elif env == Environment.TESTING:
            return {
                "environment": env.value,
                "debug": True,
                "logging": {"level": "WARNING", "file_enabled": False},
            }
        return {
            "environment": env.value,
            "debug": False,
            "host": "0.0.0.0",
            "logging": {"level": "INFO", "file_enabled": True},
        }

    def _load_env_file(self, env_file: str) -> None:
        """Load environment variables from .env file."""
        if env_file and Path(env_file).exists():
            load_dotenv(env_file, override=False)

    def _find_config_file(self, config_file: Optional[str] = None) -> Optional[Path]:
        """Find configuration file in standard locations."""
        if config_file:
            path = Path(config_file)
            if path.exists():
                return path
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        explicit = os.getenv("GRADIAN_CONFIG")
        if explicit:
            return self._find_config_file(explicit)

        for search_path in DEFAULT_CONFIG_PATHS:
            for pattern in CONFIG_FILE_PATTERNS:
                config_path = search_path / pattern
                if config_path.exists():
                    return config_path

        return None

    def _load_config_file(self, config_file: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Load configuration from YAML or JSON file."""
        config_path = self._find_config_file(config_file)

        if not config_path:
            return None

        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() in ('.yml', '.yaml'):
                return yaml.safe_load(f) or {}
            elif config_path.suffix.lower() == '.json':
                return json.load(f)

        self.logger.warning(f"Unsupported config file format: {config_path}")
        return None

    def _load_from_env_vars(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        env_mappings = {
            # App settings
            "GRADIAN_ENV": ("environment",),
            "GRADIAN_DEBUG": ("debug", bool),
            "GRADIAN_HOST": ("host",),
            "GRADIAN_PORT": ("port", int),

            # Storage settings
            "DATA_SOURCE": ("storage", "data_source"),
            "DATA_DIR": ("storage", "data_dir"),
            "DEMO_MODE": ("storage", "demo_mode", bool),
            "UNIQUE_RELATIONS": ("storage", "enforce_unique_relations", bool),

            # Database settings
            "DATABASE_URL": ("database", "url"),
            "DATABASE_ECHO": ("database", "echo", bool),

            # Cache settings
            "CACHE_ENABLED": ("cache", "enabled", bool),
            "CACHE_TTL_SECONDS": ("cache", "ttl_seconds", int),

            # Security settings
            "PEPPER": ("security", "pepper"),

            # Logging settings
            "LOG_LEVEL": ("logging", "level"),
            "LOG_FILE": ("logging", "file_path"),
        }

        for env_var, mapping in env_mappings.items():
            value = os.getenv(env_var)
            if value is None:
                continue

            converter = mapping[-1] if mapping[-1] in (bool, int) else None
            path = mapping[:-1] if converter else mapping

            if converter is bool:
                value = parse_bool(value)
            elif converter is int:
                try:
                    value = int(value)
                except ValueError:
                    self.logger.warning(f"Invalid integer value for {env_var}: {value}")
                    continue

            if env_var == "LOG_FILE":
                self._set_nested_value(config, ("logging",), "file_enabled", True)

            self._set_nested_value(config, path[:-1], path[-1], value)

        return config

    def _set_nested_value(self, config: Dict[str, Any], path: Tuple[str, ...], key: str, value: Any) -> None:
        """Set a nested configuration value."""
        current = config

        for part in path:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[key] = value

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _create_app_settings(self, config_data: Dict[str, Any]) -> AppSettings:
        """Create AppSettings object from configuration dictionary."""
        config_data = dict(config_data)
        try:
            if "environment" in config_data:
                config_data["environment"] = Environment(config_data["environment"])

            storage_data = dict(config_data.pop("storage", {}) or {})
            database_data = config_data.pop("database", {}) or {}
            cache_data = config_data.pop("cache", {}) or {}
            security_data = config_data.pop("security", {}) or {}
            logging_data = dict(config_data.pop("logging", {}) or {})

            if "data_source" in storage_data:
                storage_data["data_source"] = DataSource(str(storage_data["data_source"]).lower())

            if "level" in logging_data:
                logging_data["level"] = LogLevel(str(logging_data["level"]).upper())

            return AppSettings(
                storage=StorageSettings(**storage_data),
                database=DatabaseSettings(**database_data),
                cache=CacheSettings(**cache_data),
                security=SecuritySettings(**security_data),
                logging=LoggingSettings(**logging_data),
                **config_data
            )

        except (TypeError, ValueError) as e:
            self.logger.error(f"Error creating AppSettings: {e}")
            raise ValueError(f"Invalid configuration data: {e}") from e


# ==================== CONFIGURATION MANAGER ====================

class ConfigurationManager:
    """Process-wide holder for the loaded configuration."""

    _instance: Optional['ConfigurationManager'] = None
    _config: Optional[AppSettings] = None

    def __new__(cls) -> 'ConfigurationManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.loader = ConfigurationLoader()
        self._config_file: Optional[str] = None
        self._env_file: Optional[str] = None

    def load_config(
        self,
        config_file: Optional[str] = None,
        env_file: Optional[str] = None,
        validate: bool = True
    ) -> AppSettings:
        """Load and validate configuration."""
        self._config_file = config_file
        self._env_file = env_file
        config = self.loader.load_configuration(config_file, env_file)

        if validate:
            errors = config.validate_configuration()
            if errors:
                error_messages = [str(error) for error in errors]
                raise ValueError("Configuration validation failed:\n" + "\n".join(error_messages))

        ConfigurationManager._config = config
        self.logger.info(f"Configuration loaded for environment: {config.environment.value}")
        return config

    def get_config(self) -> AppSettings:
        """Get the current configuration, loading it on first use."""
        if ConfigurationManager._config is None:
            return self.load_config()
        return ConfigurationManager._config

    def reload_config(self) -> AppSettings:
        """Reload configuration from the sources used last time."""
        return self.load_config(self._config_file, self._env_file)


def get_settings() -> AppSettings:
    """Shortcut for ConfigurationManager().get_config()."""
    return ConfigurationManager().get_config()


# ==================== LOGGING SETUP ====================

def setup_logging(settings: LoggingSettings) -> None:
    """Configure the root logger from LoggingSettings."""
    root = logging.getLogger()
    root.setLevel(settings.level.value)

    for handler in list(root.handlers):
        if getattr(handler, "_gradian_handler", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(settings.format, datefmt=settings.date_format)

    handlers: List[logging.Handler] = []
    if settings.console_enabled:
        handlers.append(logging.StreamHandler())

    if settings.file_enabled:
        log_path = Path(settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=settings.file_max_size,
            backupCount=settings.file_backup_count,
            encoding="utf-8",
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._gradian_handler = True
        root.addHandler(handler)

    for logger_name, level in settings.logger_levels.items():
        logging.getLogger(logger_name).setLevel(level)
