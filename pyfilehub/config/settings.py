"""
Configuration Manager for PyFileHub using Pydantic Settings.

This module provides a type-safe configuration system with:
- Config file discovery (explicit path, env var, project root, package default)
- Environment variable overrides with proper type conversion
- Validation with clear error messages
- No circular dependencies with logging

Environment variables use the format ``PYFILEHUB_SECTION__KEY``, for example
``PYFILEHUB_SECURITY__TOKEN_SECRET=change-me``.
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import Any, ClassVar, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource


# Use basic logging during config initialization (before custom logger is
# set up)
_basic_logger = logging.getLogger(__name__)

MAX_FILES_PER_BATCH = 10
TOKEN_LIFETIME = timedelta(days=7)
MIN_PASSWORD_LENGTH = 6
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


class ArtifactStorageSettings(BaseModel):
    """Settings for the on-disk artifact store."""
    base_dir: str = Field(default="uploads",
                          description="Root directory holding one sub-directory per user")


class StorageSettings(BaseModel):
    """Metadata database and artifact storage configuration."""
    database_url: str = Field(
        default="sqlite+aiosqlite:///pyfilehub.db",
        description="SQLAlchemy async connection string"
    )
    artifacts: ArtifactStorageSettings = Field(default_factory=ArtifactStorageSettings)


class UploadSettings(BaseModel):
    """Upload limits."""
    max_file_size_bytes: int = Field(
        default=DEFAULT_MAX_FILE_SIZE,
        ge=1,
        le=1024 * 1024 * 1024,
        description="Maximum size of a single uploaded file")


class APISettings(BaseModel):
    """API configuration."""
    host: str = Field(default="0.0.0.0", description="Host for uvicorn")
    port: int = Field(
        default=5000,
        ge=1,
        le=65535,
        description="Port for uvicorn")


class SecuritySettings(BaseModel):
    """Session token configuration."""
    token_secret: str | None = Field(
        default=None,
        description="Secret used to sign session tokens (required)")
    token_algorithm: Literal["HS256", "HS384", "HS512"] = Field(default="HS256")


class LoggingSettings(BaseModel):
    """Logging configuration (raw dict for logging.config.dictConfig)."""
    version: int = Field(default=1)
    disable_existing_loggers: bool = Field(default=False)
    formatters: dict[str, Any] = Field(default_factory=dict)
    handlers: dict[str, Any] = Field(default_factory=dict)
    root: dict[str, Any] = Field(default_factory=dict)
    loggers: dict[str, Any] = Field(default_factory=dict)

    model_config = {'extra': 'allow'}


class AppSettings(BaseSettings):
    """
    Main application settings.

    Priority (highest to lowest):
    1. Environment variables
    2. YAML file data (if loaded via from_yaml)
    3. Default values
    """

    storage: StorageSettings = Field(default_factory=StorageSettings)
    uploads: UploadSettings = Field(default_factory=UploadSettings)
    api: APISettings = Field(default_factory=APISettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="PYFILEHUB_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Holds YAML data while an instance is being built
    _temp_config_data: ClassVar[dict[str, Any] | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        class YamlSettingsSource(PydanticBaseSettingsSource):
            def get_field_value(
                    self, field: Any, field_name: str) -> tuple[Any, str, bool]:
                if cls._temp_config_data and field_name in cls._temp_config_data:
                    return cls._temp_config_data[field_name], field_name, False
                return None, field_name, False

            def __call__(self) -> dict[str, Any]:
                return cls._temp_config_data or {}

        return (
            env_settings,
            YamlSettingsSource(settings_cls),
            init_settings,
        )

    @classmethod
    def from_yaml(cls, config_path: str | None = None) -> AppSettings:
        """
        Load configuration from YAML file with fallback search strategy.

        Search order:
        1. PYFILEHUB_CONFIG_PATH environment variable (if set)
        2. ./config.yaml (project root)
        3. pyfilehub/config/config.yaml (package default)

        Args:
            config_path: Explicit path to config file (skips search if provided)

        Raises:
            FileNotFoundError: If no config file is found in any location
            ValueError: If config file has invalid structure or values
        """
        if config_path is None:
            config_path = cls._find_config_file()

        _basic_logger.info(f"Loading configuration from: {config_path}")

        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            _basic_logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(
                f"Configuration file not found: {config_path}\n"
                f"Tried search paths: {cls._get_search_paths()}"
            )
        except yaml.YAMLError as e:
            _basic_logger.error(f"Invalid YAML in config file: {e}")
            raise ValueError(
                f"Invalid YAML in configuration file {config_path}: {e}")

        cls._temp_config_data = config_data
        try:
            settings = cls()
            _basic_logger.info(
                "Configuration loaded and validated successfully")
            return settings
        except ValidationError as e:
            _basic_logger.error(f"Configuration validation failed: {e}")
            raise ValueError(f"Configuration validation failed:\n{e}")
        finally:
            cls._temp_config_data = None

    @staticmethod
    def _get_search_paths() -> list[str]:
        return [
            os.getenv("PYFILEHUB_CONFIG_PATH", ""),
            "./config.yaml",
            os.path.join(os.path.dirname(__file__), "config.yaml"),
        ]

    @classmethod
    def _find_config_file(cls) -> str:
        search_paths = cls._get_search_paths()

        for path in search_paths:
            if path and os.path.isfile(path):
                _basic_logger.debug(f"Found config file at: {path}")
                return path

        error_msg = (
            "No configuration file found. Searched in:\n" +
            "\n".join(f"  - {p}" for p in search_paths if p) +
            "\n\nPlease either:\n"
            "  1. Set PYFILEHUB_CONFIG_PATH environment variable\n"
            "  2. Place config.yaml in project root"
        )
        _basic_logger.error(error_msg)
        raise FileNotFoundError(error_msg)


class ConfigManager:
    """
    Singleton wrapper for AppSettings with convenience accessors.
    """

    _instance: ConfigManager | None = None
    _settings: AppSettings | None = None
    _config_path: str | None = None

    @classmethod
    def get_instance(cls) -> ConfigManager:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
        cls._settings = None
        cls._config_path = None

    def load(self, config_path: str | None = None) -> dict[str, Any]:
        """
        Load configuration from file.

        A second call without a path returns the cached configuration.
        """
        if self._settings is not None and config_path is None:
            return self._settings.model_dump()

        ConfigManager._config_path = config_path
        ConfigManager._settings = AppSettings.from_yaml(config_path)

        return self._settings.model_dump()

    @property
    def settings(self) -> AppSettings:
        if self._settings is None:
            self.load()
        return self._settings

    def get_config_path(self) -> str | None:
        return self._config_path

    @property
    def database_url(self) -> str:
        return self.settings.storage.database_url

    @property
    def artifacts_base_dir(self) -> str:
        return self.settings.storage.artifacts.base_dir

    @property
    def max_file_size_bytes(self) -> int:
        return self.settings.uploads.max_file_size_bytes

    @property
    def api_host(self) -> str:
        return self.settings.api.host

    @property
    def api_port(self) -> int:
        return self.settings.api.port

    @property
    def token_algorithm(self) -> str:
        return self.settings.security.token_algorithm

    @property
    def token_secret(self) -> str:
        """
        Secret used to sign session tokens.

        Raises:
            ValueError: If no secret is configured
        """
        secret = self.settings.security.token_secret
        if not secret:
            raise ValueError(
                "security.token_secret must be configured "
                "(set PYFILEHUB_SECURITY__TOKEN_SECRET)")
        return secret

    @property
    def logging_config(self) -> dict[str, Any]:
        return self.settings.logging.model_dump()


def get_config_manager() -> ConfigManager:
    """Get the ConfigManager singleton instance."""
    return ConfigManager.get_instance()


__all__ = [
    'ConfigManager',
    'AppSettings',
    'get_config_manager',
    'StorageSettings',
    'ArtifactStorageSettings',
    'UploadSettings',
    'APISettings',
    'SecuritySettings',
    'LoggingSettings',
    'MAX_FILES_PER_BATCH',
    'TOKEN_LIFETIME',
    'MIN_PASSWORD_LENGTH',
    'DEFAULT_MAX_FILE_SIZE',
]
