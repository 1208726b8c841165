"""
settings_loader.py

Configuration management for the hclust clustering engine.
Loads and validates settings from YAML configuration with environment variable substitution.

Features:
- YAML configuration loading with validation
- Environment variable substitution (${VAR_NAME} syntax)
- Singleton pattern for global settings access
- Type-safe configuration with Pydantic models
- Built-in defaults when no configuration file is present
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from hclust.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "HCLUST_CONFIG"


# =============================================================================
# Configuration Models (Pydantic)
# =============================================================================

class ServiceSettings(BaseModel):
    """General settings."""
    name: str = Field(default="hclust", description="Service name used in log context")
    version: str = Field(default="1.0.0", description="Version")
    environment: str = Field(default="production", description="Environment (development, staging, production)")


class EngineSettings(BaseModel):
    """Agglomerative engine settings."""
    progress_interval: int = Field(default=100, ge=1, description="Report progress every N merges")
    max_memory_fraction: float = Field(default=0.8, gt=0.0, le=1.0, description="Fraction of available memory a run may use")
    large_dataset_warning: int = Field(default=5000, ge=1, description="Warn above this many samples (O(n^3) time)")


class CancellationSettings(BaseModel):
    """Stop-token store configuration."""
    backend: Literal["local", "redis"] = Field(default="local", description="Stop-token backend")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL for the redis backend")
    key_prefix: str = Field(default="hclust:stop:", description="Redis key prefix for stop tokens")
    token_ttl_seconds: int = Field(default=86400, ge=1, description="Stop token TTL in seconds")
    retry_attempts: int = Field(default=3, ge=1, description="Attempts per stop-token query")


class FileLoggingSettings(BaseModel):
    """File logging configuration."""
    enabled: bool = Field(default=False, description="Enable file logging")
    path: str = Field(default="logs/hclust.log", description="Log file path")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: Literal["json", "console"] = Field(default="console", description="Log format (json or console)")
    file: FileLoggingSettings = Field(default_factory=FileLoggingSettings)

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level


class Settings(BaseModel):
    """Root configuration model."""
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    cancellation: CancellationSettings = Field(default_factory=CancellationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# =============================================================================
# Configuration Manager (Singleton)
# =============================================================================

class ConfigManager:
    """
    Singleton configuration manager that loads and caches settings.

    Features:
    - Loads YAML configuration from file
    - Substitutes environment variables using ${VAR_NAME} syntax
    - Validates configuration using Pydantic models
    - Provides global access to settings
    """

    _instance: Optional['ConfigManager'] = None
    _settings: Optional[Settings] = None

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    @classmethod
    def load_config(cls, config_path: Optional[str] = None) -> Settings:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to configuration file. If None, searches the
                default locations and falls back to built-in defaults.

        Returns:
            Settings object with validated configuration

        Raises:
            ConfigurationError: If an explicit file is missing or the configuration is invalid
        """
        if cls._settings is not None and config_path is None:
            return cls._settings

        if config_path is None:
            possible_paths = [
                Path(os.getenv(CONFIG_PATH_ENV, "config/settings.yaml")),
                Path("config/settings.yaml"),
            ]

            config_path_obj = None
            for path in possible_paths:
                if path.exists():
                    config_path_obj = path
                    break

            if config_path_obj is None:
                logger.warning(
                    f"Configuration file not found in any of: {[str(p) for p in possible_paths]}. "
                    "Using defaults."
                )
                cls._settings = Settings()
                return cls._settings
        else:
            config_path_obj = Path(config_path)
            if not config_path_obj.exists():
                raise ConfigurationError(
                    f"Configuration file not found: {config_path}",
                    details={"path": str(config_path)},
                )

        logger.info(f"Loading configuration from: {config_path_obj}")

        try:
            with open(config_path_obj, 'r') as f:
                raw_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load YAML configuration: {e}")
            raise ConfigurationError(f"Invalid YAML configuration: {e}") from e

        config_dict = cls._substitute_env_vars(raw_config)

        try:
            cls._settings = Settings(**config_dict)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        logger.info("Configuration loaded and validated successfully")
        return cls._settings

    @classmethod
    def get_settings(cls) -> Settings:
        """
        Get cached settings. Loads from default path if not already loaded.

        Returns:
            Settings object
        """
        if cls._settings is None:
            cls.load_config()
        return cls._settings

    @classmethod
    def _substitute_env_vars(cls, config: Any) -> Any:
        """
        Recursively substitute environment variables in configuration.

        Supports ${VAR_NAME} and ${VAR_NAME:default_value} syntax.

        Args:
            config: Configuration dictionary or value

        Returns:
            Configuration with substituted values
        """
        if isinstance(config, dict):
            return {k: cls._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [cls._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

            def replace_var(match):
                var_name = match.group(1)
                default_value = match.group(2) if match.group(2) is not None else ""
                return os.getenv(var_name, default_value)

            return re.sub(pattern, replace_var, config)
        else:
            return config

    @classmethod
    def reset(cls) -> None:
        """Drop cached settings (used by tests and the CLI)."""
        cls._settings = None


# =============================================================================
# Convenience Functions
# =============================================================================

def get_settings() -> Settings:
    """
    Get application settings (convenience function).

    Returns:
        Settings object
    """
    return ConfigManager.get_settings()
