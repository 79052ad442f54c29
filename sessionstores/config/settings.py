"""
Configuration management for session stores.

Settings are loaded with pydantic-settings from environment variables
(prefixed with SESSION_) and .env files. The ENVIRONMENT variable selects
an environment-specific .env file that overrides the base .env.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sessionstores.errors import ConfigurationError
from sessionstores.session.naming import is_valid_namespace, is_valid_sql_identifier


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class BackendType(str, Enum):
    """Available session store backends."""
    MEMORY = "memory"
    REDIS = "redis"
    SQL = "sql"
    MONGODB = "mongodb"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    Files are loaded in order, with later files overriding earlier ones.

    Args:
        environment: The target environment.

    Returns:
        Tuple of .env file paths to load.
    """
    return (".env", f".env.{environment.value}")


# Environment values that turn an optional interval off
_DISABLED_VALUES = frozenset({"", "none", "null", "off"})


class Settings(BaseSettings):
    """
    Session store settings loaded from environment variables.

    Every field maps to an environment variable with the SESSION_ prefix,
    e.g. SESSION_BACKEND=redis, SESSION_REDIS_URL=redis://localhost:6379/0.
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Backend selection
    backend: BackendType = Field(
        default=BackendType.MEMORY,
        description="Session store backend: memory, redis, sql or mongodb"
    )
    namespace: str = Field(
        default="sessions",
        description="Table, collection or key prefix holding sessions"
    )

    # Backend connections
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL"
    )
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy async database URL for the sql backend"
    )
    mongodb_url: Optional[str] = Field(
        default=None,
        description="MongoDB connection string"
    )
    mongodb_database: str = Field(
        default="sessions",
        description="MongoDB database holding the sessions collection"
    )
    memory_max_capacity: int = Field(
        default=10_000,
        ge=1,
        description="Maximum number of sessions kept by the memory backend"
    )

    # Store behaviour
    sweep_interval_seconds: Optional[float] = Field(
        default=60.0,
        gt=0,
        description=(
            "Seconds between expired-session sweeps; none, null, off or an "
            "empty value disables the sweeper"
        )
    )
    max_create_attempts: int = Field(
        default=16,
        ge=1,
        le=1000,
        description="Identifier attempts before create() gives up"
    )
    user_id_data_key: Optional[str] = Field(
        default=None,
        description="Session data key whose mapping holds user_id and user_agent (sql backend)"
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="sessionstores",
        description="Service name for OpenTelemetry traces"
    )

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Namespaces must be safe to splice into queries and keys."""
        v = v.strip()
        if not is_valid_namespace(v):
            raise ValueError(
                "namespace must be non-empty and contain only letters, digits, "
                "hyphens or underscores"
            )
        return v

    @field_validator("sweep_interval_seconds", mode="before")
    @classmethod
    def parse_disabled_sweep_interval(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in _DISABLED_VALUES:
            return None
        return v

    @field_validator("mongodb_database")
    @classmethod
    def validate_mongodb_database(cls, v: str) -> str:
        v = v.strip()
        if not is_valid_namespace(v):
            raise ValueError(
                "mongodb_database must contain only letters, digits, hyphens or underscores"
            )
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that redis_url uses a Redis scheme."""
        if v is None:
            return v
        v = v.strip()
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("redis_url must start with redis://, rediss:// or unix://")
        return v

    @field_validator("mongodb_url")
    @classmethod
    def validate_mongodb_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError("mongodb_url must start with mongodb:// or mongodb+srv://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @model_validator(mode="after")
    def validate_backend_config(self) -> "Settings":
        """Validate that the selected backend has what it needs to connect."""
        required = {
            BackendType.REDIS: ("redis_url", self.redis_url),
            BackendType.SQL: ("database_url", self.database_url),
            BackendType.MONGODB: ("mongodb_url", self.mongodb_url),
        }
        if self.backend in required:
            field_name, value = required[self.backend]
            # Development may fall back to local defaults
            if not value and self.environment != Environment.DEVELOPMENT:
                raise ValueError(
                    f"{field_name} is required when backend is '{self.backend.value}' "
                    "in non-development environments"
                )
        if self.backend == BackendType.SQL and not is_valid_sql_identifier(self.namespace):
            raise ValueError(
                "namespace must be a valid SQL identifier for the sql backend: start "
                "with a letter or underscore, then letters, digits, underscores or $"
            )
        return self


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Factory function to create Settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected
                    from the ENVIRONMENT variable.

    Returns:
        Settings: Validated settings for the specified environment.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()]
    if not existing_env_files:
        existing_env_files = list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_prefix="SESSION_",
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings(environment=environment)
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, 'errors'):
            for error in e.errors():
                field_name = '.'.join(str(loc) for loc in error.get('loc', [])) or "settings"
                error_type = error.get('type', '')
                error_msg = error.get('msg', str(error))

                if error_type == 'missing':
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    This is primarily useful for testing to allow reloading settings
    with different environment variables.
    """
    global _settings_cache
    _settings_cache = None
