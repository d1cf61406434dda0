"""
Configuration management for the tick job runner.
Loads settings from an environment file and provides typed access.
"""

from pathlib import Path
from typing import Optional, Union

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.exceptions import ConfigurationError

ASYNC_POSTGRES_SCHEME = "postgresql+asyncpg://"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = Field(default="development", description="Runtime environment")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode (echoes SQL)")

    # Database Configuration
    database_url: str = Field(..., description="Relational store connection URL")
    db_pool_size: int = Field(default=10, description="Persistent connections kept in the pool")
    db_max_overflow: int = Field(
        default=20, description="Extra connections allowed above the pool size"
    )
    db_pool_timeout: int = Field(
        default=30, description="Seconds to wait for a pooled connection"
    )

    # Aggregation Configuration
    aggregation_concurrency: Optional[int] = Field(
        default=None,
        description="Tickers aggregated at once (defaults to the pool capacity)",
    )
    strict_ticker_failures: bool = Field(
        default=False,
        description="Fail the job when any single ticker aggregation fails",
    )

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Route plain PostgreSQL URLs through the asyncpg driver."""
        v = v.strip()
        if not v:
            raise ValueError("database_url must not be empty")
        for prefix in ("postgres://", "postgresql://"):
            if v.startswith(prefix):
                return ASYNC_POSTGRES_SCHEME + v[len(prefix):]
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Validate log level name."""
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("db_pool_size", "db_max_overflow", "db_pool_timeout")
    @classmethod
    def check_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("aggregation_concurrency")
    @classmethod
    def check_concurrency(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("aggregation_concurrency must be at least 1")
        return v

    @property
    def pool_capacity(self) -> int:
        """Maximum number of connections the pool hands out at once."""
        return max(self.db_pool_size + self.db_max_overflow, 1)

    @property
    def effective_concurrency(self) -> int:
        """Number of per-ticker units allowed to hold a connection."""
        if self.aggregation_concurrency is None:
            return self.pool_capacity
        return self.aggregation_concurrency

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


def load_settings(env_file: Union[str, Path]) -> Settings:
    """
    Load settings from an environment file.

    Values already present in the process environment take precedence over
    the file, as with any dotenv loader.

    Args:
        env_file: Path to the dotenv file

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the file is missing or a value is invalid
    """
    path = Path(env_file)
    if not path.is_file():
        raise ConfigurationError(
            f"Environment file not found: {path}", details={"env_file": str(path)}
        )

    try:
        return Settings(_env_file=path)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration in {path}: {e}", details={"env_file": str(path)}
        ) from e
