"""
Configuration management for the device database.

Uses Pydantic Settings for environment variable validation and type safety.
"""

import logging
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class StoreConfig(BaseSettings):
    """Device store configuration."""

    db_path: str = Field(
        default="/var/lib/udevdb/udev.db",
        description="Path to the backing database file (persistent mode only)"
    )
    file_mode: int = Field(
        default=0o644,
        ge=0,
        le=0o7777,
        description="Permission bits applied when the database file is created"
    )
    create_dirs: bool = Field(
        default=True,
        description="Create missing parent directories of db_path on open"
    )
    prune_stale_entries: bool = Field(
        default=True,
        description="Remove bus/class/sysfs entries left behind when a device is re-added with new identities"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v

    class Config:
        env_prefix = "UDEVDB_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


def setup_logging(log_level: str) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


# Global config instance
_config: Optional[StoreConfig] = None


def get_config() -> StoreConfig:
    """
    Get the global configuration instance.

    Lazily loads configuration on first access.

    Returns:
        StoreConfig: The global configuration instance
    """
    global _config
    if _config is None:
        _config = StoreConfig()
    return _config


def reload_config() -> StoreConfig:
    """
    Reload configuration from environment variables.

    Useful for testing or when environment changes.

    Returns:
        StoreConfig: The reloaded configuration instance
    """
    global _config
    _config = None
    return get_config()
