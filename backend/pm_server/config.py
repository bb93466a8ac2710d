"""
Configuration management for PM Server.

All configuration comes from environment variables (prefix ``PM_``) or an
optional ``.env`` file in the working directory. pydantic-settings handles
loading and type coercion.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set PM_DATABASE_PATH explicitly
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Document new settings in the README
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Server configuration loaded from environment."""

    # HTTP listener
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=9090, description="Bind port")

    # SQLite store
    database_path: str = Field(
        default="./data/project_manager.db",
        description="SQLite database file",
    )
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:4200"],
        description="Allowed CORS origins",
    )

    # Observability
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = {"env_prefix": "PM_", "env_file": ".env", "extra": "ignore"}

    def validate_settings(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"PM_PORT out of range: {self.port}")
        if self.busy_timeout_ms < 0:
            raise ValueError("PM_BUSY_TIMEOUT_MS must not be negative")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Invalid PM_LOG_LEVEL '{self.log_level}'")
        if self.log_format not in ("json", "text"):
            raise ValueError(f"Invalid PM_LOG_FORMAT '{self.log_format}'. Must be json or text")

        parent = Path(self.database_path).parent
        if not parent.exists():
            logger.warning(
                f"Database directory does not exist: {parent}. "
                "It will be created on startup."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "bind": f"{self.host}:{self.port}",
                "database_path": self.database_path,
                "wal_mode": self.wal_mode,
                "cors_origins": self.cors_origins,
                "log_level": self.log_level,
            },
        )
