"""
Configuration management for PromptHive.

This module provides centralized configuration for all system components:
- Local storage location and author identity
- Remote registry connection and retry policy
- Artifact locking
- Diff presentation
- Logging settings
"""

import os
from pathlib import Path
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


def _default_author() -> str:
    return os.getenv("PROMPTHIVE_AUTHOR") or os.getenv("USER") or "prompthive"


class StorageConfig(BaseModel):
    """Configuration for local storage."""

    base_dir: str = Field(
        default="~/.prompthive",
        description="Root directory holding prompts, versions, objects and locks",
    )
    author: str = Field(
        default_factory=_default_author,
        description="Author recorded on new version entries",
    )

    @property
    def base_path(self) -> Path:
        """Get absolute path to the base directory."""
        return Path(self.base_dir).expanduser().resolve()


class RegistryConfig(BaseModel):
    """Configuration for the remote prompt registry."""

    url: str = Field(
        default="https://registry.prompthive.sh", description="Registry base URL"
    )
    api_key: str = Field(
        default_factory=lambda: os.getenv("PROMPTHIVE_API_KEY", ""),
        description="API key sent as X-API-Key",
    )
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    max_retries: int = Field(
        default=3, ge=1, description="Attempts for a transport call before giving up"
    )
    backoff_seconds: float = Field(
        default=0.5, ge=0.0, description="Initial exponential backoff between attempts"
    )


class LockConfig(BaseModel):
    """Configuration for per-artifact locking."""

    timeout: float = Field(
        default=5.0, ge=0.0, description="Seconds to wait for an artifact lock"
    )


class DiffConfig(BaseModel):
    """Configuration for diff presentation."""

    context_lines: int = Field(
        default=3, ge=0, description="Unchanged lines shown around each change"
    )
    column_width: int = Field(
        default=40, ge=8, description="Column width for side-by-side diffs"
    )


class LogConfig(BaseModel):
    """Configuration for logging system."""

    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )
    rotation: str = Field(default="10 MB", description="Log file rotation size")
    retention: str = Field(default="1 month", description="Log file retention period")
    log_dir: str = Field(
        default="~/.prompthive/logs", description="Directory for log files"
    )
    enable_file_logging: bool = Field(
        default=False, description="Whether to enable file logging"
    )
    enable_console_logging: bool = Field(
        default=True, description="Whether to enable console logging"
    )

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir).expanduser()


class Config(BaseModel):
    """Main configuration object for PromptHive."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    diff: DiffConfig = Field(default_factory=DiffConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        base_dir = os.getenv("PROMPTHIVE_BASE_DIR", "~/.prompthive")
        return cls(
            storage=StorageConfig(base_dir=base_dir, author=_default_author()),
            registry=RegistryConfig(
                url=os.getenv("PROMPTHIVE_REGISTRY_URL", "https://registry.prompthive.sh"),
                api_key=os.getenv("PROMPTHIVE_API_KEY", ""),
                timeout=float(os.getenv("PROMPTHIVE_REGISTRY_TIMEOUT", "30")),
                max_retries=int(os.getenv("PROMPTHIVE_MAX_RETRIES", "3")),
                backoff_seconds=float(os.getenv("PROMPTHIVE_BACKOFF_SECONDS", "0.5")),
            ),
            lock=LockConfig(timeout=float(os.getenv("PROMPTHIVE_LOCK_TIMEOUT", "5.0"))),
            diff=DiffConfig(
                context_lines=int(os.getenv("PROMPTHIVE_DIFF_CONTEXT", "3")),
                column_width=int(os.getenv("PROMPTHIVE_DIFF_WIDTH", "40")),
            ),
            logging=LogConfig(
                level=cast(
                    Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                    os.getenv("PROMPTHIVE_LOG_LEVEL", "WARNING"),
                ),
                log_dir=os.getenv("PROMPTHIVE_LOG_DIR", str(Path(base_dir) / "logs")),
                enable_file_logging=os.getenv("PROMPTHIVE_LOG_FILES", "0") == "1",
            ),
        )


# Global configuration instance
config = Config.from_env()
