"""
Logging infrastructure for PromptHive.

Provides structured logging with:
- Component binding (``version_control``, ``sync``, ``cli``)
- Separate rotating files for versioning and sync activity
- An errors-only log
"""

import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger


class PromptHiveLogger:
    """
    Logger setup for PromptHive.

    Replaces loguru's default handler with a console handler and, optionally,
    rotating file handlers filtered by component.
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        rotation: str = "10 MB",
        retention: str = "1 month",
        level: str = "WARNING",
        format_string: Optional[str] = None,
        enable_file_logging: bool = True,
        enable_console_logging: bool = True,
    ):
        """
        Initialize the PromptHive logger.

        Args:
            log_dir: Directory for log files
            rotation: When to rotate log files
            retention: How long to keep old logs
            level: Default log level
            format_string: Custom format string
            enable_file_logging: Whether to log to files
            enable_console_logging: Whether to log to console
        """
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.rotation = rotation
        self.retention = retention
        self.level = level

        self.format_string = format_string or (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[component]}</cyan> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

        logger.remove()
        logger.configure(extra={"component": "system"})

        if enable_console_logging:
            logger.add(
                sys.stderr,
                format=self.format_string,
                level=level,
                colorize=True,
            )

        if enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._add_file_handlers()

        self.logger = logger.bind(component="system")

    def _add_file_handlers(self) -> None:
        """Add file handlers for all activity, each component, and errors."""

        logger.add(
            self.log_dir / "prompthive.log",
            format=self.format_string,
            level=self.level,
            rotation=self.rotation,
            retention=self.retention,
            compression="zip",
        )

        logger.add(
            self.log_dir / "versioning.log",
            format=self.format_string,
            level="DEBUG",
            rotation=self.rotation,
            retention=self.retention,
            compression="zip",
            filter=lambda record: record["extra"].get("component") == "version_control",
        )

        logger.add(
            self.log_dir / "sync.log",
            format=self.format_string,
            level="DEBUG",
            rotation=self.rotation,
            retention=self.retention,
            compression="zip",
            filter=lambda record: record["extra"].get("component") == "sync",
        )

        logger.add(
            self.log_dir / "errors.log",
            format=self.format_string,
            level="ERROR",
            rotation=self.rotation,
            retention=self.retention,
            compression="zip",
        )

    def get_logger(self, component: str) -> Any:
        """Get a logger bound to a specific component."""
        return logger.bind(component=component)


def get_component_logger(component: str = "system") -> Any:
    """
    Get a component-specific logger.

    Example:
        >>> log = get_component_logger("sync")
        >>> log.info("Pushed 2 entries", artifact="greeting")
    """
    return logger.bind(component=component)


# Global logger instance
_logger: Optional[PromptHiveLogger] = None


def initialize_logging(
    log_dir: Optional[Path] = None, level: str = "WARNING", **kwargs: Any
) -> PromptHiveLogger:
    """
    Initialize the PromptHive logging system.

    This should be called once at application startup.

    Args:
        log_dir: Directory for log files
        level: Default log level
        **kwargs: Additional configuration for PromptHiveLogger

    Returns:
        Configured PromptHiveLogger instance
    """
    global _logger
    _logger = PromptHiveLogger(log_dir=log_dir, level=level, **kwargs)
    return _logger


def get_logger_instance() -> Optional[PromptHiveLogger]:
    """Get the global logger instance."""
    return _logger
