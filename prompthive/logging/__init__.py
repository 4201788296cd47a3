"""
Logging infrastructure for PromptHive.

Provides component-bound loguru loggers and an operation-tracking decorator.
"""

from .logger import (
    PromptHiveLogger,
    get_component_logger,
    initialize_logging,
    get_logger_instance,
)

from .decorators import track_operation

__all__ = [
    # Logger
    "PromptHiveLogger",
    "get_component_logger",
    "initialize_logging",
    "get_logger_instance",
    # Decorators
    "track_operation",
]
