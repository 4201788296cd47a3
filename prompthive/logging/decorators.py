"""
Decorators for automatic logging of versioning and sync operations.
"""

import functools
import time
from typing import Any, Callable

from .logger import get_component_logger


def track_operation(operation: str, component: str = "version_control") -> Callable:
    """
    Decorator to track a repository or sync operation.

    Logs start and completion with elapsed time at DEBUG, and failures with
    the error type at ERROR (non-retryable) or WARNING (retryable). The
    exception is re-raised unchanged.

    Args:
        operation: Operation name (e.g., "rollback", "push")
        component: Component the operation belongs to

    Example:
        >>> @track_operation("push", component="sync")
        ... def push(self, artifact: str):
        ...     ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            # Extras are bound, not passed as kwargs, so braces in messages are literal
            log = get_component_logger(component).bind(
                operation=operation, function=func.__name__
            )
            start_time = time.perf_counter()
            log.debug(f"{operation} started")

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                level = "warning" if getattr(e, "retryable", False) else "error"
                failed = log.bind(error_type=type(e).__name__, elapsed_ms=elapsed_ms)
                getattr(failed, level)(f"{operation} failed: {e}")
                raise

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            log.bind(elapsed_ms=elapsed_ms).debug(f"{operation} finished in {elapsed_ms:.1f}ms")
            return result

        return wrapper

    return decorator
