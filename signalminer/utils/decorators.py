import functools
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


def fail_open(fallback: Callable[..., Any]):
    """
    Catch any exception raised by the wrapped method, log it and return
    fallback(error, *args, **kwargs) instead.

    Used on analyzer entry points whose callers must always receive a value.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.error(f"{func.__qualname__} failed: {e}")
                return fallback(e, *args, **kwargs)

        return wrapper

    return decorator
