"""
Error types and the retry helper shared by the chat history store.
"""
import functools
import time
from typing import Any, Callable, Tuple, Type, Union

from .logger import get_logger

logger = get_logger(__name__)


class ConfigError(Exception):
    """Required configuration is missing or invalid. Fatal at startup."""
    pass


class StorageError(Exception):
    """Base exception for append/read/delete failures surfaced to callers."""
    pass


class PersistenceError(StorageError):
    """The persistence engine rejected the operation."""
    pass


class PersistenceUnavailable(StorageError):
    """Connection failure or timeout talking to the persistence engine.

    Fatal during startup, retryable at runtime.
    """
    pass


class StatisticsUnavailable(StorageError):
    """Native storage statistics are not supported by the backend."""
    pass


class ModelError(Exception):
    """The generative model call failed or returned no usable content."""
    pass


def retry(
    max_attempts: int = 3,
    delay: float = 0.2,
    backoff: float = 2.0,
    exceptions: Union[Type[Exception], Tuple[Type[Exception], ...]] = PersistenceUnavailable
) -> Callable:
    """Decorator to retry a function on failure."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            current_delay = delay

            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    if attempt >= max_attempts:
                        logger.error(f"Final retry attempt failed for {func.__name__}: {str(e)}")
                        raise

                    logger.warning(f"Attempt {attempt} failed for {func.__name__}: {str(e)}")
                    logger.info(f"Retrying in {current_delay} seconds...")
                    time.sleep(current_delay)
                    current_delay *= backoff
        return wrapper
    return decorator
