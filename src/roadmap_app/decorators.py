"""
Service Decorators
==================

Retry helpers shared by the roadmap services.
"""

import functools
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, Union

from sqlalchemy.orm.exc import StaleDataError

from .utils.logging_config import get_logger

logger = get_logger("decorators")

T = TypeVar('T')

ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


def retry_with_backoff(
    attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    retry_on: ExceptionTypes = StaleDataError,
    before_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Re-run a write that lost an optimistic-locking race.

    Args:
        attempts: Total number of calls, including the first
        base_delay: Sleep before the second call; doubled for each further call
        max_delay: Upper bound for a single sleep
        retry_on: Exception type(s) that mean "try again"; anything else propagates at once
        before_retry: Called with (attempt number, exception) before each new call,
            typically to roll back the failed session

    The last matching exception is re-raised once `attempts` calls have failed.

    Usage:
        @retry_with_backoff(attempts=5)
        def apply_vote(roadmap_id, voter):
            ...
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 1
            delay = base_delay
            while True:
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= attempts:
                        logger.error(f"{func.__name__} still conflicting after {attempts} attempt(s): {e}")
                        raise
                    logger.warning(f"{func.__name__} lost a concurrent update (attempt {attempt}/{attempts}); retrying")
                    if before_retry is not None:
                        before_retry(attempt, e)
                    if delay > 0:
                        time.sleep(min(delay, max_delay))
                    delay *= 2
                    attempt += 1

        return wrapper
    return decorator
