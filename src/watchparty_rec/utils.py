"""Utility functions and decorators for watchparty_rec."""

import asyncio
import logging
import random
import string
import time
import uuid
from functools import wraps
from typing import TypeVar, Callable

from .config import ROOM_CODE_LETTERS, ROOM_CODE_DIGITS

logger = logging.getLogger(__name__)

T = TypeVar('T')


def async_retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Async decorator that retries a coroutine with exponential backoff on failure.

    Args:
        max_retries: Maximum number of attempts (including the first one)
        initial_delay: Initial delay in seconds before first retry
        backoff_factor: Multiplier for delay between retries (exponential backoff)
        exceptions: Tuple of exception types to catch and retry

    Exceptions outside ``exceptions`` propagate immediately. When every
    attempt fails, the last exception is re-raised.

    Example:
        @async_retry_with_backoff(max_retries=3, initial_delay=0.5)
        async def fetch_page():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        logger.warning(
                            f"{func.__name__} failed (attempt {attempt + 1}/{max_retries}): {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                        delay *= backoff_factor
                    else:
                        logger.error(
                            f"{func.__name__} failed after {max_retries} attempts: {e}"
                        )

            raise last_exception

        return wrapper
    return decorator


def generate_room_code() -> str:
    """Room code of 3 uppercase letters followed by 3 digits, e.g. ``ABC123``."""
    letters = "".join(random.choice(string.ascii_uppercase) for _ in range(ROOM_CODE_LETTERS))
    digits = "".join(random.choice(string.digits) for _ in range(ROOM_CODE_DIGITS))
    return letters + digits


def generate_participant_id() -> str:
    return f"participant_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
