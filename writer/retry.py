"""
Store access with a single local retry.

Repository failures are retried at most `retries` times and then surfaced as
PersistenceError. Typed core errors raised by a repository are never retried.
"""

import logging
from typing import Callable, TypeVar

from core.errors import IntelligenceError, PersistenceError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(operation: Callable[[], T], description: str, retries: int = 1) -> T:
    """
    Run a store operation, retrying on failure.

    Args:
        operation: Zero-argument callable performing the read or write
        description: Human-readable name used in logs and the error
        retries: Number of retries after the first attempt

    Returns:
        Result of the operation

    Raises:
        PersistenceError: If every attempt failed
    """
    attempts = retries + 1
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except IntelligenceError:
            raise
        except Exception as e:
            last_error = e
            logger.warning(f"{description} failed (attempt {attempt}/{attempts}): {e}")

    raise PersistenceError(
        f"{description} failed after {attempts} attempts: {last_error}",
        context={"operation": description, "attempts": attempts},
    ) from last_error
