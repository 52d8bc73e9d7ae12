"""Retry helper for callers of the repository layer.

The repository layer never retries on its own. The server wraps
``RepositoryClient.ensure_ready`` with it at startup, so a remote that is
briefly unreachable does not abort the process.
"""
import logging
from typing import Any, Callable, TypeVar

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A local RepositoryError will fail the same way again; only the network may recover
RETRYABLE_EXCEPTIONS = (TransportError,)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator factory: retry with exponential backoff, then re-raise.

    Works for plain functions and coroutine functions alike; tenacity
    picks the async retrier for coroutines.

    Args:
        max_attempts: Total attempts, including the first
        min_wait: Lower bound of the backoff (seconds)
        max_wait: Upper bound of the backoff (seconds)
        exceptions: Exception types worth another attempt
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def ensure_ready_with_retry(client: Any, max_attempts: int = 3) -> Any:
    """Clone or sync ``client``, retrying while the remote is unreachable.

    Returns:
        The SyncResult of the successful attempt
    """
    logger.info(
        f"Preparing {client.name} from {client.url} "
        f"({max_attempts} attempt{'s' if max_attempts != 1 else ''})"
    )
    return with_retry(max_attempts=max_attempts)(client.ensure_ready)()
