"""Bounded exponential backoff for network-dependent operations."""
import logging
import time
from typing import Callable, Iterator, Tuple, Type, TypeVar

from .errors import RetryExhausted

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 5.0
DEFAULT_BACKOFF_FACTOR = 2.0


def backoff_delays(attempts: int = DEFAULT_ATTEMPTS,
                   initial_delay: float = DEFAULT_INITIAL_DELAY,
                   factor: float = DEFAULT_BACKOFF_FACTOR) -> Iterator[float]:
    """Yield the sleep before each retry: one value less than the attempt count."""
    delay = initial_delay
    for _ in range(max(attempts - 1, 0)):
        yield delay
        delay *= factor


def retry_with_backoff(operation: Callable[[], T],
                       description: str,
                       logger: logging.Logger,
                       attempts: int = DEFAULT_ATTEMPTS,
                       initial_delay: float = DEFAULT_INITIAL_DELAY,
                       factor: float = DEFAULT_BACKOFF_FACTOR,
                       retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                       sleep: Callable[[float], None] = time.sleep) -> T:
    """Run ``operation`` until it succeeds or ``attempts`` are used up.

    Sleeps ``initial_delay`` after the first failure and multiplies the delay by
    ``factor`` after every further failure. No sleep follows the final attempt.

    Raises:
        RetryExhausted: every attempt raised one of ``retry_on``.
    """
    delays = backoff_delays(attempts, initial_delay, factor)
    last_error = None

    for attempt in range(1, attempts + 1):
        logger.info(f"Attempt {attempt}/{attempts}: {description}")
        try:
            return operation()
        except retry_on as e:
            last_error = e
            logger.warning(f"{description} failed on attempt {attempt}: {e}")

        if attempt < attempts:
            wait_time = next(delays)
            logger.info(f"Waiting {wait_time:g} seconds before retry...")
            sleep(wait_time)

    logger.error(f"{description} failed after {attempts} attempts")
    raise RetryExhausted(description, attempts, last_error)
