# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import time
import functools
from typing import Callable

from stratum.errors import StratumError


class RetryError(StratumError):
    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


def backoff_delay(attempt: int, *, delay: float, factor: float, max_delay: float) -> float:
    """Delay to wait after the given (1-based) failed attempt."""
    return min(delay * (factor ** (attempt - 1)), max_delay)


def retry(
    *,
    retries: int,
    delay: float,
    factor: float = 2.0,
    max_delay: float = 30.0,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    give_up_on: tuple[type[Exception], ...] = (),
    on_retry: Callable[[int, Exception, float], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator for idempotent operations, with exponential backoff.

    retries: total number of attempts
    delay: seconds to wait after the first failed attempt
    factor: multiplier applied to the delay after each further failure
    max_delay: upper bound for a single wait
    retry_on: exception types to retry
    give_up_on: exception types that are re-raised immediately
    on_retry: callback(attempt, exception, next_delay)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except give_up_on:
                    raise
                except retry_on as exc:
                    last_exc = exc
                    if attempt == retries:
                        break
                    wait = backoff_delay(attempt, delay=delay, factor=factor, max_delay=max_delay)
                    if on_retry:
                        on_retry(attempt, exc, wait)
                    sleep(wait)
            raise RetryError(
                f"{fn.__name__} failed after {retries} attempts: {last_exc}",
                attempts=retries,
            ) from last_exc
        return wrapper
    return decorator
