#!/usr/bin/env python3
import logging
import threading
from typing import Callable, Optional, Tuple, Type, TypeVar

from chain_errors import RetryCancelledError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_do(cancel_event: threading.Event, fn: Callable[[], T], max_retries: int, delay: float,
             retry_on: Tuple[Type[BaseException], ...] = (Exception,),
             description: Optional[str] = None) -> T:
    """Run fn up to max_retries + 1 times with a fixed, cancellable delay

    Cancellation is checked before every attempt and during every wait; an
    attempt already in flight is never interrupted. Exceptions outside
    retry_on propagate immediately. Raises RetryCancelledError or
    RetryExhaustedError (chained to the last failure).
    """
    label = description or getattr(fn, "__name__", "operation")
    last_error: Optional[BaseException] = None
    attempts = 0

    for i in range(max_retries + 1):
        if cancel_event.is_set():
            raise RetryCancelledError(attempts)

        attempts += 1
        try:
            return fn()
        except retry_on as e:
            last_error = e

        if i == max_retries:
            break

        logger.warning(
            f"{label} failed, retrying in {delay}s (retry {i + 1}/{max_retries}): {last_error}"
        )
        # Event.wait returns True as soon as the event is set
        if cancel_event.wait(delay):
            raise RetryCancelledError(attempts)

    raise RetryExhaustedError(attempts, max_retries, last_error) from last_error
