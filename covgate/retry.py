"""Bounded exponential backoff with cooperative cancellation.

Usage:
    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    body = call_with_retry(lambda: client.get_bytes(url), policy,
                           cancel=cancel_event, description="fetch baseline")
"""

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from covgate.client import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunCancelled(Exception):
    """Raised when the run is cancelled between two attempts."""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter > 0.0 and delay > 0.0:
            delta = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-delta, delta))
        return delay


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    cancel: Optional[threading.Event] = None,
    retry_on: tuple[type[BaseException], ...] = (TransientError,),
    description: str = "operation",
    wait: Optional[Callable[[float], None]] = None,
) -> T:
    """Call *func* until it succeeds or ``policy.max_attempts`` is reached.

    Only exceptions in *retry_on* are retried; anything else propagates at
    once. The last retryable exception is re-raised once attempts run out.
    *wait* replaces the inter-attempt pause (tests pass a no-op).

    Raises:
        RunCancelled: *cancel* was set before an attempt or during a pause.
    """
    attempts = max(1, policy.max_attempts)
    attempt = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise RunCancelled(f"Cancelled before {description}")
        attempt += 1
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts:
                logger.error("%s failed after %d attempt(s): %s", description, attempt, exc)
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                description, attempt, attempts, exc, delay,
            )
            _pause(delay, cancel, wait)
            if cancel is not None and cancel.is_set():
                raise RunCancelled(f"Cancelled while retrying {description}") from exc


def _pause(delay: float, cancel: Optional[threading.Event], wait: Optional[Callable[[float], None]]) -> None:
    if wait is not None:
        wait(delay)
    elif cancel is not None:
        # Returns early as soon as the event is set.
        cancel.wait(delay)
    else:
        time.sleep(delay)
