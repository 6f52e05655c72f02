"""
Retry and rate limiting helpers shared by every network call.

:func:`retry` re-runs a zero-argument callable with a linearly growing
delay (``delay * attempt``) and re-raises the last error once the attempts
are exhausted.  Credential and configuration problems, as well as 4xx
responses other than 429, are raised immediately because repeating them
cannot succeed.  :class:`RateLimiter` spaces requests so that no more than
``rpm`` are dispatched per minute.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

import requests

from cms_sync.utils.errors import AuthenticationError, ConfigurationError
from cms_sync.utils.logger import log_message

T = TypeVar("T")


class RateLimiter:
    """
    Simple time-based rate limiter.  Ensures that no more than ``rpm``
    requests are dispatched per minute.
    """

    def __init__(self, rpm: int = 120) -> None:
        self.rpm = max(1, rpm)
        self.interval = 60.0 / float(self.rpm)
        self._last = 0.0

    def wait(self, time_fn: Callable[[], float] = time.time, sleep_fn: Callable[[float], None] = time.sleep) -> None:
        now = time_fn()
        dt = now - self._last
        if dt < self.interval:
            sleep_fn(self.interval - dt)
        self._last = time_fn()


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` when repeating the failed call may succeed."""
    if isinstance(exc, (AuthenticationError, ConfigurationError)):
        return False
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        if response is None:
            return True
        status = response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (requests.RequestException, OSError))


def retry(
    fn: Callable[[], T],
    *,
    max_retries: int = 3,
    delay: float = 1.0,
    label: str = "request",
    should_retry: Callable[[BaseException], bool] = is_retryable,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> T:
    """
    Execute ``fn`` up to ``max_retries`` times.

    :param fn: A zero-argument callable performing one attempt.
    :param max_retries: Total number of attempts (at least one).
    :param delay: Base delay in seconds; attempt ``n`` waits ``delay * n``.
    :param label: Operation name used in log messages.
    :param should_retry: Predicate deciding whether an error is transient.
    :param sleep_fn: Injected for tests.
    :return: Whatever ``fn`` returns on its first successful attempt.
    :raises Exception: the last error raised by ``fn``.
    """
    attempts = max(1, int(max_retries))
    attempt = 1
    while True:
        try:
            return fn()
        except Exception as exc:
            if attempt >= attempts or not should_retry(exc):
                if attempt > 1:
                    log_message(f"{label} failed after {attempt} attempts: {exc}", level="ERROR")
                raise
            wait = delay * attempt
            log_message(
                f"{label} failed (attempt {attempt}/{attempts}), retrying in {wait:.1f}s: {exc}",
                level="WARNING",
            )
            sleep_fn(wait)
            attempt += 1
