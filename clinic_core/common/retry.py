# clinic_core/common/retry.py
from __future__ import annotations

import functools
import logging
import random
import time
from typing import Callable, TypeVar

from django.conf import settings

from clinic_core.common.api.exceptions import ConcurrencyError, PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (ConcurrencyError, PersistenceError)


def _billing_setting(name: str, default):
    return getattr(settings, "BILLING", {}).get(name, default)


def run_with_retry(
    fn: Callable[[], T],
    *,
    attempts: int | None = None,
    base_delay: float | None = None,
    timeout: float | None = None,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run `fn` and retry it on contention/persistence failures.

    - Only ConcurrencyError and PersistenceError are retried. Validation and
      state errors propagate on the first attempt.
    - Exponential backoff with jitter between attempts.
    - `timeout` (seconds) bounds the total time spent; once exceeded the last
      retryable error is raised even if attempts remain.
    """
    max_attempts = int(attempts or _billing_setting("RETRY_ATTEMPTS", 3))
    delay0 = float(base_delay if base_delay is not None else _billing_setting("RETRY_BASE_DELAY", 0.05))

    start = time.monotonic()
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except RETRYABLE_ERRORS as exc:
            elapsed = time.monotonic() - start
            if attempt >= max_attempts or (timeout is not None and elapsed >= timeout):
                logger.error(
                    "%s failed after %s attempt(s): %s",
                    label,
                    attempt,
                    exc.__class__.__name__,
                )
                raise

            delay = delay0 * (2 ** (attempt - 1))
            jitter = random.uniform(0, delay * 0.1)
            if timeout is not None:
                delay = min(delay + jitter, max(timeout - elapsed, 0))
            else:
                delay = delay + jitter
            logger.warning(
                "%s hit %s, retrying (attempt %s/%s, delay %.3fs)",
                label,
                exc.__class__.__name__,
                attempt,
                max_attempts,
                delay,
            )
            sleep(delay)


def retry_on_contention(fn: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator form of run_with_retry. The wrapped callable accepts an optional
    `timeout=` keyword that is consumed here.

    Must wrap the *outside* of transaction.atomic so each attempt runs in a
    fresh transaction.
    """

    @functools.wraps(fn)
    def wrapper(*args, timeout: float | None = None, **kwargs):
        return run_with_retry(
            lambda: fn(*args, **kwargs),
            timeout=timeout,
            label=fn.__qualname__,
        )

    return wrapper
