from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .exceptions import TransientError

SleepFn = Callable[[float], Awaitable[Any]]


def transient_retrying(
    max_attempts: int = 3,
    base_wait: float = 2.0,
    max_wait: float = 60.0,
    *,
    sleep: Optional[SleepFn] = None,
    logger: Optional[logging.Logger] = None,
) -> AsyncRetrying:
    """
    Build an async retry loop for transient errors with exponential backoff.

    The wait before retry ``n`` is ``base_wait * 2 ** (n - 1)`` seconds capped at
    ``max_wait``, so the delays double between attempts. Non-transient errors
    and the final transient error are re-raised unchanged.

    Args:
        max_attempts: Total attempts including the first call (default: 3)
        base_wait: Delay in seconds before the first retry (default: 2.0)
        max_wait: Upper bound for a single delay (default: 60.0)
        sleep: Awaitable sleep function, injectable for tests
        logger: Logger receiving a warning before each sleep
    """
    return AsyncRetrying(
        sleep=sleep or asyncio.sleep,
        stop=stop_after_attempt(max(int(max_attempts), 1)),
        wait=wait_exponential(multiplier=base_wait, max=max_wait, exp_base=2),
        retry=retry_if_exception_type(TransientError),
        before_sleep=before_sleep_log(
            logger or logging.getLogger(__name__), logging.WARNING
        ),
        reraise=True,
    )
