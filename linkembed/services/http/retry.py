# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Exponential-backoff retry around a single fetch attempt."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from linkembed.core.config import ServiceConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Non-success status (raise_for_status), timeouts, connection errors and
# redirect loops all derive from httpx.HTTPError
RETRYABLE_EXCEPTIONS = (httpx.HTTPError,)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"Fetch attempt {retry_state.attempt_number} failed: {exc!r}, "
        f"retrying in {wait:.1f}s"
    )


def build_retrying(
    config: ServiceConfig,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncRetrying:
    """
    Build the retry policy for one resolution.

    The first retry waits ``request_retry_wait`` seconds and every further
    retry multiplies the wait by ``request_retry_factor``. At most
    ``request_retry_count`` retries follow the initial attempt; the last
    failure is re-raised unchanged.

    Args:
        config: Service configuration
        sleep: Awaitable sleep used between attempts

    Returns:
        Configured tenacity AsyncRetrying instance
    """
    return AsyncRetrying(
        stop=stop_after_attempt(config.request_retry_count + 1),
        wait=wait_exponential(
            multiplier=config.request_retry_wait,
            exp_base=config.request_retry_factor,
        ),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )


async def execute_with_retry(
    func: Callable[[], Awaitable[T]],
    config: ServiceConfig,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``func`` under the retry policy of ``config``.

    ``func`` may be any callable returning an awaitable, e.g. a lambda
    wrapping a bound coroutine method; the awaitable is awaited inside each
    attempt.
    """
    async for attempt in build_retrying(config, sleep=sleep):
        with attempt:
            return await func()
