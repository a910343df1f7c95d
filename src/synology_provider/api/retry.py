# Copyright (c) 2026, Renaud Allard <renaud@allard.it>
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

"""Transient transport failure classification and exponential backoff.

Only connection-level failures and HTTP 5xx responses are retried. HTTP 4xx
and DSM envelope errors are permanent from the transport's point of view.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_LIMIT = 5

HTTPX_RETRYABLE = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
    httpx.RemoteProtocolError,
)


def is_retryable(exc: BaseException) -> bool:
    """Check if an httpx failure is transient."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, HTTPX_RETRYABLE)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential delay for ``attempt`` (0-based) with +/-50% jitter."""
    delay = min(base_delay * (2**attempt), max_delay)
    return delay * (0.5 + random.random())


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_RETRY_LIMIT,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``coro_factory()`` retrying transient failures.

    Args:
        coro_factory: Creates a fresh coroutine for each attempt
        max_retries: Retries after the first attempt
        base_delay: Initial delay in seconds
        max_delay: Upper bound for a single delay
        sleep: Awaitable sleep, replaceable in tests

    Non-retryable exceptions propagate immediately; the last transient
    one propagates once the budget is exhausted.
    """
    attempt = 0
    while True:
        try:
            return await coro_factory()
        except (httpx.HTTPError, httpx.StreamError) as exc:
            if not is_retryable(exc):
                raise
            if attempt >= max_retries:
                log.error("Giving up after %d retries: %s", attempt, exc)
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            log.debug(
                "Transient failure (%s), retry %d/%d in %.2fs",
                type(exc).__name__,
                attempt + 1,
                max_retries,
                delay,
            )
            attempt += 1
            await sleep(delay)
