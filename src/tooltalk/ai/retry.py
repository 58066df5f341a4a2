"""Exponential-backoff retries around endpoint calls."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from tooltalk.ai.client import ModelEndpoint
from tooltalk.ai.models import ChatRequest, ChatResponse
from tooltalk.errors import RequestError
from tooltalk.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    initial_delay: float,
) -> T:
    """Run ``operation``, retrying retryable RequestErrors up to ``max_retries`` times.

    The delay doubles after every attempt. Any other error propagates immediately.
    """
    retries = 0
    delay = initial_delay
    while True:
        try:
            return await operation()
        except RequestError as e:
            if not e.retryable or retries >= max_retries:
                raise
            retries += 1
            logger.warning("request_retry", attempt=retries, delay=delay, error=str(e))
            await asyncio.sleep(delay)
            delay *= 2


class RetryingEndpoint(ModelEndpoint):
    """Wraps another endpoint so each ``send`` goes through :func:`with_retries`."""

    def __init__(self, inner: ModelEndpoint, max_retries: int = 3, initial_delay: float = 0.5):
        self._inner = inner
        self._max_retries = max_retries
        self._initial_delay = initial_delay

    async def send(self, request: ChatRequest) -> ChatResponse:
        return await with_retries(
            lambda: self._inner.send(request),
            max_retries=self._max_retries,
            initial_delay=self._initial_delay,
        )

    async def close(self) -> None:
        await self._inner.close()
