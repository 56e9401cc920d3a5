"""
Rate-limited GET requests for quota-bound APIs.

Two rules:
1. Consecutive requests start at least ``request_delay`` seconds apart.
2. HTTP 429 responses are retried with the server's Retry-After, or a
   doubling delay, up to ``max_retries`` times.
"""
import asyncio
from dataclasses import dataclass
import logging
import time
from typing import Awaitable, Callable, Optional, Tuple

import httpx

from ..errors import RateLimitExceededError
from ..models import FetchConfig
from .api_client import HTTPAPIClient

logger = logging.getLogger(__name__)

QUOTA_EXCEEDED = 429
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a few minutes and try again."


@dataclass(frozen=True)
class RetryState:
    """Backoff position carried from one attempt to the next."""
    attempt: int = 0
    next_delay: float = 2.0

    def after_rejection(
        self,
        max_retries: int,
        retry_after: Optional[float] = None,
    ) -> Tuple[float, "RetryState"]:
        """
        Account for one quota rejection.

        Returns:
            (seconds to wait, state for the next attempt)

        Raises:
            RateLimitExceededError: retry ceiling exhausted
        """
        attempt = self.attempt + 1
        if attempt > max_retries:
            raise RateLimitExceededError(RATE_LIMIT_MESSAGE)
        wait = retry_after if retry_after is not None else self.next_delay
        return wait, RetryState(attempt=attempt, next_delay=self.next_delay * 2)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in seconds; HTTP-date values are ignored."""
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except (AttributeError, ValueError):
        return None
    return float(max(seconds, 0))


class RateLimitedRequester:
    """
    Sequential GET helper enforcing request spacing and quota backoff.

    Usage:
        async with HTTPAPIClient(base, token=token) as api:
            requester = RateLimitedRequester(api, FetchConfig())
            response = await requester.get("/me/videos")
    """

    def __init__(
        self,
        api: HTTPAPIClient,
        config: Optional[FetchConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_rate_limit: Optional[Callable[[str], None]] = None,
    ):
        self._api = api
        self._config = config or FetchConfig()
        self._sleep = sleep
        self._clock = clock
        self._on_rate_limit = on_rate_limit
        self._last_request_start: Optional[float] = None
        self.rate_limit_info: str = ""

    async def _throttle(self) -> None:
        if self._last_request_start is not None:
            elapsed = self._clock() - self._last_request_start
            if elapsed < self._config.request_delay:
                await self._sleep(self._config.request_delay - elapsed)
        self._last_request_start = self._clock()

    def _report(self, info: str) -> None:
        self.rate_limit_info = info
        if self._on_rate_limit:
            self._on_rate_limit(info)

    async def get(self, url: str) -> httpx.Response:
        """
        GET ``url``; 429 is retried, any other failure propagates at once.

        Raises:
            RateLimitExceededError: still rejected after max_retries retries
            APIError: any other rejected request
        """
        state = RetryState(next_delay=self._config.initial_retry_delay)

        while True:
            await self._throttle()
            response = await self._api.client.get(url)

            if response.status_code == QUOTA_EXCEEDED:
                retry_after = parse_retry_after(response.headers.get("retry-after"))
                wait, state = state.after_rejection(self._config.max_retries, retry_after)
                logger.warning(
                    "Rate limited on %s, retry %d/%d in %.1fs",
                    url, state.attempt, self._config.max_retries, wait,
                )
                self._report(
                    f"Rate limited. Waiting {wait:.0f}s before retry "
                    f"{state.attempt}/{self._config.max_retries}..."
                )
                await self._sleep(wait)
                continue

            HTTPAPIClient.raise_for_status(response)

            remaining = response.headers.get("x-ratelimit-remaining")
            limit = response.headers.get("x-ratelimit-limit")
            if remaining and limit:
                self._report(f"API: {remaining}/{limit} requests remaining")
            return response
