"""Tests for request spacing and quota backoff."""
import httpx
import pytest

from importer.errors import APIError, RateLimitExceededError
from importer.models import FetchConfig
from importer.services.api_client import HTTPAPIClient
from importer.services.rate_limit import RetryState, RateLimitedRequester, parse_retry_after

BASE = "https://api.vimeo.com"


def _scripted(*responses):
    """Transport answering with ``responses`` in order; records requests."""
    requests = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return queue.pop(0) if len(queue) > 1 else queue[0]

    return httpx.MockTransport(handler), requests


def _quota(**headers):
    return httpx.Response(429, json={"error": "Too many requests"}, headers=headers)


def _ok():
    return httpx.Response(
        200,
        json={"data": []},
        headers={"x-ratelimit-remaining": "99", "x-ratelimit-limit": "100"},
    )


class TestRetryState:
    def test_doubles_delay(self):
        state = RetryState(next_delay=2.0)
        waits = []
        for _ in range(3):
            wait, state = state.after_rejection(max_retries=5)
            waits.append(wait)
        assert waits == [2.0, 4.0, 8.0]
        assert state.attempt == 3

    def test_retry_after_wins(self):
        wait, state = RetryState(next_delay=2.0).after_rejection(5, retry_after=30)
        assert wait == 30
        assert state.next_delay == 4.0

    def test_ceiling(self):
        state = RetryState(attempt=5)
        with pytest.raises(RateLimitExceededError):
            state.after_rejection(max_retries=5)

    @pytest.mark.parametrize("value,expected", [
        ("7", 7.0),
        (" 0 ", 0.0),
        ("-3", 0.0),
        ("Wed, 21 Oct 2015 07:28:00 GMT", None),
        (None, None),
    ])
    def test_parse_retry_after(self, value, expected):
        assert parse_retry_after(value) == expected


class TestRateLimitedRequester:
    @pytest.mark.asyncio
    async def test_retries_quota_then_succeeds(self, fake_clock):
        transport, requests = _scripted(_quota(), _quota(), _quota(), _ok())
        reports = []
        async with HTTPAPIClient(BASE, token="t", transport=transport) as api:
            requester = RateLimitedRequester(
                api, FetchConfig(), sleep=fake_clock.sleep, clock=fake_clock,
                on_rate_limit=reports.append,
            )
            response = await requester.get("/me/videos")

        assert response.status_code == 200
        assert len(requests) == 4
        assert fake_clock.sleeps == [2.0, 4.0, 8.0]
        assert fake_clock.sleeps == sorted(fake_clock.sleeps)
        assert reports[0] == "Rate limited. Waiting 2s before retry 1/5..."
        assert requester.rate_limit_info == "API: 99/100 requests remaining"
        assert requests[0].headers["authorization"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_gives_up_after_ceiling(self, fake_clock):
        transport, requests = _scripted(_quota())
        async with HTTPAPIClient(BASE, transport=transport) as api:
            requester = RateLimitedRequester(
                api, FetchConfig(max_retries=3), sleep=fake_clock.sleep, clock=fake_clock
            )
            with pytest.raises(RateLimitExceededError, match="Rate limit exceeded"):
                await requester.get("/me/videos")

        assert len(requests) == 4
        assert fake_clock.sleeps == [2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_uses_retry_after(self, fake_clock):
        transport, _ = _scripted(_quota(**{"Retry-After": "7"}), _quota(), _ok())
        async with HTTPAPIClient(BASE, transport=transport) as api:
            requester = RateLimitedRequester(api, FetchConfig(), sleep=fake_clock.sleep, clock=fake_clock)
            await requester.get("/me/videos")

        assert fake_clock.sleeps == [7.0, 4.0]

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, fake_clock):
        transport, requests = _scripted(httpx.Response(500, json={"error": "Server error"}))
        async with HTTPAPIClient(BASE, transport=transport) as api:
            requester = RateLimitedRequester(api, FetchConfig(), sleep=fake_clock.sleep, clock=fake_clock)
            with pytest.raises(APIError) as exc_info:
                await requester.get("/me/videos")

        assert exc_info.value.status_code == 500
        assert len(requests) == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_spacing_between_requests(self, fake_clock):
        transport, _ = _scripted(_ok())
        async with HTTPAPIClient(BASE, transport=transport) as api:
            requester = RateLimitedRequester(
                api, FetchConfig(request_delay=0.5), sleep=fake_clock.sleep, clock=fake_clock
            )
            await requester.get("/me/videos")
            await requester.get("/me/videos?page=2")
            fake_clock.now += 1.0
            await requester.get("/me/videos?page=3")

        # Only the back-to-back pair waits
        assert fake_clock.sleeps == [0.5]
