from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from modelgate.core.errors import RateLimitError, TransportError, UpstreamTimeoutError, VendorError
from modelgate.domain.chat import ChatMessage, CompletionRequest
from modelgate.providers.retry import RetryPolicy, parse_retry_after

OK_BODY = {
    "id": "chatcmpl-1",
    "model": "gpt-3.5-turbo",
    "choices": [{"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": "hello"}}],
    "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3},
}


def _request() -> CompletionRequest:
    return CompletionRequest(model="gpt-3.5-turbo", messages=[ChatMessage(role="user", content="hi")])


@pytest.mark.asyncio
async def test_rate_limit_waits_retry_after_then_succeeds(make_provider, sleeps) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(429, headers={"Retry-After": "2"}, json={"error": "slow down"})
        return httpx.Response(200, json=OK_BODY)

    async with make_provider("openai", handler) as adapter:
        resp = await adapter.chat(_request())

    assert resp.choices[0].message.content == "hello"
    assert calls == 2
    assert sleeps.calls == [2.0]


@pytest.mark.asyncio
async def test_rate_limit_without_retry_after_uses_linear_delay(make_provider, sleeps) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(429)
        return httpx.Response(200, json=OK_BODY)

    async with make_provider("openai", handler) as adapter:
        await adapter.chat(_request())

    assert sleeps.calls == [1.0]


@pytest.mark.asyncio
async def test_rate_limit_exhausts_attempts(make_provider, sleeps) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    async with make_provider("openai", handler) as adapter:
        with pytest.raises(RateLimitError):
            await adapter.chat(_request())

    assert sleeps.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_network_failures_back_off_exponentially(make_provider, sleeps) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("connection refused", request=request)

    async with make_provider("openai", handler) as adapter:
        with pytest.raises(TransportError):
            await adapter.chat(_request())

    assert calls == 3
    assert sleeps.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_timeout_maps_to_upstream_timeout(make_provider, sleeps) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    async with make_provider("openai", handler, retry=RetryPolicy(max_attempts=1, sleep=sleeps)) as adapter:
        with pytest.raises(UpstreamTimeoutError):
            await adapter.chat(_request())


@pytest.mark.asyncio
async def test_vendor_error_is_not_retried(make_provider, sleeps) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(401, text='{"error":"invalid api key"}')

    async with make_provider("openai", handler) as adapter:
        with pytest.raises(VendorError) as exc_info:
            await adapter.chat(_request())

    assert calls == 1
    assert sleeps.calls == []
    assert exc_info.value.status == 401
    assert "invalid api key" in exc_info.value.body


def test_parse_retry_after_seconds_and_dates() -> None:
    assert parse_retry_after("3") == 3.0
    assert parse_retry_after("-1") == 0.0
    assert parse_retry_after(None) is None
    assert parse_retry_after("soon") is None

    future = datetime.now(tz=timezone.utc) + timedelta(seconds=30)
    delay = parse_retry_after(format_datetime(future, usegmt=True))
    assert delay is not None
    assert 25 <= delay <= 30
