from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from modelgate.core.errors import RequestCancelled
from modelgate.domain.chat import ChatMessage, CompletionRequest
from modelgate.providers.retry import RetryPolicy


def _request(stream: bool = False) -> CompletionRequest:
    return CompletionRequest(model="gpt-4o", messages=[ChatMessage(role="user", content="hi")], stream=stream)


@pytest.mark.asyncio
async def test_cancelled_before_dispatch_sends_nothing(make_provider) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={})

    event = asyncio.Event()
    event.set()
    async with make_provider("openai", handler, cancel_event=event) as adapter:
        with pytest.raises(RequestCancelled):
            await adapter.chat(_request())

    assert calls == 0


@pytest.mark.asyncio
async def test_cancel_interrupts_backoff_sleep(make_provider) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(429, headers={"Retry-After": "30"})

    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, event.set)
    policy = RetryPolicy(max_attempts=3, sleep=asyncio.sleep)
    async with make_provider("openai", handler, cancel_event=event, retry=policy) as adapter:
        with pytest.raises(RequestCancelled):
            await asyncio.wait_for(adapter.chat(_request()), timeout=5)

    assert calls == 1


@pytest.mark.asyncio
async def test_cancel_stops_a_stalled_stream(make_provider) -> None:
    async def body():
        yield ("data: " + json.dumps({"choices": [{"index": 0, "delta": {"content": "first"}}]}) + "\n").encode()
        await asyncio.sleep(30)
        yield b"data: [DONE]\n"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    event = asyncio.Event()
    async with make_provider("openai", handler, cancel_event=event) as adapter:
        stream = adapter.chat_stream(_request(stream=True))
        first = await anext(stream)
        asyncio.get_running_loop().call_later(0.05, event.set)
        with pytest.raises(RequestCancelled):
            await asyncio.wait_for(anext(stream), timeout=5)

    assert first.text == "first"
