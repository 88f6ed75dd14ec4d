"""Tests for /metrics endpoint."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from modelgate.domain.chat import ChatMessage, CompletionRequest
from modelgate.main import create_app


def test_metrics_returns_prometheus_format() -> None:
    """Metrics endpoint returns Prometheus text format."""
    client = TestClient(create_app())
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "text/plain" in r.headers.get("content-type", "")
    assert "modelgate_requests_total" in r.text or "modelgate_request_duration_seconds" in r.text


@pytest.mark.asyncio
async def test_calls_and_retries_are_counted(make_provider) -> None:
    def sample(name: str, labels: dict[str, str]) -> float:
        return REGISTRY.get_sample_value(name, labels) or 0.0

    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(429)
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "ok"}}]})

    ok_labels = {"vendor": "openai", "model": "gpt-3.5-turbo", "stream": "false", "status": "ok"}
    retry_labels = {"vendor": "openai", "reason": "rate_limit"}
    ok_before = sample("modelgate_requests_total", ok_labels)
    retries_before = sample("modelgate_retries_total", retry_labels)

    async with make_provider("openai", handler) as adapter:
        await adapter.chat(
            CompletionRequest(model="gpt-3.5-turbo", messages=[ChatMessage(role="user", content="hi")])
        )

    assert sample("modelgate_requests_total", ok_labels) == ok_before + 1
    assert sample("modelgate_retries_total", retry_labels) == retries_before + 1
