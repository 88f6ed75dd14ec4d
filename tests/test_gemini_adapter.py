from __future__ import annotations

import json

import httpx
import pytest

from modelgate.domain.chat import ChatMessage, CompletionRequest, ImageUrl, ImageUrlPart, TextPart

MODEL = "gemini-1.5-pro"


@pytest.mark.asyncio
async def test_gemini_adapter_translates_request(make_provider) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"/v1beta/models/{MODEL}:generateContent"
        assert request.headers.get("x-goog-api-key") == "test-key"
        assert "authorization" not in request.headers

        payload = json.loads(request.content)
        assert [c["role"] for c in payload["contents"]] == ["user", "user", "model"]
        assert payload["contents"][0]["parts"] == [{"text": "Be brief."}]
        assert payload["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 64}
        assert payload["safetySettings"] == []

        return httpx.Response(
            200,
            json={
                "candidates": [{"content": {"parts": [{"text": "Hi "}, {"text": "there"}]}, "finishReason": "STOP"}],
                "usageMetadata": {"promptTokenCount": 7, "candidatesTokenCount": 2, "totalTokenCount": 9},
            },
        )

    async with make_provider("gemini", handler) as adapter:
        resp = await adapter.chat(
            CompletionRequest(
                model=MODEL,
                messages=[
                    ChatMessage(role="system", content="Be brief."),
                    ChatMessage(role="user", content="hi"),
                    ChatMessage(role="assistant", content="hello"),
                ],
                temperature=0.2,
                max_tokens=64,
            )
        )

    assert resp.id.startswith("gemini-")
    assert resp.model == MODEL
    assert resp.choices[0].message.content == "Hi there"
    assert resp.choices[0].finish_reason == "stop"
    assert resp.usage.total_tokens == 9


@pytest.mark.asyncio
async def test_gemini_adapter_defaults_when_fields_missing(make_provider) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]})

    async with make_provider("gemini", handler) as adapter:
        resp = await adapter.chat(CompletionRequest(model=MODEL, messages=[ChatMessage(role="user", content="hi")]))

    assert resp.choices[0].finish_reason == "stop"
    assert resp.usage.prompt_tokens == 0
    assert resp.usage.completion_tokens == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("reason", "expected"),
    [("MAX_TOKENS", "length"), ("SAFETY", "content_filter"), ("RECITATION", "content_filter"), ("OTHER", "other")],
)
async def test_gemini_adapter_normalizes_finish_reason(make_provider, reason: str, expected: str) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": "cut"}]}, "finishReason": reason}]}
        )

    async with make_provider("gemini", handler) as adapter:
        resp = await adapter.chat(CompletionRequest(model=MODEL, messages=[ChatMessage(role="user", content="hi")]))

    assert resp.choices[0].finish_reason == expected


@pytest.mark.asyncio
async def test_gemini_adapter_inline_and_remote_images(make_provider) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        parts = json.loads(request.content)["contents"][0]["parts"]
        assert parts == [
            {"text": "compare"},
            {"inlineData": {"mimeType": "image/png", "data": "QUJD"}},
            {"fileData": {"fileUri": "https://example.com/b.png"}},
        ]
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "same"}]}}]})

    message = ChatMessage(
        role="user",
        content=[
            TextPart(text="compare"),
            ImageUrlPart(image_url=ImageUrl(url="data:image/png;base64,QUJD")),
            ImageUrlPart(image_url=ImageUrl(url="https://example.com/b.png")),
        ],
    )
    async with make_provider("gemini", handler) as adapter:
        resp = await adapter.chat(CompletionRequest(model=MODEL, messages=[message]))

    assert resp.choices[0].message.content == "same"


@pytest.mark.asyncio
async def test_gemini_adapter_stream_reads_json_lines(make_provider) -> None:
    lines = [
        json.dumps({"candidates": [{"content": {"parts": [{"text": "Hel"}]}}]}),
        "not json at all",
        json.dumps({"candidates": [{"content": {"parts": [{"text": "lo"}]}, "finishReason": "STOP"}]}),
        json.dumps({"usageMetadata": {"promptTokenCount": 1}}),
    ]

    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"/v1beta/models/{MODEL}:streamGenerateContent"
        return httpx.Response(200, content="\n".join(lines).encode())

    async with make_provider("gemini", handler) as adapter:
        chunks = [
            c
            async for c in adapter.chat_stream(
                CompletionRequest(model=MODEL, messages=[ChatMessage(role="user", content="hi")], stream=True)
            )
        ]

    assert [c.text for c in chunks] == ["Hel", "lo"]
    assert chunks[-1].finish_reason == "stop"
    assert chunks[0].id.startswith("gemini-stream-")
