from __future__ import annotations

import json

import httpx
import pytest

from modelgate.core.errors import ConfigurationError
from modelgate.domain.chat import ChatMessage, CompletionRequest
from modelgate.domain.models import BackendFamily, VendorEntry
from modelgate.providers.anthropic_adapter import AnthropicAdapter
from modelgate.providers.base import ProviderOptions
from modelgate.providers.composite import CompositeAdapter
from modelgate.providers.factory import ADAPTER_TYPES, create_adapter, create_provider
from modelgate.providers.gemini_adapter import GeminiAdapter
from modelgate.providers.openai_adapter import OpenAIAdapter


def test_adapter_table_covers_every_direct_family() -> None:
    assert set(ADAPTER_TYPES) == set(BackendFamily) - {BackendFamily.COMPOSITE}


def test_unknown_family_is_a_configuration_error() -> None:
    entry = VendorEntry(id="mystery", name="Mystery", base_url="https://example.com", family="carrier-pigeon")
    with pytest.raises(ConfigurationError, match="carrier-pigeon"):
        create_adapter(entry)


def test_unknown_vendor_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="nope"):
        create_provider("nope")


def test_composite_routes_by_model_prefix() -> None:
    adapter = create_provider("aihubmix")
    assert isinstance(adapter, CompositeAdapter)

    claude = adapter.get_adapter_for_model("claude-3-opus")
    gemini = adapter.get_adapter_for_model("gemini-1.5-pro")
    other = adapter.get_adapter_for_model("gpt-4o")

    assert isinstance(claude, AnthropicAdapter)
    assert claude.base_url == "https://aihubmix.com/claude/v1"
    assert isinstance(gemini, GeminiAdapter)
    assert gemini.base_url == "https://aihubmix.com/gemini"
    assert type(other) is OpenAIAdapter
    assert other.base_url == "https://aihubmix.com/v1"
    assert adapter.get_adapter_for_model("DeepSeek-R1") is other


def test_composite_base_url_override_applies_to_baseline_only() -> None:
    adapter = create_provider("aihubmix", ProviderOptions(base_url="https://mirror.example/v1"))
    assert adapter.get_adapter_for_model("gpt-4o").base_url == "https://mirror.example/v1"
    assert adapter.get_adapter_for_model("claude-3-opus").base_url == "https://aihubmix.com/claude/v1"


@pytest.mark.asyncio
async def test_composite_dispatches_with_the_routed_wire_format(make_provider) -> None:
    seen: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.path.endswith("/messages"):
            assert request.headers.get("x-api-key") == "test-key"
            return httpx.Response(200, json={"id": "msg_1", "content": [{"type": "text", "text": "from claude"}]})
        assert json.loads(request.content)["model"] == "gpt-4o"
        return httpx.Response(
            200, json={"choices": [{"index": 0, "message": {"role": "assistant", "content": "from openai"}}]}
        )

    async with make_provider("aihubmix", handler) as adapter:
        claude = await adapter.chat(
            CompletionRequest(model="claude-3-opus", messages=[ChatMessage(role="user", content="hi")])
        )
        gpt = await adapter.chat(CompletionRequest(model="gpt-4o", messages=[ChatMessage(role="user", content="hi")]))

    assert claude.choices[0].message.content == "from claude"
    assert gpt.choices[0].message.content == "from openai"
    assert seen == ["https://aihubmix.com/claude/v1/messages", "https://aihubmix.com/v1/chat/completions"]


@pytest.mark.asyncio
async def test_composite_streams_through_the_routed_adapter(make_provider) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/gemini/v1/models/gemini-1.5-pro:streamGenerateContent"
        return httpx.Response(200, content=json.dumps({"candidates": [{"content": {"parts": [{"text": "g"}]}}]}).encode())

    async with make_provider("aihubmix", handler) as adapter:
        chunks = [
            c
            async for c in adapter.chat_stream(
                CompletionRequest(model="gemini-1.5-pro", messages=[ChatMessage(role="user", content="hi")], stream=True)
            )
        ]

    assert [c.text for c in chunks] == ["g"]


@pytest.mark.asyncio
async def test_composite_early_close_releases_the_response(make_provider) -> None:
    sent: list[httpx.Response] = []

    def _frame(text: str) -> bytes:
        return ("data: " + json.dumps({"id": "c1", "choices": [{"index": 0, "delta": {"content": text}}]}) + "\n").encode()

    async def body():
        yield _frame("one")
        yield _frame("two")
        yield b"data: [DONE]\n"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/chat/completions"
        sent.append(httpx.Response(200, content=body()))
        return sent[-1]

    async with make_provider("aihubmix", handler) as adapter:
        stream = adapter.chat_stream(
            CompletionRequest(model="gpt-4o", messages=[ChatMessage(role="user", content="hi")], stream=True)
        )
        first = await anext(stream)
        await stream.aclose()

    assert first.text == "one"
    assert sent[0].is_closed
