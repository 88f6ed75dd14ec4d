from __future__ import annotations

import json
from typing import Any

from modelgate.core.errors import VendorError
from modelgate.domain.chat import (
    ChatMessage,
    Choice,
    ChunkChoice,
    ChunkDelta,
    CompletionRequest,
    CompletionResponse,
    ImageUrlPart,
    StreamChunk,
    TextPart,
    Usage,
    content_to_text,
)
from modelgate.domain.models import BackendFamily
from modelgate.providers.base import BaseAdapter, drop_none, safe_text
from modelgate.providers.streaming import EventDataFrameDecoder, FrameDecoder, StreamState


DEFAULT_MAX_TOKENS = 1024


def _image_block(part: ImageUrlPart) -> dict[str, Any]:
    url = part.image_url.url
    if url.startswith("data:") and ";base64," in url:
        header, data = url.split(",", 1)
        media_type = header[5:].split(";", 1)[0] or "image/png"
        return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}
    return {"type": "image", "source": {"type": "url", "url": url}}


def _content_blocks(content: str | list) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content
    blocks: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, TextPart):
            blocks.append({"type": "text", "text": part.text})
        elif isinstance(part, ImageUrlPart):
            blocks.append(_image_block(part))
    return blocks


def _tool_call(block: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": block.get("id"),
        "type": "function",
        "function": {"name": block.get("name"), "arguments": json.dumps(block.get("input") or {})},
    }


class AnthropicAdapter(BaseAdapter):
    """Messages API: x-api-key auth, top-level system prompt, block content."""

    family = BackendFamily.ANTHROPIC

    def auth_headers(self) -> dict[str, str]:
        if self.entry.auth_mode == "api-key" and self.options.api_key:
            return {"x-api-key": self.options.api_key}
        return {}

    def chat_url(self, request: CompletionRequest) -> str:
        return f"{self.base_url}/messages"

    def build_payload(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        system = [content_to_text(m.content) for m in request.messages if m.role == "system"]
        messages = [
            {"role": "assistant" if m.role == "assistant" else "user", "content": _content_blocks(m.content)}
            for m in request.messages
            if m.role != "system"
        ]
        tools = None
        if request.tools:
            tools = [
                {
                    "name": t.get("function", t).get("name"),
                    "description": t.get("function", t).get("description"),
                    "input_schema": t.get("function", t).get("parameters") or {"type": "object"},
                }
                for t in request.tools
            ]
        return drop_none(
            {
                "model": request.model,
                "system": "\n\n".join(system) or None,
                "messages": messages,
                "temperature": request.temperature,
                "top_p": request.top_p,
                "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
                "tools": tools,
                "stream": stream,
            }
        )

    def parse_response(self, data: dict[str, Any], request: CompletionRequest) -> CompletionResponse:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise VendorError(200, f"unexpected response: {str(data)[:300]}", vendor=self.id)

        texts = [TextPart(text=safe_text(b.get("text"))) for b in blocks if b.get("type") == "text"]
        tool_calls = [_tool_call(b) for b in blocks if b.get("type") == "tool_use"]
        content: str | list[TextPart] = texts[0].text if len(texts) == 1 else texts
        if not texts:
            content = ""

        usage = data.get("usage") or {}
        prompt = int(usage.get("input_tokens") or 0)
        completion = int(usage.get("output_tokens") or 0)
        return CompletionResponse(
            **drop_none({"id": safe_text(data.get("id")) or None}),
            model=safe_text(data.get("model")) or request.model,
            choices=[
                Choice(
                    index=0,
                    message=ChatMessage(role="assistant", content=content, tool_calls=tool_calls or None),
                    finish_reason=data.get("stop_reason") or "stop",
                )
            ],
            usage=Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion),
        )

    def frame_decoder(self) -> FrameDecoder:
        return EventDataFrameDecoder()

    def to_stream_chunk(self, payload: dict[str, Any], state: StreamState) -> StreamChunk | None:
        kind = payload.get("type")
        if kind == "error":
            err = payload.get("error") or {}
            raise VendorError(200, safe_text(err.get("message")) or json.dumps(payload), vendor=self.id)
        if kind == "message_start":
            state.response_id = safe_text((payload.get("message") or {}).get("id")) or state.response_id
            return None

        delta = payload.get("delta") or {}
        text = delta.get("text") if delta.get("type") in (None, "text_delta") else None
        stop_reason = delta.get("stop_reason")
        if not text and not stop_reason:
            return None
        return StreamChunk(
            id=safe_text(payload.get("id")) or state.response_id,
            created=state.created,
            model=state.model,
            choices=[ChunkChoice(index=0, delta=ChunkDelta(content=text or ""), finish_reason=stop_reason)],
        )
