from __future__ import annotations

from typing import Any

from modelgate.core.errors import VendorError
from modelgate.domain.chat import (
    ChatMessage,
    Choice,
    ChunkChoice,
    ChunkDelta,
    CompletionRequest,
    CompletionResponse,
    StreamChunk,
    Usage,
    content_to_text,
)
from modelgate.domain.models import BackendFamily
from modelgate.providers.base import BaseAdapter, as_role, drop_none, safe_text
from modelgate.providers.streaming import FrameDecoder, SSEFrameDecoder, StreamState


def serialize_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json", exclude_none=True) for m in messages]


def parse_usage(usage: dict[str, Any] | None) -> Usage:
    usage = usage or {}
    prompt = int(usage.get("prompt_tokens") or 0)
    completion = int(usage.get("completion_tokens") or 0)
    total = int(usage.get("total_tokens") or (prompt + completion))
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def parse_content(value: Any) -> str | list[dict[str, Any]]:
    """Accept string or structured content; unknown part types fall back to text."""
    if isinstance(value, list):
        if all(isinstance(p, dict) and p.get("type") in ("text", "image_url") for p in value):
            return value
        return content_to_text(value)
    return safe_text(value)


def parse_message(msg: dict[str, Any]) -> ChatMessage:
    return ChatMessage(
        role=as_role(msg.get("role")),
        content=parse_content(msg.get("content")),
        tool_calls=msg.get("tool_calls") or None,
    )


class OpenAIAdapter(BaseAdapter):
    """Generic REST backend speaking the OpenAI chat-completions dialect."""

    family = BackendFamily.OPENAI

    def chat_url(self, request: CompletionRequest) -> str:
        return f"{self.base_url}/chat/completions"

    def build_payload(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        payload = drop_none(
            {
                "model": request.model,
                "messages": serialize_messages(request.messages),
                "temperature": request.temperature,
                "top_p": request.top_p,
                "max_tokens": request.max_tokens,
                "tools": request.tools,
                "tool_choice": request.tool_choice,
                "response_format": request.response_format,
            }
        )
        payload["stream"] = stream
        return payload

    def parse_response(self, data: dict[str, Any], request: CompletionRequest) -> CompletionResponse:
        choices: list[Choice] = []
        for ch in data.get("choices") or []:
            choices.append(
                Choice(
                    index=int(ch.get("index") or 0),
                    message=parse_message(ch.get("message") or {}),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        if not choices:
            raise VendorError(200, f"no choices in response: {str(data)[:300]}", vendor=self.id)

        return CompletionResponse(
            **drop_none({"id": safe_text(data.get("id")) or None, "created": data.get("created") or None}),
            model=safe_text(data.get("model")) or request.model,
            choices=choices,
            usage=parse_usage(data.get("usage")),
        )

    def frame_decoder(self) -> FrameDecoder:
        return SSEFrameDecoder()

    def to_stream_chunk(self, payload: dict[str, Any], state: StreamState) -> StreamChunk | None:
        choices = [
            ChunkChoice(
                index=int(ch.get("index") or 0),
                delta=ChunkDelta(
                    role=(ch.get("delta") or {}).get("role"),
                    content=(ch.get("delta") or {}).get("content"),
                    tool_calls=(ch.get("delta") or {}).get("tool_calls"),
                ),
                finish_reason=ch.get("finish_reason"),
            )
            for ch in payload.get("choices") or []
        ]
        usage = parse_usage(payload["usage"]) if payload.get("usage") else None
        if not choices and usage is None:
            return None
        return StreamChunk(
            id=safe_text(payload.get("id")) or state.response_id,
            created=int(payload.get("created") or state.created),
            model=safe_text(payload.get("model")) or state.model,
            choices=choices,
            usage=usage,
        )
