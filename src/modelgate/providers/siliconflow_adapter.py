from __future__ import annotations

import time
from typing import Any

from modelgate.core.errors import VendorError
from modelgate.domain.chat import (
    Choice,
    ChunkChoice,
    ChunkDelta,
    CompletionRequest,
    CompletionResponse,
    StreamChunk,
)
from modelgate.domain.models import BackendFamily
from modelgate.providers.base import safe_text
from modelgate.providers.openai_adapter import OpenAIAdapter, parse_message, parse_usage
from modelgate.providers.streaming import StreamState

DEFAULT_MAX_TOKENS = 2048


def _fallback_id() -> str:
    return f"sf-{int(time.time() * 1000)}"


class SiliconFlowAdapter(OpenAIAdapter):
    """OpenAI-compatible vendor whose responses may omit usage and finish reason."""

    family = BackendFamily.SILICONFLOW

    def build_payload(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        payload = super().build_payload(request, stream=stream)
        payload["max_tokens"] = request.max_tokens or DEFAULT_MAX_TOKENS
        return payload

    def new_stream_id(self) -> str:
        return _fallback_id()

    def parse_response(self, data: dict[str, Any], request: CompletionRequest) -> CompletionResponse:
        choices = data.get("choices") or []
        if not choices:
            raise VendorError(200, f"no choices in response: {str(data)[:300]}", vendor=self.id)
        first = choices[0]
        return CompletionResponse(
            id=safe_text(data.get("id")) or _fallback_id(),
            model=safe_text(data.get("model")) or request.model,
            choices=[
                Choice(
                    index=0,
                    message=parse_message({**(first.get("message") or {}), "role": "assistant"}),
                    finish_reason=first.get("finish_reason") or "stop",
                )
            ],
            usage=parse_usage(data.get("usage")),
        )

    def to_stream_chunk(self, payload: dict[str, Any], state: StreamState) -> StreamChunk | None:
        choices = payload.get("choices") or []
        if not choices:
            return None
        first = choices[0]
        delta = first.get("delta") or {}
        return StreamChunk(
            id=safe_text(payload.get("id")) or state.response_id,
            created=state.created,
            model=state.model,
            choices=[
                ChunkChoice(
                    index=0,
                    delta=ChunkDelta(content=delta.get("content") or "", tool_calls=delta.get("tool_calls")),
                    finish_reason=first.get("finish_reason") or None,
                )
            ],
        )
