from __future__ import annotations

import time
from typing import Any

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
)
from modelgate.domain.models import BackendFamily
from modelgate.providers.base import BaseAdapter, drop_none, safe_text
from modelgate.providers.streaming import FrameDecoder, NDJSONFrameDecoder, StreamState

DEFAULT_API_VERSION = "v1"

# generateContent finish reasons that differ from the normalized vocabulary
_FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
    "BLOCKLIST": "content_filter",
    "PROHIBITED_CONTENT": "content_filter",
    "SPII": "content_filter",
}


def _finish_reason(value: Any) -> str | None:
    raw = safe_text(value)
    if not raw:
        return None
    return _FINISH_REASONS.get(raw.upper(), raw.lower())


def _part(part: TextPart | ImageUrlPart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"text": part.text}
    url = part.image_url.url
    if url.startswith("data:") and ";base64," in url:
        header, data = url.split(",", 1)
        return {"inlineData": {"mimeType": header[5:].split(";", 1)[0] or "image/png", "data": data}}
    return {"fileData": {"fileUri": url}}


def _contents(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    out = []
    for m in messages:
        # No system role here: system prompts are sent as user turns.
        role = "model" if m.role == "assistant" else "user"
        parts = [{"text": m.content}] if isinstance(m.content, str) else [_part(p) for p in m.content]
        out.append({"role": role, "parts": parts})
    return out


def _candidate_text(candidate: dict[str, Any]) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(safe_text(p.get("text")) for p in parts if isinstance(p, dict))


class GeminiAdapter(BaseAdapter):
    """generateContent API: model in the path, x-goog-api-key auth, NDJSON streams."""

    family = BackendFamily.GEMINI

    def auth_headers(self) -> dict[str, str]:
        if self.options.api_key:
            return {"x-goog-api-key": self.options.api_key}
        return {}

    def _model_url(self, model: str, method: str) -> str:
        return f"{self.base_url}/{self.api_version or DEFAULT_API_VERSION}/models/{model}:{method}"

    def chat_url(self, request: CompletionRequest) -> str:
        return self._model_url(request.model, "generateContent")

    def stream_url(self, request: CompletionRequest) -> str:
        return self._model_url(request.model, "streamGenerateContent")

    def new_stream_id(self) -> str:
        return f"gemini-stream-{int(time.time() * 1000)}"

    def build_payload(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        # streaming is selected by the URL, not the body
        return {
            "contents": _contents(request.messages),
            "generationConfig": drop_none(
                {
                    "temperature": request.temperature,
                    "topP": request.top_p,
                    "maxOutputTokens": request.max_tokens,
                }
            ),
            "safetySettings": [],
        }

    def parse_response(self, data: dict[str, Any], request: CompletionRequest) -> CompletionResponse:
        candidates = data.get("candidates") or [{}]
        first = candidates[0] or {}
        meta = data.get("usageMetadata") or {}
        prompt = int(meta.get("promptTokenCount") or 0)
        completion = int(meta.get("candidatesTokenCount") or 0)
        return CompletionResponse(
            id=f"gemini-{int(time.time() * 1000)}",
            model=safe_text(data.get("modelVersion")) or request.model,
            choices=[
                Choice(
                    index=0,
                    message=ChatMessage(role="assistant", content=_candidate_text(first)),
                    finish_reason=_finish_reason(first.get("finishReason")) or "stop",
                )
            ],
            usage=Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion),
        )

    def frame_decoder(self) -> FrameDecoder:
        return NDJSONFrameDecoder(done_field=None)

    def to_stream_chunk(self, payload: dict[str, Any], state: StreamState) -> StreamChunk | None:
        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        first = candidates[0] or {}
        finish = _finish_reason(first.get("finishReason"))
        return StreamChunk(
            id=state.response_id,
            created=state.created,
            model=state.model,
            choices=[ChunkChoice(index=0, delta=ChunkDelta(content=_candidate_text(first)), finish_reason=finish)],
        )
