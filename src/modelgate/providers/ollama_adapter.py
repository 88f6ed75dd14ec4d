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


def _message(m: ChatMessage) -> dict[str, Any]:
    if isinstance(m.content, str):
        return {"role": m.role, "content": m.content}
    text = "\n".join(p.text for p in m.content if isinstance(p, TextPart))
    images = [
        p.image_url.url.split(",", 1)[1]
        for p in m.content
        if isinstance(p, ImageUrlPart) and p.image_url.url.startswith("data:") and "," in p.image_url.url
    ]
    return drop_none({"role": m.role, "content": text, "images": images or None})


class OllamaAdapter(BaseAdapter):
    """Local daemon: no auth, options block, NDJSON streams ending on ``done``."""

    family = BackendFamily.OLLAMA

    def auth_headers(self) -> dict[str, str]:
        return {}

    def chat_url(self, request: CompletionRequest) -> str:
        return f"{self.base_url}/chat"

    def new_stream_id(self) -> str:
        return f"ollama-stream-{int(time.time() * 1000)}"

    def build_payload(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        return {
            "model": request.model,
            "messages": [_message(m) for m in request.messages],
            "options": drop_none(
                {
                    "temperature": request.temperature,
                    "top_p": request.top_p,
                    "num_predict": request.max_tokens,
                }
            ),
            "stream": stream,
        }

    def parse_response(self, data: dict[str, Any], request: CompletionRequest) -> CompletionResponse:
        prompt = int(data.get("prompt_eval_count") or 0)
        completion = int(data.get("eval_count") or 0)
        return CompletionResponse(
            id=f"ollama-{int(time.time() * 1000)}",
            model=safe_text(data.get("model")) or request.model,
            choices=[
                Choice(
                    index=0,
                    message=ChatMessage(
                        role="assistant", content=safe_text((data.get("message") or {}).get("content"))
                    ),
                    finish_reason="stop",
                )
            ],
            usage=Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion),
        )

    def frame_decoder(self) -> FrameDecoder:
        return NDJSONFrameDecoder(done_field="done")

    def to_stream_chunk(self, payload: dict[str, Any], state: StreamState) -> StreamChunk:
        done = payload.get("done") is True
        usage = None
        if done:
            prompt = int(payload.get("prompt_eval_count") or 0)
            completion = int(payload.get("eval_count") or 0)
            usage = Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)
        return StreamChunk(
            id=state.response_id,
            created=state.created,
            model=state.model,
            choices=[
                ChunkChoice(
                    index=0,
                    delta=ChunkDelta(content=safe_text((payload.get("message") or {}).get("content"))),
                    finish_reason="stop" if done else None,
                )
            ],
            usage=usage,
        )
