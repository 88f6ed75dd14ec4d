from __future__ import annotations

import json
import math
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def now_ts() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp())


class TextPart(BaseModel):
    """OpenAI-compatible text content part."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImageUrl(BaseModel):
    """Image URL: https://... or data:image/<type>;base64,..."""

    model_config = ConfigDict(frozen=True)

    url: str


class ImageUrlPart(BaseModel):
    """OpenAI-compatible image content part."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


ContentPart = Annotated[Union[TextPart, ImageUrlPart], Field(discriminator="type")]

Role = Literal["system", "user", "assistant", "tool"]


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str | list[ContentPart]
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[dict[str, Any]] | None = None


class CompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stream: bool = False
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | dict[str, Any] | None = None
    response_format: dict[str, Any] | None = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Choice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str | None = None


class CompletionResponse(BaseModel):
    id: str = Field(default_factory=lambda: f"chatcmpl_{uuid4().hex}")
    object: str = "chat.completion"
    created: int = Field(default_factory=now_ts)
    model: str
    choices: list[Choice]
    usage: Usage = Field(default_factory=Usage)


class ChunkDelta(BaseModel):
    role: str | None = None
    content: str | None = None
    tool_calls: list[dict[str, Any]] | None = None


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: str | None = None


class StreamChunk(BaseModel):
    id: str
    object: str = "chat.completion.chunk"
    created: int = Field(default_factory=now_ts)
    model: str
    choices: list[ChunkChoice] = Field(default_factory=list)
    usage: Usage | None = None

    @property
    def text(self) -> str:
        return "".join(c.delta.content or "" for c in self.choices)

    @property
    def finish_reason(self) -> str | None:
        return next((c.finish_reason for c in self.choices if c.finish_reason), None)


def content_to_text(content: str | list | None) -> str:
    """Serialize message content to plain text.

    Text parts are joined with newlines. Any other structured part is written
    as compact JSON so no information is silently dropped.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    out: list[str] = []
    for part in content:
        if isinstance(part, TextPart):
            out.append(part.text)
        elif isinstance(part, BaseModel):
            out.append(json.dumps(part.model_dump(mode="json"), ensure_ascii=False))
        elif isinstance(part, dict) and part.get("type") == "text":
            out.append(str(part.get("text") or ""))
        else:
            out.append(json.dumps(part, ensure_ascii=False))
    return "\n".join(out)


def has_image_content(messages: Iterable[ChatMessage]) -> bool:
    return any(
        isinstance(m.content, list) and any(isinstance(p, ImageUrlPart) for p in m.content)
        for m in messages
    )


# Per-message framing overhead used by most chat templates.
_MESSAGE_OVERHEAD_TOKENS = 4


def estimate_tokens(messages: Iterable[ChatMessage]) -> int:
    """Rough prompt size: ~4 characters per token. Images are not counted."""
    total = 0
    for m in messages:
        text = m.content if isinstance(m.content, str) else content_to_text(
            [p for p in m.content if isinstance(p, TextPart)]
        )
        total += math.ceil(len(text) / 4) + _MESSAGE_OVERHEAD_TOKENS
    return total
