"""Incremental parsing of streamed vendor responses.

Every vendor streams text lines; they differ in how a line carries its JSON
payload and in how the end of the stream is signalled. A ``FrameDecoder``
classifies one line, ``ChunkStream`` drives the loop.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

import httpx

from modelgate.core.errors import StreamParseError
from modelgate.core.metrics import modelgate_stream_bad_frames_total
from modelgate.domain.chat import StreamChunk, now_ts

log = logging.getLogger(__name__)

T = TypeVar("T")
Guard = Callable[[Awaitable[T]], Awaitable[T]]


class FrameKind(str, Enum):
    SKIP = "skip"
    DATA = "data"
    END = "end"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Frame:
    kind: FrameKind
    payload: dict[str, Any] | None = None
    raw: str = ""
    # DATA frame that is also the last one (NDJSON "done": true)
    final: bool = False


_SKIP = Frame(FrameKind.SKIP)
_END = Frame(FrameKind.END)


def _parse_object(text: str) -> Frame:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        return Frame(FrameKind.MALFORMED, raw=text)
    if not isinstance(obj, dict):
        return Frame(FrameKind.MALFORMED, raw=text)
    return Frame(FrameKind.DATA, payload=obj, raw=text)


class FrameDecoder:
    def decode(self, line: str) -> Frame:
        raise NotImplementedError


class SSEFrameDecoder(FrameDecoder):
    """``data: <json>`` lines, terminated by a sentinel payload."""

    def __init__(self, sentinel: str = "[DONE]") -> None:
        self.sentinel = sentinel

    def decode(self, line: str) -> Frame:
        line = line.strip()
        if not line or line.startswith(":"):
            return _SKIP
        if not line.startswith("data:"):
            # event:, id:, retry: fields carry nothing we map
            return _SKIP
        data = line[5:].strip()
        if data == self.sentinel:
            return _END
        return _parse_object(data)


class EventDataFrameDecoder(SSEFrameDecoder):
    """SSE where an ``event: <name>`` line can mark completion."""

    def __init__(self, end_events: tuple[str, ...] = ("done", "message_stop"), sentinel: str = "[DONE]") -> None:
        super().__init__(sentinel=sentinel)
        self.end_events = end_events

    def decode(self, line: str) -> Frame:
        stripped = line.strip()
        if stripped.startswith("event:"):
            if stripped[6:].strip() in self.end_events:
                return _END
            return _SKIP
        return super().decode(line)


class NDJSONFrameDecoder(FrameDecoder):
    """One raw JSON object per line; optionally a boolean field marks the last one."""

    def __init__(self, done_field: str | None = "done") -> None:
        self.done_field = done_field

    def decode(self, line: str) -> Frame:
        line = line.strip()
        if not line:
            return _SKIP
        frame = _parse_object(line)
        if frame.kind is FrameKind.DATA and self.done_field and frame.payload.get(self.done_field) is True:
            return Frame(FrameKind.DATA, payload=frame.payload, raw=frame.raw, final=True)
        return frame


@dataclass
class StreamState:
    """Per-stream context handed to the vendor chunk mapper."""

    response_id: str
    model: str
    created: int = field(default_factory=now_ts)


ChunkMapper = Callable[[dict[str, Any], StreamState], "StreamChunk | None"]


async def _passthrough(aw: Awaitable[T]) -> T:
    return await aw


class ChunkStream:
    """Pull-based sequence of ``StreamChunk`` decoded from one streamed response.

    Chunks are returned in the order the vendor produced them. The response is
    released when the stream ends, fails, or is closed early by the caller.
    """

    def __init__(
        self,
        response: httpx.Response,
        decoder: FrameDecoder,
        mapper: ChunkMapper,
        state: StreamState,
        *,
        vendor: str = "",
        guard: Guard | None = None,
        check_cancelled: Callable[[], None] | None = None,
        max_bad_frames: int = 20,
    ) -> None:
        self._response = response
        self._lines = response.aiter_lines()
        self._decoder = decoder
        self._mapper = mapper
        self._state = state
        self._vendor = vendor
        self._guard = guard or _passthrough
        self._check_cancelled = check_cancelled
        self._max_bad_frames = max_bad_frames
        self._bad_frames = 0
        self._finished = False
        self._closed = False

    def __aiter__(self) -> ChunkStream:
        return self

    async def __anext__(self) -> StreamChunk:
        try:
            chunk = await self._next_chunk()
        except BaseException:
            await self.aclose()
            raise
        if chunk is None:
            await self.aclose()
            raise StopAsyncIteration
        return chunk

    async def _read_line(self) -> str | None:
        try:
            return await self._lines.__anext__()
        except StopAsyncIteration:
            return None

    async def _next_chunk(self) -> StreamChunk | None:
        while not self._finished:
            if self._check_cancelled is not None:
                self._check_cancelled()
            line = await self._guard(self._read_line())
            if line is None:
                self._finished = True
                break

            frame = self._decoder.decode(line)
            if frame.kind is FrameKind.SKIP:
                continue
            if frame.kind is FrameKind.END:
                self._finished = True
                break
            if frame.kind is FrameKind.MALFORMED:
                self._on_malformed(frame)
                continue

            self._bad_frames = 0
            if frame.final:
                self._finished = True
            chunk = self._mapper(frame.payload, self._state)
            if chunk is not None:
                return chunk
        return None

    def _on_malformed(self, frame: Frame) -> None:
        self._bad_frames += 1
        modelgate_stream_bad_frames_total.labels(vendor=self._vendor).inc()
        log.warning(
            "stream.frame.malformed",
            extra={"vendor": self._vendor, "frame": frame.raw[:200], "consecutive": self._bad_frames},
        )
        if self._bad_frames >= self._max_bad_frames:
            raise StreamParseError(
                f"{self._bad_frames} consecutive unparseable stream frames from {self._vendor or 'vendor'}"
            )

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._finished = True
        await self._response.aclose()

    async def __aenter__(self) -> ChunkStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
