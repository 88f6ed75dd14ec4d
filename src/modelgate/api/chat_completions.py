from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncGenerator, AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from modelgate.core.deps import get_provider_registry
from modelgate.core.errors import GatewayError
from modelgate.core.logging import LogContext, with_context
from modelgate.domain.chat import CompletionRequest, CompletionResponse, StreamChunk
from modelgate.providers.registry import ProviderRegistry
from modelgate.routing.router import parse_explicit_model, route_and_call, route_and_stream

router = APIRouter()
log = logging.getLogger(__name__)

SSE_DONE = b"data: [DONE]\n\n"


def _sse(payload: str) -> bytes:
    return f"data: {payload}\n\n".encode("utf-8")


async def _sse_body(
    first: StreamChunk | None, rest: AsyncGenerator[StreamChunk, None], logger: logging.LoggerAdapter
) -> AsyncIterator[bytes]:
    started = time.perf_counter()
    status = "ok"
    chunks = 0
    try:
        if first is not None:
            chunks += 1
            yield _sse(first.model_dump_json(exclude_none=True))
            async for chunk in rest:
                chunks += 1
                yield _sse(chunk.model_dump_json(exclude_none=True))
        yield SSE_DONE
    except GatewayError as e:
        # headers are already sent; report the failure in-band
        status = e.code
        logger.warning("chat.completions.stream.failed", extra={"code": e.code, "detail": e.detail})
        yield _sse(json.dumps(e.to_payload(), ensure_ascii=False))
    finally:
        await rest.aclose()
        logger.info(
            "chat.completions.stream.done",
            extra={"status": status, "chunks": chunks, "latency_ms": int((time.perf_counter() - started) * 1000)},
        )


@router.post("/chat/completions", response_model=None)
async def chat_completions(
    request: Request,
    body: CompletionRequest,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> CompletionResponse | StreamingResponse:
    target = parse_explicit_model(body.model)
    logger = with_context(
        log,
        LogContext(
            request_id=getattr(request.state, "request_id", None),
            vendor=target.vendor,
            model=target.vendor_model,
        ),
    )
    logger.info("chat.completions.request", extra={"stream": body.stream})

    if body.stream:
        stream = route_and_stream(registry, body)
        # Pull the first chunk before answering so that validation, auth and
        # dispatch failures still map to an HTTP status.
        try:
            first = await anext(stream)
        except StopAsyncIteration:
            first = None
        except GatewayError:
            await stream.aclose()
            raise
        return StreamingResponse(
            _sse_body(first, stream, logger),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    started = time.perf_counter()
    status = "ok"
    try:
        return await route_and_call(registry, body)
    except GatewayError as e:
        status = e.code
        raise
    finally:
        logger.info(
            "chat.completions.done",
            extra={"status": status, "latency_ms": int((time.perf_counter() - started) * 1000)},
        )
