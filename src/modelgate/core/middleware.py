from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from modelgate.core.config import get_settings

log = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id, echo it back and log the outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        header_name = get_settings().modelgate_request_id_header
        request_id = request.headers.get(header_name) or uuid.uuid4().hex
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        # for SSE responses this is the time until headers are sent
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        response.headers[header_name] = request_id
        response.headers["X-Response-Time-Ms"] = str(elapsed_ms)
        log.info(
            "http.request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_ms": elapsed_ms,
            },
        )
        return response
