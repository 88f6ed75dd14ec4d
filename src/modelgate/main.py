from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from modelgate import __version__
from modelgate.api import api_router
from modelgate.core.config import get_settings
from modelgate.core.deps import build_registry
from modelgate.core.errors import GatewayError
from modelgate.core.logging import configure_logging
from modelgate.core.middleware import RequestIdMiddleware

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(level=settings.modelgate_log_level)
    log.info("app.start", extra={"env": settings.modelgate_env})
    registry = build_registry(settings)
    app.state.registry = registry
    yield
    await registry.aclose()
    log.info("app.stop")


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    log.warning(
        "request.failed",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "code": exc.code,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app() -> FastAPI:
    app = FastAPI(title="ModelGate", version=__version__, lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.include_router(api_router)
    return app


app = create_app()
