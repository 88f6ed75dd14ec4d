from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from modelgate.core.deps import get_provider_registry
from modelgate.core.errors import ConfigurationError, GatewayError, InvalidRequestError, describe_error
from modelgate.core.logging import LogContext, with_context
from modelgate.domain.models import ModelCapabilities, TransportCapabilities
from modelgate.providers.registry import ProviderRegistry

router = APIRouter()
log = logging.getLogger(__name__)


class VendorInfo(BaseModel):
    id: str
    name: str
    family: str
    transport: TransportCapabilities
    models: int


class ModelInfo(BaseModel):
    id: str
    vendor: str
    display_name: str
    description: str | None = None
    capabilities: ModelCapabilities
    max_temperature: float | None = None


class CheckRequest(BaseModel):
    model: str | None = None


class CheckResult(BaseModel):
    vendor: str
    ok: bool
    error: str | None = None
    hint: str | None = None


@router.get("/vendors", response_model=list[VendorInfo])
async def list_vendors(registry: ProviderRegistry = Depends(get_provider_registry)) -> list[VendorInfo]:
    items = []
    for vendor_id in registry.list_vendors():
        entry = registry.get(vendor_id).entry
        items.append(
            VendorInfo(
                id=vendor_id,
                name=entry.name,
                family=entry.family,
                transport=entry.transport,
                models=len(entry.models),
            )
        )
    return items


@router.get("/models", response_model=list[ModelInfo])
async def list_models(registry: ProviderRegistry = Depends(get_provider_registry)) -> list[ModelInfo]:
    return [
        ModelInfo(
            id=f"{vendor_id}:{m.id}",
            vendor=vendor_id,
            display_name=m.name,
            description=m.description,
            capabilities=m.capabilities,
            max_temperature=m.max_temperature,
        )
        for vendor_id, m in registry.list_models()
    ]


@router.post("/vendors/{vendor_id}/check", response_model=CheckResult)
async def check_vendor(
    request: Request,
    vendor_id: str,
    body: CheckRequest | None = None,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> CheckResult:
    """Probe a vendor with a one-token request; failures are reported, not raised."""
    try:
        adapter = registry.get(vendor_id)
    except ConfigurationError as e:
        raise InvalidRequestError(f"Unknown vendor: {vendor_id}") from e
    model = body.model if body else None
    logger = with_context(
        log, LogContext(request_id=getattr(request.state, "request_id", None), vendor=vendor_id, model=model)
    )
    try:
        ok = await adapter.check_connection(model)
    except GatewayError as e:
        logger.warning("vendors.check.failed", extra={"code": e.code, "detail": e.detail})
        return CheckResult(vendor=vendor_id, ok=False, error=e.detail, hint=describe_error(e))
    return CheckResult(vendor=vendor_id, ok=ok)
