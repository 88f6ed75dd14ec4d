from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from modelgate.core.errors import ConfigurationError, InvalidRequestError
from modelgate.domain.chat import CompletionRequest, CompletionResponse, StreamChunk
from modelgate.providers.factory import Provider
from modelgate.providers.registry import ProviderRegistry

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutedTarget:
    vendor: str
    vendor_model: str

    @property
    def qualified(self) -> str:
        return f"{self.vendor}:{self.vendor_model}"


def parse_explicit_model(model: str) -> RoutedTarget:
    # Expected: "<vendor>:<model_id>"; the model id itself may contain ":" or "/"
    if ":" not in model:
        raise InvalidRequestError('Invalid model format. Expected "vendor:model_id"')
    vendor, vendor_model = model.split(":", 1)
    vendor = vendor.strip()
    vendor_model = vendor_model.strip()
    if not vendor or not vendor_model:
        raise InvalidRequestError('Invalid model format. Expected "vendor:model_id"')
    return RoutedTarget(vendor=vendor, vendor_model=vendor_model)


def _resolve(registry: ProviderRegistry, req: CompletionRequest) -> tuple[RoutedTarget, Provider, CompletionRequest]:
    target = parse_explicit_model(req.model)
    try:
        adapter = registry.get(target.vendor)
    except ConfigurationError as e:
        log.warning("router.vendor.unknown", extra={"vendor": target.vendor})
        raise InvalidRequestError(f"Unknown vendor: {target.vendor}") from e
    return target, adapter, req.model_copy(update={"model": target.vendor_model})


async def route_and_call(registry: ProviderRegistry, req: CompletionRequest) -> CompletionResponse:
    target, adapter, vendor_req = _resolve(registry, req)
    resp = await adapter.chat(vendor_req)
    return resp.model_copy(update={"model": target.qualified})


async def route_and_stream(registry: ProviderRegistry, req: CompletionRequest) -> AsyncIterator[StreamChunk]:
    """Stream normalized chunks, re-prefixing each chunk's model with the vendor id."""
    target, adapter, vendor_req = _resolve(registry, req)
    stream = adapter.chat_stream(vendor_req)
    try:
        async for chunk in stream:
            yield chunk.model_copy(update={"model": target.qualified})
    finally:
        await stream.aclose()
