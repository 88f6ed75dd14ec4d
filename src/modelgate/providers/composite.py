from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncIterator, Callable

from modelgate.core.errors import ConfigurationError
from modelgate.domain.chat import CompletionRequest, CompletionResponse, StreamChunk
from modelgate.domain.models import CompositeRoute, ModelDescriptor, VendorEntry
from modelgate.providers.base import BaseAdapter, ProviderOptions

log = logging.getLogger(__name__)

AdapterBuilder = Callable[[VendorEntry, ProviderOptions], BaseAdapter]


def _route_entry(entry: VendorEntry, route: CompositeRoute) -> VendorEntry:
    return entry.model_copy(
        update={"family": route.family, "base_url": route.base_url, "routes": (), "default_route": None}
    )


class CompositeAdapter:
    """One vendor id fronting several wire protocols.

    Each model is served by the first route whose prefix matches its id, or
    by the baseline route. The base URL override in ``options`` only applies
    to the baseline; prefix routes keep their own absolute URLs.
    """

    def __init__(self, entry: VendorEntry, options: ProviderOptions | None, build: AdapterBuilder) -> None:
        if entry.default_route is None:
            raise ConfigurationError(f"Composite vendor {entry.id} has no default route")
        self.entry = entry
        self.options = options or ProviderOptions()

        route_options = dataclasses.replace(self.options, base_url=None)
        self._routes: list[tuple[str, BaseAdapter]] = [
            (route.prefix or "", build(_route_entry(entry, route), route_options)) for route in entry.routes
        ]
        self.baseline = build(_route_entry(entry, entry.default_route), self.options)

    @property
    def id(self) -> str:
        return self.entry.id

    def get_adapter_for_model(self, model_id: str) -> BaseAdapter:
        for prefix, adapter in self._routes:
            if prefix and model_id.startswith(prefix):
                return adapter
        return self.baseline

    def get_models(self) -> list[ModelDescriptor]:
        return list(self.entry.models)

    def get_model(self, model_id: str) -> ModelDescriptor | None:
        return self.entry.get_model(model_id)

    def ensure_valid(self, request: CompletionRequest) -> ModelDescriptor:
        return self.get_adapter_for_model(request.model).ensure_valid(request)

    def validate_request(self, request: CompletionRequest) -> bool:
        return self.get_adapter_for_model(request.model).validate_request(request)

    async def chat(self, request: CompletionRequest) -> CompletionResponse:
        adapter = self.get_adapter_for_model(request.model)
        log.debug("provider.composite.route", extra={"vendor": self.id, "model": request.model, "family": adapter.family.value})
        return await adapter.chat(request)

    async def chat_stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        adapter = self.get_adapter_for_model(request.model)
        log.debug("provider.composite.route", extra={"vendor": self.id, "model": request.model, "family": adapter.family.value})
        stream = adapter.chat_stream(request)
        try:
            async for chunk in stream:
                yield chunk
        finally:
            await stream.aclose()

    async def check_connection(self, model: str | None = None) -> bool:
        model_id = model or next((m.id for m in self.entry.models), None)
        adapter = self.get_adapter_for_model(model_id) if model_id else self.baseline
        return await adapter.check_connection(model_id)

    async def aclose(self) -> None:
        for _, adapter in self._routes:
            await adapter.aclose()
        await self.baseline.aclose()

    async def __aenter__(self) -> CompositeAdapter:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
