from __future__ import annotations

from dataclasses import dataclass, field

from modelgate.core.errors import ConfigurationError
from modelgate.domain.models import ModelDescriptor
from modelgate.providers.factory import Provider


@dataclass
class ProviderRegistry:
    _providers: dict[str, Provider] = field(default_factory=dict)

    def register(self, vendor_id: str, adapter: Provider) -> None:
        self._providers[vendor_id] = adapter

    def get(self, vendor_id: str) -> Provider:
        try:
            return self._providers[vendor_id]
        except KeyError as e:
            raise ConfigurationError(f"Vendor {vendor_id!r} is not configured") from e

    def list_vendors(self) -> list[str]:
        return sorted(self._providers.keys())

    def list_models(self) -> list[tuple[str, ModelDescriptor]]:
        items: list[tuple[str, ModelDescriptor]] = []
        for vendor_id in self.list_vendors():
            items.extend((vendor_id, m) for m in self._providers[vendor_id].get_models() if m.enabled)
        return items

    async def aclose(self) -> None:
        for adapter in self._providers.values():
            await adapter.aclose()
