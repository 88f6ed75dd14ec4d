from __future__ import annotations

from modelgate.core.errors import ConfigurationError
from modelgate.domain.models import BackendFamily, VendorEntry
from modelgate.providers.anthropic_adapter import AnthropicAdapter
from modelgate.providers.base import BaseAdapter, ProviderOptions
from modelgate.providers.catalog import get_vendor_entry
from modelgate.providers.composite import CompositeAdapter
from modelgate.providers.gemini_adapter import GeminiAdapter
from modelgate.providers.ollama_adapter import OllamaAdapter
from modelgate.providers.openai_adapter import OpenAIAdapter
from modelgate.providers.siliconflow_adapter import SiliconFlowAdapter

Provider = BaseAdapter | CompositeAdapter

ADAPTER_TYPES: dict[BackendFamily, type[BaseAdapter]] = {
    BackendFamily.OPENAI: OpenAIAdapter,
    BackendFamily.ANTHROPIC: AnthropicAdapter,
    BackendFamily.GEMINI: GeminiAdapter,
    BackendFamily.SILICONFLOW: SiliconFlowAdapter,
    BackendFamily.OLLAMA: OllamaAdapter,
}


def _family(entry: VendorEntry) -> BackendFamily:
    try:
        return BackendFamily(entry.family)
    except ValueError as e:
        raise ConfigurationError(f"Unsupported backend family {entry.family!r} for vendor {entry.id}") from e


def _create_leaf(entry: VendorEntry, options: ProviderOptions) -> BaseAdapter:
    family = _family(entry)
    adapter_type = ADAPTER_TYPES.get(family)
    if adapter_type is None:
        raise ConfigurationError(f"Backend family {family.value!r} cannot serve vendor {entry.id} directly")
    return adapter_type(entry, options)


def create_adapter(entry: VendorEntry, options: ProviderOptions | None = None) -> Provider:
    options = options or ProviderOptions()
    if _family(entry) is BackendFamily.COMPOSITE:
        return CompositeAdapter(entry, options, build=_create_leaf)
    return _create_leaf(entry, options)


def create_provider(vendor_id: str, options: ProviderOptions | None = None) -> Provider:
    return create_adapter(get_vendor_entry(vendor_id), options)
