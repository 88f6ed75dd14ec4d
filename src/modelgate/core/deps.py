from __future__ import annotations

import logging

from fastapi import Request

from modelgate.core.config import Settings
from modelgate.core.errors import ConfigurationError
from modelgate.providers.catalog import get_vendor_entry, list_vendor_ids
from modelgate.providers.factory import create_adapter
from modelgate.providers.registry import ProviderRegistry

log = logging.getLogger(__name__)


def build_registry(settings: Settings) -> ProviderRegistry:
    """Instantiate an adapter for every vendor that is enabled and has credentials."""
    registry = ProviderRegistry()
    enabled = settings.enabled_vendors()
    for vendor_id in enabled or list_vendor_ids():
        entry = get_vendor_entry(vendor_id)
        if entry.auth_mode == "api-key" and not settings.api_key_for(vendor_id):
            log.info("registry.vendor.skipped", extra={"vendor": vendor_id, "reason": "no api key"})
            continue
        registry.register(vendor_id, create_adapter(entry, settings.provider_options(vendor_id)))
    log.info("registry.built", extra={"vendors": registry.list_vendors()})
    return registry


def get_provider_registry(request: Request) -> ProviderRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise ConfigurationError("Provider registry is not initialised")
    return registry
