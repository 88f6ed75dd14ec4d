from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class BackendFamily(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    SILICONFLOW = "siliconflow"
    OLLAMA = "ollama"
    COMPOSITE = "composite"


AuthMode = Literal["none", "api-key"]


class ModelCapabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    context_window_tokens: int | None = None
    function_calling: bool = False
    vision: bool = False
    reasoning: bool = False
    json_mode: bool = False


class ModelDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Vendor-scoped model id")
    name: str
    description: str | None = None
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)
    max_temperature: float | None = None
    enabled: bool = True


class TransportCapabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    streaming: bool = True
    batch_requests: bool = False


class CompositeRoute(BaseModel):
    """One underlying model family behind a composite vendor account."""

    model_config = ConfigDict(frozen=True)

    name: str
    family: str
    base_url: str
    prefix: str | None = Field(None, description="Model ids starting with this prefix use the route")


class VendorWebsite(BaseModel):
    model_config = ConfigDict(frozen=True)

    official: str | None = None
    api_docs: str | None = None
    pricing: str | None = None
    api_key_url: str | None = None
    status: str | None = None


class VendorEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    base_url: str
    auth_mode: AuthMode = "api-key"
    # Kept as a plain string so that the factory can report unknown families.
    family: str
    api_version: str | None = None
    default_headers: dict[str, str] = Field(default_factory=dict)
    models: tuple[ModelDescriptor, ...] = ()
    transport: TransportCapabilities = Field(default_factory=TransportCapabilities)
    routes: tuple[CompositeRoute, ...] = ()
    default_route: CompositeRoute | None = None
    description: str | None = None
    website: VendorWebsite = Field(default_factory=VendorWebsite)

    def get_model(self, model_id: str) -> ModelDescriptor | None:
        return next((m for m in self.models if m.id == model_id), None)
