from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from modelgate.providers.base import ProviderOptions
from modelgate.providers.retry import RetryPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    modelgate_env: Literal["local", "test", "prod"] = "local"
    modelgate_log_level: str = "INFO"
    modelgate_request_id_header: str = "X-Request-ID"

    # Dispatch policy shared by every vendor
    modelgate_timeout_seconds: float = 30.0
    modelgate_max_retries: int = 3
    modelgate_retry_base_delay_seconds: float = 1.0
    modelgate_max_bad_stream_frames: int = 20
    # Comma-separated vendor ids; empty means every vendor that has credentials
    modelgate_enabled_vendors: str = ""

    # Vendors. A base URL of None keeps the catalog default.
    openai_api_key: str | None = None
    openai_base_url: str | None = None

    anthropic_api_key: str | None = None
    anthropic_base_url: str | None = None

    gemini_api_key: str | None = None
    gemini_base_url: str | None = None

    ollama_base_url: str | None = None

    aihubmix_api_key: str | None = None
    aihubmix_base_url: str | None = None

    siliconflow_api_key: str | None = None
    siliconflow_base_url: str | None = None

    def api_key_for(self, vendor_id: str) -> str | None:
        return getattr(self, f"{vendor_id}_api_key", None)

    def base_url_for(self, vendor_id: str) -> str | None:
        return getattr(self, f"{vendor_id}_base_url", None)

    def enabled_vendors(self) -> list[str] | None:
        items = [v.strip() for v in self.modelgate_enabled_vendors.split(",") if v.strip()]
        return items or None

    def provider_options(self, vendor_id: str) -> ProviderOptions:
        return ProviderOptions(
            api_key=self.api_key_for(vendor_id),
            base_url=self.base_url_for(vendor_id),
            timeout_seconds=self.modelgate_timeout_seconds,
            retry=RetryPolicy(
                max_attempts=self.modelgate_max_retries,
                base_delay_seconds=self.modelgate_retry_base_delay_seconds,
            ),
            max_bad_frames=self.modelgate_max_bad_stream_frames,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
