"""Static catalog of supported vendors and the models each one serves."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from modelgate.core.errors import ConfigurationError
from modelgate.domain.models import (
    BackendFamily,
    CompositeRoute,
    ModelCapabilities,
    ModelDescriptor,
    VendorEntry,
    VendorWebsite,
)


def _model(
    model_id: str,
    name: str | None = None,
    *,
    context: int | None = None,
    tools: bool = False,
    vision: bool = False,
    reasoning: bool = False,
    json_mode: bool = False,
    max_temperature: float | None = None,
    description: str | None = None,
) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=name or model_id,
        description=description,
        capabilities=ModelCapabilities(
            context_window_tokens=context,
            function_calling=tools,
            vision=vision,
            reasoning=reasoning,
            json_mode=json_mode,
        ),
        max_temperature=max_temperature,
    )


OPENAI_MODELS = (
    _model("gpt-4.1-nano", context=128000, tools=True, vision=True, reasoning=True, json_mode=True, max_temperature=2.0,
           description="Multimodal general-purpose model with text and image input"),
    _model("gpt-4o", "GPT-4o", context=128000, tools=True, vision=True, reasoning=True, json_mode=True, max_temperature=2.0),
    _model("gpt-4-turbo", "GPT-4 Turbo", context=128000, tools=True, reasoning=True, json_mode=True, max_temperature=2.0,
           description="Faster GPT-4 variant"),
    _model("gpt-3.5-turbo", "GPT-3.5 Turbo", context=16385, tools=True, json_mode=True, max_temperature=2.0,
           description="Cost-effective model for everyday tasks"),
)

ANTHROPIC_MODELS = (
    _model("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", context=200000, tools=True, vision=True, reasoning=True,
           max_temperature=1.0),
    _model("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", context=200000, tools=True, max_temperature=1.0),
    _model("claude-3-opus-20240229", "Claude 3 Opus", context=200000, tools=True, vision=True, reasoning=True,
           max_temperature=1.0),
)

GEMINI_MODELS = (
    _model("gemini-1.5-pro", "Gemini 1.5 Pro", context=1000000, tools=True, vision=True, reasoning=True, json_mode=True,
           max_temperature=2.0),
    _model("gemini-1.5-flash", "Gemini 1.5 Flash", context=1000000, tools=True, vision=True, json_mode=True,
           max_temperature=2.0),
    _model("gemini-2.0-flash", "Gemini 2.0 Flash", context=1000000, tools=True, vision=True, json_mode=True,
           max_temperature=2.0),
)

OLLAMA_MODELS = (
    _model("llama3.1", "Llama 3.1 8B", context=8192, json_mode=True, max_temperature=2.0),
    _model("qwen2.5", "Qwen 2.5 7B", context=32768, json_mode=True, max_temperature=2.0),
    _model("mistral", "Mistral 7B", context=32768, max_temperature=2.0),
    _model("llava", "LLaVA", context=4096, vision=True, max_temperature=2.0),
)

AIHUBMIX_MODELS = (
    _model("gpt-4.1-nano", context=128000, tools=True, vision=True, reasoning=True, json_mode=True, max_temperature=2.0),
    _model("gpt-4o", "GPT-4o", context=128000, tools=True, reasoning=True, json_mode=True, max_temperature=2.0),
    _model("gpt-3.5-turbo", "GPT-3.5 Turbo", context=16385, tools=True, json_mode=True, max_temperature=2.0),
    _model("claude-3-opus", "Claude 3 Opus", context=200000, tools=True, vision=True, reasoning=True, json_mode=True,
           max_temperature=1.0),
    _model("claude-3-sonnet", "Claude 3 Sonnet", context=200000, tools=True, vision=True, reasoning=True,
           json_mode=True, max_temperature=1.0),
    _model("gemini-1.5-pro", "Gemini 1.5 Pro", context=1000000, tools=True, vision=True, reasoning=True,
           json_mode=True, max_temperature=1.0),
    _model("DeepSeek-Prover-V2-671B", context=16000, tools=True, reasoning=True, json_mode=True, max_temperature=1.0),
    _model("llama-3-70b", "Llama 3 70B", context=8192, tools=True, reasoning=True, json_mode=True, max_temperature=2.0),
    _model("mistral-medium", "Mistral Medium", context=32768, tools=True, json_mode=True, max_temperature=1.0),
    _model("DeepSeek-R1", context=4000, tools=True, reasoning=True, json_mode=True, max_temperature=1.0),
)

SILICONFLOW_MODELS = (
    _model("deepseek-ai/DeepSeek-R1-Distill-Qwen-7B", context=16000, tools=True, reasoning=True, json_mode=True,
           max_temperature=1.0),
    _model("deepseek-chat", "Deepseek Chat", context=16000, reasoning=True, json_mode=True, max_temperature=1.0),
    _model("Qwen/Qwen3-235B-A22B", "Qwen3 235B", context=32000, tools=True, reasoning=True, json_mode=True,
           max_temperature=1.0),
    _model("Pro/deepseek-ai/DeepSeek-V3", context=16000, tools=True, reasoning=True, json_mode=True,
           max_temperature=1.0),
)


VENDOR_CATALOG: Mapping[str, VendorEntry] = MappingProxyType({
    entry.id: entry
    for entry in (
        VendorEntry(
            id="openai",
            name="OpenAI",
            base_url="https://api.openai.com/v1",
            family=BackendFamily.OPENAI.value,
            models=OPENAI_MODELS,
            website=VendorWebsite(
                official="https://openai.com",
                api_docs="https://platform.openai.com/docs/api-reference",
                pricing="https://openai.com/pricing",
                api_key_url="https://platform.openai.com/api-keys",
                status="https://status.openai.com",
            ),
        ),
        VendorEntry(
            id="anthropic",
            name="Anthropic",
            base_url="https://api.anthropic.com/v1",
            api_version="2023-06-01",
            family=BackendFamily.ANTHROPIC.value,
            default_headers={"anthropic-version": "2023-06-01"},
            models=ANTHROPIC_MODELS,
            website=VendorWebsite(
                official="https://anthropic.com",
                api_docs="https://docs.anthropic.com/claude/reference",
                pricing="https://www.anthropic.com/pricing",
                api_key_url="https://console.anthropic.com/settings/keys",
            ),
        ),
        VendorEntry(
            id="gemini",
            name="Google Gemini",
            base_url="https://generativelanguage.googleapis.com",
            api_version="v1beta",
            family=BackendFamily.GEMINI.value,
            models=GEMINI_MODELS,
            website=VendorWebsite(
                official="https://ai.google.dev",
                api_docs="https://ai.google.dev/docs",
                pricing="https://ai.google.dev/pricing",
                api_key_url="https://ai.google.dev/docs/api-key",
            ),
        ),
        VendorEntry(
            id="ollama",
            name="Ollama",
            base_url="http://localhost:11434/api",
            auth_mode="none",
            family=BackendFamily.OLLAMA.value,
            models=OLLAMA_MODELS,
            website=VendorWebsite(
                official="https://ollama.ai",
                api_docs="https://github.com/ollama/ollama/blob/main/docs/api.md",
            ),
        ),
        VendorEntry(
            id="aihubmix",
            name="AiHubMix",
            base_url="https://aihubmix.com/v1",
            family=BackendFamily.COMPOSITE.value,
            models=AIHUBMIX_MODELS,
            routes=(
                CompositeRoute(
                    name="aihubmix-anthropic",
                    family=BackendFamily.ANTHROPIC.value,
                    base_url="https://aihubmix.com/claude/v1",
                    prefix="claude",
                ),
                CompositeRoute(
                    name="aihubmix-gemini",
                    family=BackendFamily.GEMINI.value,
                    base_url="https://aihubmix.com/gemini",
                    prefix="gemini",
                ),
            ),
            default_route=CompositeRoute(
                name="aihubmix-openai",
                family=BackendFamily.OPENAI.value,
                base_url="https://aihubmix.com/v1",
            ),
            website=VendorWebsite(
                official="https://aihubmix.com",
                api_docs="https://doc.aihubmix.com",
                pricing="https://aihubmix.com/pricing",
                api_key_url="https://aihubmix.com/token",
            ),
        ),
        VendorEntry(
            id="siliconflow",
            name="SiliconFlow",
            base_url="https://api.siliconflow.cn/v1",
            family=BackendFamily.SILICONFLOW.value,
            models=SILICONFLOW_MODELS,
            website=VendorWebsite(
                official="https://siliconflow.cn",
                api_docs="https://siliconflow.cn/docs/api",
                pricing="https://siliconflow.cn/pricing",
                api_key_url="https://cloud.siliconflow.cn/account/ak",
            ),
        ),
    )
})


def list_vendor_ids() -> list[str]:
    return list(VENDOR_CATALOG)


def get_vendor_entry(vendor_id: str) -> VendorEntry:
    try:
        return VENDOR_CATALOG[vendor_id]
    except KeyError as e:
        raise ConfigurationError(f"Unknown vendor: {vendor_id}") from e
