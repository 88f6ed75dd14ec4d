from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, TypeVar
from uuid import uuid4

import httpx
from tenacity import RetryCallState

from modelgate.core.errors import (
    ConfigurationError,
    GatewayError,
    InvalidRequestError,
    ModelNotFoundError,
    RateLimitError,
    RequestCancelled,
    TransportError,
    UpstreamTimeoutError,
    VendorError,
)
from modelgate.core.metrics import (
    modelgate_request_duration_seconds,
    modelgate_requests_total,
    modelgate_retries_total,
)
from modelgate.domain.chat import (
    ChatMessage,
    CompletionRequest,
    CompletionResponse,
    StreamChunk,
    estimate_tokens,
    has_image_content,
)
from modelgate.domain.models import BackendFamily, ModelDescriptor, VendorEntry
from modelgate.providers.retry import RetryPolicy, parse_retry_after, retrying
from modelgate.providers.streaming import ChunkStream, FrameDecoder, StreamState

log = logging.getLogger(__name__)

T = TypeVar("T")

_JSON_RESPONSE_FORMATS = ("json_object", "json_schema")


@dataclass(frozen=True)
class ProviderOptions:
    """Caller-supplied settings bound to one adapter instance."""

    api_key: str | None = None
    base_url: str | None = None
    api_version: str | None = None
    timeout_seconds: float = 30.0
    headers: Mapping[str, str] = field(default_factory=dict)
    transport: httpx.AsyncBaseTransport | None = None
    cancel_event: asyncio.Event | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    max_bad_frames: int = 20


def drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def safe_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def as_role(value: Any) -> Literal["system", "user", "assistant", "tool"]:
    if value in ("system", "user", "assistant", "tool"):
        return value
    return "assistant"


class BaseAdapter(ABC):
    """Shared behaviour of every vendor adapter.

    Subclasses translate requests and responses; this class owns validation,
    headers, the HTTP client, retry/backoff, cancellation and the streaming
    loop.
    """

    family: ClassVar[BackendFamily]

    def __init__(self, entry: VendorEntry, options: ProviderOptions | None = None) -> None:
        self.entry = entry
        self.options = options or ProviderOptions()
        self.base_url = (self.options.base_url or entry.base_url).rstrip("/")
        self.api_version = self.options.api_version or entry.api_version
        self._client: httpx.AsyncClient | None = None

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = self.options.timeout_seconds
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout, connect=min(10.0, timeout)),
                transport=self.options.transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> BaseAdapter:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # Catalog

    def get_models(self) -> list[ModelDescriptor]:
        return list(self.entry.models)

    def get_model(self, model_id: str) -> ModelDescriptor | None:
        return self.entry.get_model(model_id)

    # Validation

    def ensure_valid(self, request: CompletionRequest) -> ModelDescriptor:
        """Raise if the request cannot be served by the model it names."""
        model = self.get_model(request.model)
        if model is None:
            raise ModelNotFoundError(f"Model {request.model!r} is not available from {self.id}")
        if not request.messages:
            raise InvalidRequestError("messages must not be empty")

        caps = model.capabilities
        if request.tools and not caps.function_calling:
            raise InvalidRequestError(f"Model {model.id} does not support tool calls")

        temperature = request.temperature
        if temperature is not None:
            if temperature < 0:
                raise InvalidRequestError("temperature must not be negative")
            if model.max_temperature is not None and temperature > model.max_temperature:
                raise InvalidRequestError(
                    f"temperature {temperature} exceeds the maximum {model.max_temperature} of {model.id}"
                )
        if request.top_p is not None and not 0 <= request.top_p <= 1:
            raise InvalidRequestError("top_p must be between 0 and 1")
        if request.max_tokens is not None and request.max_tokens <= 0:
            raise InvalidRequestError("max_tokens must be positive")
        if not caps.vision and has_image_content(request.messages):
            raise InvalidRequestError(f"Model {model.id} does not accept image input")
        if (
            request.response_format
            and request.response_format.get("type") in _JSON_RESPONSE_FORMATS
            and not caps.json_mode
        ):
            raise InvalidRequestError(f"Model {model.id} does not support JSON mode")

        window = caps.context_window_tokens
        if window:
            needed = estimate_tokens(request.messages) + (request.max_tokens or 0)
            if needed > window:
                raise InvalidRequestError(
                    f"Request needs about {needed} tokens but {model.id} has a {window}-token context window"
                )
        return model

    def validate_request(self, request: CompletionRequest) -> bool:
        try:
            self.ensure_valid(request)
        except GatewayError as e:
            log.warning("provider.request.rejected", extra={"vendor": self.id, "model": request.model, "reason": e.detail})
            return False
        return True

    # HTTP

    def auth_headers(self) -> dict[str, str]:
        if self.entry.auth_mode == "api-key" and self.options.api_key:
            return {"Authorization": f"Bearer {self.options.api_key}"}
        return {}

    def build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self.entry.default_headers)
        headers.update(self.options.headers)
        headers.update(self.auth_headers())
        return headers

    def _raise_if_cancelled(self) -> None:
        event = self.options.cancel_event
        if event is not None and event.is_set():
            raise RequestCancelled(f"Request to {self.id} cancelled")

    async def _guard(self, aw: Awaitable[T]) -> T:
        """Await `aw`, abandoning it as soon as the cancel event fires."""
        event = self.options.cancel_event
        if event is None:
            return await aw
        work = asyncio.ensure_future(aw)
        if event.is_set():
            work.cancel()
            raise RequestCancelled(f"Request to {self.id} cancelled")
        waiter = asyncio.ensure_future(event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
        if work.cancelled():
            raise RequestCancelled(f"Request to {self.id} cancelled")
        return work.result()

    def _count_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        reason = "rate_limit" if isinstance(exc, RateLimitError) else "transport"
        modelgate_retries_total.labels(vendor=self.id, reason=reason).inc()

    async def dispatch(self, url: str, payload: dict[str, Any], *, stream: bool = False) -> httpx.Response:
        """POST `payload` to `url` under the retry policy.

        With ``stream=True`` the returned response body is unread and the
        caller must close it.
        """
        policy = self.options.retry
        retry = retrying(
            policy,
            sleep=lambda seconds: self._guard(policy.sleep(seconds)),
            on_retry=self._count_retry,
        )
        return await retry(self._send_once, url, payload, stream)

    async def _send_once(self, url: str, payload: dict[str, Any], stream: bool) -> httpx.Response:
        self._raise_if_cancelled()
        request = self.client.build_request("POST", url, json=payload, headers=self.build_headers())
        try:
            resp = await self._guard(self.client.send(request, stream=stream))
        except httpx.TimeoutException as e:
            log.warning("provider.dispatch.timeout", extra={"vendor": self.id, "url": url})
            raise UpstreamTimeoutError(f"{self.id} request timed out") from e
        except httpx.TransportError as e:
            log.warning("provider.dispatch.network_error", extra={"vendor": self.id, "url": url, "error": str(e)})
            raise TransportError(f"{self.id} request failed: {e}") from e

        if resp.status_code == 429:
            retry_after = parse_retry_after(resp.headers.get("Retry-After"))
            await resp.aclose()
            raise RateLimitError(f"{self.id} rate limited the request", retry_after=retry_after)

        if not resp.is_success:
            body = (await resp.aread()).decode("utf-8", errors="replace")
            await resp.aclose()
            raise VendorError(resp.status_code, body, vendor=self.id)
        return resp

    def _read_json(self, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except json.JSONDecodeError as e:
            raise VendorError(resp.status_code, resp.text, vendor=self.id) from e
        if not isinstance(data, dict):
            raise VendorError(resp.status_code, resp.text, vendor=self.id)
        return data

    # Operations

    async def chat(self, request: CompletionRequest) -> CompletionResponse:
        self.ensure_valid(request)
        payload = self.build_payload(request, stream=False)
        started = time.perf_counter()
        status = "error"
        try:
            resp = await self.dispatch(self.chat_url(request), payload)
            out = self.parse_response(self._read_json(resp), request)
            status = "ok"
            return out
        except GatewayError as e:
            status = e.code
            raise
        finally:
            self._observe(request.model, False, status, started)

    async def chat_stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        self.ensure_valid(request)
        payload = self.build_payload(request, stream=True)
        started = time.perf_counter()
        # stays "aborted" when the consumer stops iterating early
        status = "aborted"
        try:
            response = await self.dispatch(self.stream_url(request), payload, stream=True)
            chunks = ChunkStream(
                response,
                self.frame_decoder(),
                self.to_stream_chunk,
                StreamState(response_id=self.new_stream_id(), model=request.model),
                vendor=self.id,
                guard=self._guard,
                check_cancelled=self._raise_if_cancelled,
                max_bad_frames=self.options.max_bad_frames,
            )
            async with chunks:
                async for chunk in chunks:
                    yield chunk
            status = "ok"
        except GatewayError as e:
            status = e.code
            raise
        finally:
            self._observe(request.model, True, status, started)

    async def check_connection(self, model: str | None = None) -> bool:
        """Send a one-token probe to confirm credentials and endpoint work."""
        if self.entry.auth_mode == "api-key" and not self.options.api_key:
            raise ConfigurationError(f"API key for {self.id} is not configured")
        model_id = model or next((m.id for m in self.entry.models), None)
        if not model_id:
            raise ConfigurationError(f"No model available to test {self.id}")
        probe = CompletionRequest(
            model=model_id,
            messages=[ChatMessage(role="user", content="Hello")],
            max_tokens=1,
            temperature=0,
        )
        resp = await self.chat(probe)
        ok = bool(resp.choices)
        log.info("provider.connection.checked", extra={"vendor": self.id, "model": model_id, "ok": ok})
        return ok

    def _observe(self, model: str, stream: bool, status: str, started: float) -> None:
        labels = {"vendor": self.id, "model": model, "stream": str(stream).lower()}
        modelgate_requests_total.labels(status=status, **labels).inc()
        modelgate_request_duration_seconds.labels(**labels).observe(time.perf_counter() - started)

    # Translation hooks

    def new_stream_id(self) -> str:
        return f"chatcmpl_{uuid4().hex}"

    def stream_url(self, request: CompletionRequest) -> str:
        return self.chat_url(request)

    @abstractmethod
    def chat_url(self, request: CompletionRequest) -> str:
        raise NotImplementedError

    @abstractmethod
    def build_payload(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def parse_response(self, data: dict[str, Any], request: CompletionRequest) -> CompletionResponse:
        raise NotImplementedError

    @abstractmethod
    def frame_decoder(self) -> FrameDecoder:
        raise NotImplementedError

    @abstractmethod
    def to_stream_chunk(self, payload: dict[str, Any], state: StreamState) -> StreamChunk | None:
        raise NotImplementedError
