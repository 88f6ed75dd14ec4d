from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from modelgate.providers.base import ProviderOptions
from modelgate.providers.factory import Provider, create_provider
from modelgate.providers.retry import RetryPolicy


class SleepRecorder:
    """Stands in for asyncio.sleep so that backoff delays can be asserted."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_provider(sleeps: SleepRecorder) -> Callable[..., Provider]:
    def _make(vendor_id: str, handler: Callable[[httpx.Request], httpx.Response], **overrides) -> Provider:
        options = {
            "api_key": "test-key",
            "transport": httpx.MockTransport(handler),
            "retry": RetryPolicy(max_attempts=3, base_delay_seconds=1.0, sleep=sleeps),
            **overrides,
        }
        return create_provider(vendor_id, ProviderOptions(**options))

    return _make