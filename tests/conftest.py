"""Shared test fixtures for cryptodash."""

from collections.abc import Callable

import httpx
import pytest

from cryptodash.config import IndicatorSettings, ThrottleSettings


class FakeClock:
    """Manually advanced monotonic clock for cache TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def indicator_settings() -> IndicatorSettings:
    """Default indicator settings (RSI 14, MACD 8/21/5)."""
    return IndicatorSettings()


@pytest.fixture
def fast_throttle_settings() -> ThrottleSettings:
    """Throttle settings with no spacing and near-instant 429 back-off."""
    return ThrottleSettings(
        min_interval=0.0,
        cache_ttl=300.0,
        rate_limit_backoff=0.01,
        request_timeout=1.0,
        sweep_interval=600.0,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    """Clock starting at t=1000s that only moves when advanced."""
    return FakeClock()


@pytest.fixture
def make_http_client() -> Callable[[Callable], httpx.AsyncClient]:
    """Factory for an AsyncClient whose requests are answered by ``handler``."""

    def _make(handler: Callable) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
