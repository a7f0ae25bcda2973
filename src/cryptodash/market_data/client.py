"""Price history client for Binance and CoinGecko, routed through the throttle.

URLs are built deterministically (fixed parameter order) because the exact
URL string is the throttle's cache key.
"""

import re
from urllib.parse import urlencode

from cryptodash.config import MarketDataSettings
from cryptodash.exceptions import UnknownSymbolError, UnsupportedTimeframeError
from cryptodash.logging import get_logger
from cryptodash.market_data.models import PriceHistory
from cryptodash.market_data.payloads import (
    BINANCE_SOURCE,
    COINGECKO_SOURCE,
    parse_binance_klines,
    parse_coingecko_market_chart,
)
from cryptodash.market_data.throttle import RequestThrottle

logger = get_logger(__name__)

# CoinGecko coin ids to Binance spot symbols
COINGECKO_TO_BINANCE: dict[str, str] = {
    "bitcoin": "BTCUSDT",
    "ethereum": "ETHUSDT",
    "ripple": "XRPUSDT",
    "cardano": "ADAUSDT",
    "solana": "SOLUSDT",
    "dogecoin": "DOGEUSDT",
    "polkadot": "DOTUSDT",
    "avalanche-2": "AVAXUSDT",
    "chainlink": "LINKUSDT",
    "polygon": "MATICUSDT",
}

# Dashboard timeframe to Binance kline interval. "1m"/"3m" are the one- and
# three-month views, drawn with daily candles.
TIMEFRAME_TO_INTERVAL: dict[str, str] = {
    "1h": "1h",
    "4h": "4h",
    "1d": "1d",
    "3d": "3d",
    "1w": "1w",
    "1m": "1d",
    "3m": "1d",
}

_CANDLES_PER_DAY: dict[str, int] = {"1h": 24, "4h": 6}

# Intraday timeframes ask CoinGecko for hourly points, everything else daily
_COINGECKO_INTERVALS: dict[str, str] = {"1h": "hourly", "4h": "hourly"}

_COIN_ID_PATTERN = re.compile(r"[a-z0-9-]+")


def check_timeframe(timeframe: str) -> str:
    """Return ``timeframe`` if it maps to an upstream interval, else raise."""
    if timeframe not in TIMEFRAME_TO_INTERVAL:
        raise UnsupportedTimeframeError(
            f"unsupported timeframe {timeframe!r}, expected one of {sorted(TIMEFRAME_TO_INTERVAL)}"
        )
    return timeframe


def to_coingecko_id(coin_id: str) -> str:
    """Normalize a CoinGecko coin id, rejecting anything but ``[a-z0-9-]``."""
    normalized = coin_id.strip().lower()
    if not _COIN_ID_PATTERN.fullmatch(normalized):
        raise UnknownSymbolError(f"invalid CoinGecko coin id {coin_id!r}")
    return normalized


def to_binance_symbol(symbol: str) -> str:
    """Map a CoinGecko id (or an already-Binance symbol) to a Binance symbol."""
    mapped = COINGECKO_TO_BINANCE.get(symbol.lower())
    if mapped is not None:
        return mapped
    if symbol.upper() in COINGECKO_TO_BINANCE.values():
        return symbol.upper()
    raise UnknownSymbolError(f"no Binance market for {symbol!r}")


class MarketDataClient:
    """Fetches price history through a shared RequestThrottle.

    Args:
        throttle: The process-wide throttle. Must be started before fetching.
        settings: Upstream base URLs, limits and default source.
    """

    def __init__(self, throttle: RequestThrottle, settings: MarketDataSettings) -> None:
        self._throttle = throttle
        self._settings = settings

    def binance_klines_url(self, symbol: str, timeframe: str = "1d", days: int = 90) -> str:
        """Build the Binance klines URL covering ``days`` of ``timeframe`` candles."""
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")
        interval = TIMEFRAME_TO_INTERVAL[check_timeframe(timeframe)]
        limit = min(days * _CANDLES_PER_DAY.get(timeframe, 1), self._settings.max_candles)
        query = urlencode(
            {"symbol": to_binance_symbol(symbol), "interval": interval, "limit": limit}
        )
        return f"{self._settings.binance_base_url}/api/v3/klines?{query}"

    def coingecko_market_chart_url(
        self, coin_id: str, days: int = 365, timeframe: str = "1d"
    ) -> str:
        """Build the CoinGecko market chart URL, ``days`` capped by settings.

        Intraday timeframes request hourly points, all others daily.
        """
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")
        interval = _COINGECKO_INTERVALS.get(check_timeframe(timeframe), "daily")
        query = urlencode(
            {
                "vs_currency": "usd",
                "days": min(days, self._settings.max_coingecko_days),
                "interval": interval,
            }
        )
        coin_id = to_coingecko_id(coin_id)
        return f"{self._settings.coingecko_base_url}/api/v3/coins/{coin_id}/market_chart?{query}"

    async def fetch_price_history(
        self,
        symbol: str,
        timeframe: str = "1d",
        days: int = 90,
        source: str | None = None,
    ) -> PriceHistory:
        """Fetch and parse a price history for ``symbol``.

        Args:
            symbol: CoinGecko coin id (e.g. "bitcoin"); Binance symbols are
                also accepted for the Binance source.
            timeframe: Candle timeframe. CoinGecko only distinguishes hourly
                (1h, 4h) from daily.
            days: Days of history to cover.
            source: "binance" or "coingecko"; settings default when None.

        Raises:
            UnknownSymbolError: Symbol or source cannot be mapped.
            UnsupportedTimeframeError: Timeframe has no upstream interval.
            MalformedPayloadError: Upstream payload failed validation.
            UpstreamError / ThrottleError: Fetch failed.
        """
        source = source or self._settings.default_source

        if source == BINANCE_SOURCE:
            url = self.binance_klines_url(symbol, timeframe, days)
            raw = await self._throttle.request(url)
            history = parse_binance_klines(raw, symbol)
        elif source == COINGECKO_SOURCE:
            url = self.coingecko_market_chart_url(symbol, days, timeframe)
            raw = await self._throttle.request(url)
            history = parse_coingecko_market_chart(raw, symbol)
        else:
            raise UnknownSymbolError(f"unknown market data source {source!r}")

        logger.info(
            "price_history_fetched",
            symbol=symbol,
            source=source,
            timeframe=timeframe,
            points=len(history),
        )
        return history
