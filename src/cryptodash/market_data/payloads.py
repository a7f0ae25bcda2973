"""Typed upstream payloads and their conversion into PriceHistory.

Raw JSON from Binance and CoinGecko is validated here, at the parsing
boundary. Anything the indicator engine could choke on (wrong shape,
non-numeric or non-positive closes, NaN, out-of-order bars) is rejected
with MalformedPayloadError instead of flowing downstream.

Binance kline row layout:
    [open_time_ms, "open", "high", "low", "close", "volume", close_time_ms, ...]

CoinGecko /coins/{id}/market_chart layout:
    {"prices": [[ts_ms, price], ...], "total_volumes": [...], "market_caps": [...]}
"""

import math
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from cryptodash.exceptions import MalformedPayloadError
from cryptodash.market_data.models import PriceHistory

BINANCE_SOURCE = "binance"
COINGECKO_SOURCE = "coingecko"


class BinanceKline(BaseModel):
    """One Binance candlestick. Numeric strings are coerced to float."""

    model_config = ConfigDict(frozen=True)

    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int

    @classmethod
    def from_row(cls, row: Any) -> "BinanceKline":
        """Build a kline from Binance's positional array row."""
        if not isinstance(row, (list, tuple)) or len(row) < 7:
            raise MalformedPayloadError(f"kline row must be an array of >= 7 fields: {row!r}")
        try:
            return cls(
                open_time=row[0],
                open=row[1],
                high=row[2],
                low=row[3],
                close=row[4],
                volume=row[5],
                close_time=row[6],
            )
        except ValidationError as e:
            raise MalformedPayloadError(f"invalid kline row: {e.error_count()} errors") from e


class CoinGeckoMarketChart(BaseModel):
    """CoinGecko market chart response. Only ``prices`` is required."""

    prices: list[tuple[float, float]]
    total_volumes: list[tuple[float, float]] = []
    market_caps: list[tuple[float, float]] = []


def _to_datetime(timestamp_ms: float) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def _build_history(
    symbol: str,
    source: str,
    points: list[tuple[float, float]],
) -> PriceHistory:
    """Validate (timestamp_ms, close) pairs and wrap them in a PriceHistory."""
    if not points:
        raise MalformedPayloadError(f"{source} returned no price points for {symbol}")

    previous_ts: float | None = None
    for ts, close in points:
        if not math.isfinite(close) or close <= 0:
            raise MalformedPayloadError(f"{source} returned invalid close {close!r} for {symbol}")
        if previous_ts is not None and ts <= previous_ts:
            raise MalformedPayloadError(f"{source} price points for {symbol} are not ascending")
        previous_ts = ts

    return PriceHistory(
        symbol=symbol,
        source=source,
        timestamps=[_to_datetime(ts) for ts, _ in points],
        closes=[close for _, close in points],
    )


def parse_binance_klines(raw: Any, symbol: str) -> PriceHistory:
    """Convert a raw /api/v3/klines response into a PriceHistory."""
    if not isinstance(raw, list):
        raise MalformedPayloadError(
            f"binance klines for {symbol} must be a JSON array, got {type(raw).__name__}"
        )
    klines = [BinanceKline.from_row(row) for row in raw]
    return _build_history(symbol, BINANCE_SOURCE, [(k.open_time, k.close) for k in klines])


def parse_coingecko_market_chart(raw: Any, symbol: str) -> PriceHistory:
    """Convert a raw /coins/{id}/market_chart response into a PriceHistory."""
    try:
        chart = CoinGeckoMarketChart.model_validate(raw)
    except ValidationError as e:
        raise MalformedPayloadError(
            f"invalid coingecko market chart for {symbol}: {e.error_count()} errors"
        ) from e
    return _build_history(symbol, COINGECKO_SOURCE, chart.prices)
