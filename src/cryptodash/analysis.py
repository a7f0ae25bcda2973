"""Technical analysis service: price history in, indicator and signal report out.

Coordinates the fetch layer, the indicator engine and the signal generator:
1. Fetch price history through the market data client (throttled, cached)
2. Compute RSI, MACD and CTO on the closes, threading bar timestamps through
3. Generate buy/sell/hold signals from the same RSI and MACD series
4. Assemble a TechnicalAnalysisReport for the API layer
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from cryptodash.config import IndicatorSettings
from cryptodash.exceptions import InsufficientDataError
from cryptodash.indicators import (
    CTOPoint,
    MACDPoint,
    RSIZone,
    calculate_cto,
    calculate_macd,
    calculate_rsi,
    classify_rsi,
)
from cryptodash.logging import get_logger
from cryptodash.market_data.client import MarketDataClient
from cryptodash.market_data.models import PriceHistory
from cryptodash.signals import (
    SignalStats,
    TradingSignal,
    align_rsi_to_macd,
    get_latest_signal,
    get_signal_stats,
    signals_from_series,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class RSISummary:
    """Latest RSI reading with its zone and the trailing values."""

    current: float
    zone: RSIZone
    values: list[float]


@dataclass(frozen=True)
class TechnicalAnalysisReport:
    """Everything the dashboard shows for one instrument."""

    symbol: str
    source: str
    current_price: float
    rsi: RSISummary
    macd: MACDPoint
    cto: CTOPoint
    latest_signal: TradingSignal | None
    recent_signals: list[TradingSignal]
    stats: SignalStats
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def minimum_history(settings: IndicatorSettings) -> int:
    """Fewest prices for which RSI, MACD and CTO all produce at least one point."""
    return max(
        settings.rsi_period + 1,
        settings.macd_slow_period + settings.macd_signal_period - 1,
        max(settings.cto_periods),
    )


class TechnicalAnalysisService:
    """Runs the indicator and signal pipeline on fetched price history.

    Args:
        client: Market data client used by ``analyze_symbol``.
        settings: Indicator periods, thresholds and report sizes.
    """

    def __init__(self, client: MarketDataClient, settings: IndicatorSettings) -> None:
        self._client = client
        self._settings = settings

    def analyze(self, history: PriceHistory) -> TechnicalAnalysisReport:
        """Build a report from an already-fetched price history.

        Raises:
            InsufficientDataError: History too short for RSI, MACD or CTO.
        """
        settings = self._settings
        closes = history.closes

        rsi_values = calculate_rsi(closes, settings.rsi_period)
        macd_points = calculate_macd(
            closes,
            settings.macd_fast_period,
            settings.macd_slow_period,
            settings.macd_signal_period,
            timestamps=history.timestamps,
        )
        cto_points = calculate_cto(closes, settings.cto_periods, timestamps=history.timestamps)
        if not rsi_values or not macd_points or not cto_points:
            raise InsufficientDataError(
                f"{history.symbol}: need at least {minimum_history(settings)} prices, "
                f"got {len(closes)}"
            )

        aligned_rsi, aligned_macd = align_rsi_to_macd(rsi_values, macd_points, settings)
        signals = signals_from_series(aligned_rsi, aligned_macd, settings.rsi_oversold)
        stats = get_signal_stats(signals)
        latest_rsi = rsi_values[-1]

        report = TechnicalAnalysisReport(
            symbol=history.symbol,
            source=history.source,
            current_price=closes[-1],
            rsi=RSISummary(
                current=latest_rsi,
                zone=classify_rsi(latest_rsi, settings.rsi_oversold, settings.rsi_overbought),
                values=rsi_values[-settings.recent_rsi_values :],
            ),
            macd=macd_points[-1],
            cto=cto_points[-1],
            latest_signal=get_latest_signal(signals),
            recent_signals=signals[-settings.recent_signals :],
            stats=stats,
        )

        logger.info(
            "technical_analysis_complete",
            symbol=history.symbol,
            prices=len(closes),
            rsi=round(latest_rsi, 2),
            macd_crossover=report.macd.crossover.value,
            cto_signal=report.cto.signal.value,
            signals=stats.total,
            buy=stats.buy,
            sell=stats.sell,
        )
        return report

    async def analyze_symbol(
        self,
        symbol: str,
        timeframe: str = "1d",
        days: int = 90,
        source: str | None = None,
    ) -> TechnicalAnalysisReport:
        """Fetch price history for ``symbol`` and analyze it."""
        history = await self._client.fetch_price_history(symbol, timeframe, days, source)
        return self.analyze(history)
