"""RSI + MACD trading signal generator.

Rules:
- Buy when MACD crosses above its signal line and RSI has touched the
  oversold threshold since the last buy.
- Sell when MACD crosses below its signal line, regardless of RSI.
- Hold otherwise.

The "touched oversold" memory is a two-state machine (NEUTRAL,
RECENTLY_OVERSOLD) that lives only for the duration of one call.
"""

from datetime import datetime

from cryptodash.config import IndicatorSettings
from cryptodash.indicators.macd import calculate_macd, macd_price_offset
from cryptodash.indicators.models import Crossover, MACDPoint
from cryptodash.indicators.momentum import calculate_rsi
from cryptodash.logging import get_logger
from cryptodash.signals.models import SignalState, SignalStats, SignalType, TradingSignal

logger = get_logger(__name__)

#: Hold signals carry a fixed neutral strength.
HOLD_STRENGTH = 50.0


def buy_strength(rsi: float, histogram: float, oversold_threshold: float = 30.0) -> float:
    """Strength of a buy: 70 base, plus RSI depth below threshold, plus momentum."""
    return min(
        100.0,
        70 + (oversold_threshold - min(rsi, oversold_threshold)) + max(0.0, histogram * 10),
    )


def sell_strength(histogram: float) -> float:
    """Strength of a sell: 60 base plus histogram magnitude."""
    return min(100.0, 60 + max(0.0, abs(histogram) * 10))


def signals_from_series(
    rsi_values: list[float],
    macd_points: list[MACDPoint],
    oversold_threshold: float = 30.0,
) -> list[TradingSignal]:
    """Run the signal state machine over pre-aligned RSI and MACD series.

    ``rsi_values[k]`` and ``macd_points[k]`` must describe the same price
    bar. Extra trailing values in the longer series are ignored.

    Args:
        rsi_values: RSI per aligned bar.
        macd_points: MACD per aligned bar.
        oversold_threshold: RSI at or below this arms the buy rule.

    Returns:
        One TradingSignal per aligned bar.
    """
    state = SignalState.NEUTRAL
    signals: list[TradingSignal] = []

    for rsi, macd in zip(rsi_values, macd_points):
        if rsi <= oversold_threshold:
            state = SignalState.RECENTLY_OVERSOLD

        if macd.crossover == Crossover.BULLISH and state == SignalState.RECENTLY_OVERSOLD:
            signal = TradingSignal(
                type=SignalType.BUY,
                strength=buy_strength(rsi, macd.histogram, oversold_threshold),
                reason=(
                    f"MACD bullish crossover ({macd.macd:.3f}) + "
                    f"RSI recovery from oversold ({rsi:.1f})"
                ),
                timestamp=macd.timestamp,
                rsi=rsi,
                macd=macd,
            )
            state = SignalState.NEUTRAL
        elif macd.crossover == Crossover.BEARISH:
            signal = TradingSignal(
                type=SignalType.SELL,
                strength=sell_strength(macd.histogram),
                reason=f"MACD bearish crossover ({macd.macd:.3f})",
                timestamp=macd.timestamp,
                rsi=rsi,
                macd=macd,
            )
        else:
            signal = TradingSignal(
                type=SignalType.HOLD,
                strength=HOLD_STRENGTH,
                reason=f"RSI: {rsi:.1f}, MACD: {macd.macd:.3f}",
                timestamp=macd.timestamp,
                rsi=rsi,
                macd=macd,
            )

        signals.append(signal)

    return signals


def align_rsi_to_macd(
    rsi_values: list[float],
    macd_points: list[MACDPoint],
    settings: IndicatorSettings,
) -> tuple[list[float], list[MACDPoint]]:
    """Pair each MACD point with the RSI value of the same price bar.

    RSI value ``j`` closes on price index ``rsi_period + j`` and MACD point
    ``k`` on ``slow + signal - 2 + k``. MACD points with no RSI value for
    their bar are dropped.
    """
    macd_offset = macd_price_offset(settings.macd_slow_period, settings.macd_signal_period)
    aligned_rsi: list[float] = []
    aligned_macd: list[MACDPoint] = []
    for k, point in enumerate(macd_points):
        rsi_index = macd_offset + k - settings.rsi_period
        if 0 <= rsi_index < len(rsi_values):
            aligned_rsi.append(rsi_values[rsi_index])
            aligned_macd.append(point)
    return aligned_rsi, aligned_macd


def generate_trading_signals(
    prices: list[float],
    timestamps: list[datetime] | None = None,
    settings: IndicatorSettings | None = None,
) -> list[TradingSignal]:
    """Generate buy/sell/hold signals for a price series.

    RSI and MACD start at different price indices, so they are aligned by
    bar with ``align_rsi_to_macd`` before the state machine runs.

    Args:
        prices: Ordered closing prices (oldest first).
        timestamps: Optional bar timestamps, threaded into MACD points and
            signals.
        settings: Indicator periods and oversold threshold; defaults apply
            when None.

    Returns:
        Signals in chronological order; empty when either indicator lacks
        history.
    """
    settings = settings or IndicatorSettings()

    rsi_values = calculate_rsi(prices, settings.rsi_period)
    macd_points = calculate_macd(
        prices,
        settings.macd_fast_period,
        settings.macd_slow_period,
        settings.macd_signal_period,
        timestamps=timestamps,
    )

    if not rsi_values or not macd_points:
        logger.debug(
            "signals_insufficient_history",
            prices=len(prices),
            rsi_points=len(rsi_values),
            macd_points=len(macd_points),
        )
        return []

    aligned_rsi, aligned_macd = align_rsi_to_macd(rsi_values, macd_points, settings)
    return signals_from_series(aligned_rsi, aligned_macd, settings.rsi_oversold)


def get_latest_signal(signals: list[TradingSignal]) -> TradingSignal | None:
    """Return the most recent signal, or None for an empty series."""
    if not signals:
        return None
    return signals[-1]


def get_signal_stats(signals: list[TradingSignal]) -> SignalStats:
    """Count buy/sell/hold signals and the actionable share in percent."""
    buy = sum(1 for s in signals if s.type == SignalType.BUY)
    sell = sum(1 for s in signals if s.type == SignalType.SELL)
    hold = sum(1 for s in signals if s.type == SignalType.HOLD)
    total = len(signals)

    accuracy = round((buy + sell) / total * 100, 1) if total else 0.0
    return SignalStats(total=total, buy=buy, sell=sell, hold=hold, accuracy=accuracy)
