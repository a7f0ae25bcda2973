"""MACD (Moving Average Convergence Divergence) with crossover detection.

Alignment of the three series, for ``n`` prices:
    fast EMA:    n - fast + 1 points, first at price index fast - 1
    slow EMA:    n - slow + 1 points, first at price index slow - 1
    MACD line:   fast_ema[i + (slow - fast)] - slow_ema[i], len(slow EMA) points
    signal line: EMA(MACD line, signal), first at MACD line index signal - 1
    output:      one MACDPoint per signal line value, the first at price
                 index slow + signal - 2
"""

from datetime import datetime

from cryptodash.indicators.models import Crossover, MACDPoint
from cryptodash.indicators.moving_averages import calculate_ema


def macd_price_offset(slow_period: int = 21, signal_period: int = 5) -> int:
    """Price index that the first MACDPoint closes on."""
    return slow_period + signal_period - 2


def detect_crossover(
    prev_macd: float,
    prev_signal: float,
    macd: float,
    signal: float,
) -> Crossover:
    """Classify the MACD/signal relationship change between two consecutive points.

    A move from ``prev_macd <= prev_signal`` to ``macd > signal`` is bullish,
    the mirror move is bearish, anything else (including touching without
    crossing) is NONE.
    """
    if prev_macd <= prev_signal and macd > signal:
        return Crossover.BULLISH
    if prev_macd >= prev_signal and macd < signal:
        return Crossover.BEARISH
    return Crossover.NONE


def classify_crossovers(macd_line: list[float], signal_line: list[float]) -> list[Crossover]:
    """Crossover event at every index of two equally indexed series.

    Index 0 has no predecessor and is always NONE.
    """
    crossovers = [Crossover.NONE] if macd_line and signal_line else []
    for i in range(1, min(len(macd_line), len(signal_line))):
        crossovers.append(
            detect_crossover(macd_line[i - 1], signal_line[i - 1], macd_line[i], signal_line[i])
        )
    return crossovers


def calculate_macd(
    prices: list[float],
    fast_period: int = 8,
    slow_period: int = 21,
    signal_period: int = 5,
    timestamps: list[datetime] | None = None,
) -> list[MACDPoint]:
    """Compute MACD points with histogram and crossover events.

    The first point always reports Crossover.NONE since it has no
    predecessor.

    Args:
        prices: Ordered closing prices (oldest first).
        fast_period: Fast EMA period.
        slow_period: Slow EMA period. Must be greater than ``fast_period``.
        signal_period: EMA period of the signal line.
        timestamps: Optional bar timestamps, one per price. When given, each
            point carries the timestamp of the price bar it closes on.

    Returns:
        ``len(prices) - slow_period - signal_period + 2`` points, or an
        empty list when the history is too short.
    """
    if fast_period >= slow_period:
        raise ValueError(
            f"fast_period ({fast_period}) must be less than slow_period ({slow_period})"
        )
    if timestamps is not None and len(timestamps) != len(prices):
        raise ValueError(
            f"timestamps ({len(timestamps)}) and prices ({len(prices)}) differ in length"
        )
    if len(prices) < slow_period:
        return []

    fast_ema = calculate_ema(prices, fast_period)
    slow_ema = calculate_ema(prices, slow_period)

    start_index = slow_period - fast_period
    macd_line = [fast_ema[i + start_index] - slow_value for i, slow_value in enumerate(slow_ema)]

    signal_line = calculate_ema(macd_line, signal_period)
    if not signal_line:
        return []

    # Drop the MACD values that precede the first signal value so both
    # series index the same bars
    aligned_macd = macd_line[signal_period - 1 :]
    crossovers = classify_crossovers(aligned_macd, signal_line)
    offset = macd_price_offset(slow_period, signal_period)

    return [
        MACDPoint(
            macd=macd_value,
            signal=signal_value,
            histogram=macd_value - signal_value,
            crossover=crossover,
            timestamp=timestamps[offset + k] if timestamps is not None else None,
        )
        for k, (macd_value, signal_value, crossover) in enumerate(
            zip(aligned_macd, signal_line, crossovers)
        )
    ]
