"""CTO: custom trend oscillator built from four smoothed moving averages.

The four lines are SMMAs of the bar midpoint ``(high + low) / 2``. Close-only
series use the close as the midpoint. With the default periods:

    v1 = smma(15)   m1 = smma(19)   m2 = smma(25)   v2 = smma(29)

Trend state per bar:
    bearish when v1 < m1, v1 < v2 and m2 < v2 all hold
    bullish when none of them holds
    neutral on any disagreement
"""

from datetime import datetime

from cryptodash.indicators.models import CTOPoint, Crossover, TrendSignal
from cryptodash.indicators.moving_averages import calculate_smma

DEFAULT_CTO_PERIODS = (15, 19, 25, 29)


def classify_trend(v1: float, m1: float, m2: float, v2: float) -> TrendSignal:
    """Trend state for one bar from the four line values."""
    fast_below_v2 = v1 < v2
    if (v1 < m1) != fast_below_v2 or (m2 < v2) != fast_below_v2:
        return TrendSignal.NEUTRAL
    if fast_below_v2:
        return TrendSignal.BEARISH
    return TrendSignal.BULLISH


def trend_crossover(previous: TrendSignal, current: TrendSignal) -> Crossover:
    """Crossover event when the trend state turns bullish or bearish."""
    if current == TrendSignal.BULLISH and previous != TrendSignal.BULLISH:
        return Crossover.BULLISH
    if current == TrendSignal.BEARISH and previous != TrendSignal.BEARISH:
        return Crossover.BEARISH
    return Crossover.NONE


def calculate_cto(
    prices: list[float],
    periods: tuple[int, int, int, int] = DEFAULT_CTO_PERIODS,
    timestamps: list[datetime] | None = None,
) -> list[CTOPoint]:
    """Compute the CTO series.

    Args:
        prices: Ordered bar midpoints or closes (oldest first).
        periods: SMMA periods of v1, m1, m2 and v2.
        timestamps: Optional bar timestamps, one per price.

    Returns:
        ``len(prices) - max(periods) + 1`` points, the first closing on price
        index ``max(periods) - 1``; empty when the history is too short. The
        first point always reports Crossover.NONE.
    """
    if timestamps is not None and len(timestamps) != len(prices):
        raise ValueError(
            f"timestamps ({len(timestamps)}) and prices ({len(prices)}) differ in length"
        )

    lines = [calculate_smma(prices, period) for period in periods]
    count = min(len(line) for line in lines)
    if count == 0:
        return []

    # Right-align every line on the last bar
    v1, m1, m2, v2 = (line[len(line) - count :] for line in lines)
    offset = len(prices) - count

    points: list[CTOPoint] = []
    previous: TrendSignal | None = None
    for k in range(count):
        signal = classify_trend(v1[k], m1[k], m2[k], v2[k])
        crossover = trend_crossover(previous, signal) if previous is not None else Crossover.NONE
        points.append(
            CTOPoint(
                value=v1[k] - v2[k],
                signal=signal,
                crossover=crossover,
                timestamp=timestamps[offset + k] if timestamps is not None else None,
            )
        )
        previous = signal
    return points
