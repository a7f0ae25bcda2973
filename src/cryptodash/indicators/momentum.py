"""Momentum oscillators: RSI with Wilder smoothing and RSI zone classification.

RSI zero-loss policy: when the smoothed average loss is exactly zero the
ratio avg_gain / avg_loss is undefined, and RSI is reported as exactly 100.
This keeps NaN and inf out of downstream signal strength math.
"""

from cryptodash.indicators.models import RSIZone


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def calculate_rsi(prices: list[float], period: int = 14) -> list[float]:
    """Compute the Relative Strength Index using Wilder's smoothing.

    1. Seed average gain and loss from the first ``period`` price deltas
       (sum of gains / period, sum of absolute losses / period).
    2. For each later delta:
           avg_gain = (avg_gain * (period - 1) + gain) / period
           avg_loss = (avg_loss * (period - 1) + loss) / period
    3. RSI = 100 - 100 / (1 + avg_gain / avg_loss), or 100 when avg_loss == 0.

    Args:
        prices: Ordered closing prices (oldest first).
        period: RSI lookback in price deltas.

    Returns:
        ``len(prices) - period`` values in [0, 100]; value ``j`` belongs to
        price index ``period + j``. Empty list when fewer than
        ``period + 1`` prices are given.
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(prices) < period + 1:
        return []

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        change = prices[i] - prices[i - 1]
        if change > 0:
            gains += change
        else:
            losses += -change

    avg_gain = gains / period
    avg_loss = losses / period
    rsi_values = [_rsi_from_averages(avg_gain, avg_loss)]

    for i in range(period + 1, len(prices)):
        change = prices[i] - prices[i - 1]
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0

        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        rsi_values.append(_rsi_from_averages(avg_gain, avg_loss))

    return rsi_values


def classify_rsi(
    value: float,
    oversold: float = 30.0,
    overbought: float = 70.0,
) -> RSIZone:
    """Classify an RSI reading. Both boundaries are inclusive."""
    if value <= oversold:
        return RSIZone.OVERSOLD
    if value >= overbought:
        return RSIZone.OVERBOUGHT
    return RSIZone.NEUTRAL
