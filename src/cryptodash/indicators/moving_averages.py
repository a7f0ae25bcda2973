"""Moving averages over ordered price series.

Every function returns a series that starts once ``period`` observations
exist, so output index ``i`` corresponds to input index ``i + period - 1``.
Short input degrades to an empty list rather than raising; only an invalid
``period`` raises.
"""


def _check_period(period: int) -> None:
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")


def calculate_sma(prices: list[float], period: int) -> list[float]:
    """Trailing simple moving average.

    Returns:
        ``len(prices) - period + 1`` values, or an empty list when there are
        fewer than ``period`` prices.
    """
    _check_period(period)
    if len(prices) < period:
        return []

    window_sum = sum(prices[:period])
    sma = [window_sum / period]
    for i in range(period, len(prices)):
        window_sum += prices[i] - prices[i - period]
        sma.append(window_sum / period)
    return sma


def calculate_ema(prices: list[float], period: int) -> list[float]:
    """Compute the Exponential Moving Average of a price series.

    Seeded with the simple average of the first ``period`` prices, then:
        multiplier = 2 / (period + 1)
        EMA_t = (price_t - EMA_{t-1}) * multiplier + EMA_{t-1}

    Args:
        prices: Ordered prices (oldest first).
        period: EMA lookback.

    Returns:
        ``len(prices) - period + 1`` values. Empty list if
        ``len(prices) < period``.
    """
    _check_period(period)
    if len(prices) < period:
        return []

    multiplier = 2 / (period + 1)
    ema = sum(prices[:period]) / period
    values = [ema]
    for price in prices[period:]:
        ema = (price - ema) * multiplier + ema
        values.append(ema)
    return values


def calculate_smma(values: list[float], period: int) -> list[float]:
    """Smoothed (Wilder / running) moving average.

    First value is the SMA of the first ``period`` values, each subsequent
    value is ``(prev * (period - 1) + value) / period``.
    """
    _check_period(period)
    if len(values) < period:
        return []

    smma = sum(values[:period]) / period
    results = [smma]
    for value in values[period:]:
        smma = (smma * (period - 1) + value) / period
        results.append(smma)
    return results
