"""Technical indicator engine.

Pure functions over ordered float price series: moving averages (SMA, EMA,
SMMA), RSI, MACD with crossover detection and the CTO trend oscillator. No
function keeps state between calls.
"""

from cryptodash.indicators.macd import (
    calculate_macd,
    classify_crossovers,
    detect_crossover,
    macd_price_offset,
)
from cryptodash.indicators.models import CTOPoint, Crossover, MACDPoint, RSIZone, TrendSignal
from cryptodash.indicators.momentum import calculate_rsi, classify_rsi
from cryptodash.indicators.moving_averages import calculate_ema, calculate_sma, calculate_smma
from cryptodash.indicators.trend import calculate_cto, classify_trend, trend_crossover

__all__ = [
    "CTOPoint",
    "Crossover",
    "MACDPoint",
    "RSIZone",
    "TrendSignal",
    "calculate_cto",
    "calculate_ema",
    "calculate_macd",
    "calculate_rsi",
    "calculate_sma",
    "calculate_smma",
    "classify_crossovers",
    "classify_rsi",
    "classify_trend",
    "detect_crossover",
    "macd_price_offset",
    "trend_crossover",
]
