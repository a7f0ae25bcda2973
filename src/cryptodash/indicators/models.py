"""Indicator data models shared by the indicator engine and the signal generator.

All prices and indicator values are plain floats: they come from JSON
payloads and feed display and signal-strength math, never money movement.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Crossover(str, Enum):
    """MACD line vs. signal line crossover event between two consecutive points."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NONE = "none"


class RSIZone(str, Enum):
    """RSI reading classification."""

    OVERSOLD = "oversold"
    OVERBOUGHT = "overbought"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class MACDPoint:
    """One aligned MACD observation.

    ``timestamp`` is the caller-supplied time of the price bar this point
    closes on, or None when the caller computed MACD from bare prices.
    """

    macd: float
    signal: float
    histogram: float
    crossover: Crossover = Crossover.NONE
    timestamp: datetime | None = None


class TrendSignal(str, Enum):
    """CTO trend state from the ordering of its four smoothed lines."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class CTOPoint:
    """One aligned CTO (custom trend oscillator) observation.

    ``value`` is the fastest line minus the slowest. ``crossover`` marks the
    bar on which ``signal`` turned bullish or bearish.
    """

    value: float
    signal: TrendSignal
    crossover: Crossover = Crossover.NONE
    timestamp: datetime | None = None
