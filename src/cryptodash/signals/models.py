"""Trading signal data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from cryptodash.indicators.models import MACDPoint


class SignalType(str, Enum):
    """Discrete trading action."""

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class SignalState(str, Enum):
    """Rolling state of the signal generator within one price series."""

    NEUTRAL = "neutral"
    RECENTLY_OVERSOLD = "recently_oversold"


@dataclass(frozen=True)
class TradingSignal:
    """One signal emitted per aligned RSI/MACD observation."""

    type: SignalType
    strength: float  # 0-100
    reason: str
    timestamp: datetime | None
    rsi: float
    macd: MACDPoint


@dataclass(frozen=True)
class SignalStats:
    """Signal counts for a series.

    ``accuracy`` is the share of actionable (buy + sell) signals in percent,
    rounded to one decimal. It is not a hit rate.
    """

    total: int
    buy: int
    sell: int
    hold: int
    accuracy: float
