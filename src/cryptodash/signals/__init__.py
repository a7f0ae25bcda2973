"""Trading signal generation over RSI and MACD.

Provides the signal data models, the oversold-then-crossover state machine
and pure aggregations over a generated signal series.
"""

from cryptodash.signals.generator import (
    align_rsi_to_macd,
    generate_trading_signals,
    get_latest_signal,
    get_signal_stats,
    signals_from_series,
)
from cryptodash.signals.models import SignalState, SignalStats, SignalType, TradingSignal

__all__ = [
    "SignalState",
    "SignalStats",
    "SignalType",
    "TradingSignal",
    "align_rsi_to_macd",
    "generate_trading_signals",
    "get_latest_signal",
    "get_signal_stats",
    "signals_from_series",
]
