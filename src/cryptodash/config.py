"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class IndicatorSettings(BaseSettings):
    """Indicator periods and signal thresholds.

    Defaults are the dashboard's tuned MACD (8, 21, 5) and the classic
    14-period RSI with 30/70 zone boundaries. CTO_PERIODS is read as a JSON
    array, e.g. INDICATOR_CTO_PERIODS=[15,19,25,29].
    """

    model_config = SettingsConfigDict(env_prefix="INDICATOR_")

    rsi_period: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    macd_fast_period: int = 8
    macd_slow_period: int = 21
    macd_signal_period: int = 5
    cto_periods: tuple[int, int, int, int] = (15, 19, 25, 29)  # v1, m1, m2, v2 SMMA periods
    recent_signals: int = 10  # Signals included in an analysis report
    recent_rsi_values: int = 20  # RSI values included in an analysis report


class ThrottleSettings(BaseSettings):
    """Upstream request throttle parameters.

    These are process-wide: the throttle reads them once at construction.
    The defaults keep CoinGecko's free tier (30 calls/min) happy.
    """

    model_config = SettingsConfigDict(env_prefix="THROTTLE_")

    min_interval: float = 2.1  # seconds between any two outbound calls
    cache_ttl: float = 300.0  # 5 minutes
    rate_limit_backoff: float = 60.0  # sleep after a 429 before retrying
    request_timeout: float = 15.0
    sweep_interval: float = 600.0  # expired-cache sweep every 10 minutes
    max_rate_limit_retries: int | None = None  # None = retry 429 forever
    max_queue_size: int = 0  # 0 = unbounded


class MarketDataSettings(BaseSettings):
    """Upstream market data endpoints."""

    model_config = SettingsConfigDict(env_prefix="MARKET_DATA_")

    default_source: Literal["binance", "coingecko"] = "binance"
    binance_base_url: str = "https://api.binance.com"
    coingecko_base_url: str = "https://api.coingecko.com"
    max_candles: int = 1000  # Binance klines hard limit
    max_coingecko_days: int = 365


class ApiSettings(BaseSettings):
    """JSON API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    indicators: IndicatorSettings = IndicatorSettings()
    throttle: ThrottleSettings = ThrottleSettings()
    market_data: MarketDataSettings = MarketDataSettings()
    api: ApiSettings = ApiSettings()
