"""Market data layer -- upstream throttle, payload parsing and price history client."""

from cryptodash.market_data.client import MarketDataClient
from cryptodash.market_data.models import PriceHistory
from cryptodash.market_data.throttle import CacheStats, RequestThrottle

__all__ = ["CacheStats", "MarketDataClient", "PriceHistory", "RequestThrottle"]
