"""Custom exceptions for the cryptodash market-data service.

Throttle, upstream and payload exceptions live here so the market data
layer, the analysis service and the API can share them without circular
imports.
"""


class CryptoDashError(Exception):
    """Base exception for all cryptodash errors."""


class ThrottleError(CryptoDashError):
    """Base exception for request throttle failures that never reached upstream."""


class ThrottleStoppedError(ThrottleError):
    """Raised when a request is made to, or pending in, a throttle that is not running."""


class ThrottleQueueFullError(ThrottleError):
    """Raised when a bounded throttle queue cannot accept another request."""


class UpstreamError(CryptoDashError):
    """Base exception for failed upstream HTTP calls."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class UpstreamHTTPError(UpstreamError):
    """Raised when the upstream answers with a non-2xx status other than 429."""

    def __init__(self, status_code: int, reason: str, url: str) -> None:
        super().__init__(f"HTTP {status_code}: {reason}", url)
        self.status_code = status_code


class UpstreamTimeoutError(UpstreamError):
    """Raised when an upstream call exceeds the per-request timeout."""


class UpstreamRequestError(UpstreamError):
    """Raised on transport failures or an unparseable response body."""


class RateLimitRetriesExhaustedError(UpstreamError):
    """Raised when a request keeps receiving 429 beyond the configured retry cap."""

    def __init__(self, attempts: int, url: str) -> None:
        super().__init__(f"rate limited {attempts} times, giving up", url)
        self.attempts = attempts


class MalformedPayloadError(CryptoDashError):
    """Raised when an upstream payload does not have the expected shape."""


class UnknownSymbolError(CryptoDashError):
    """Raised when a symbol cannot be mapped to an upstream instrument."""


class InsufficientDataError(CryptoDashError):
    """Raised when a price history is too short to compute the indicators."""


class UnsupportedTimeframeError(CryptoDashError):
    """Raised when a requested candle timeframe has no upstream interval."""
