"""Serialized upstream request throttle with a TTL response cache.

Protects a rate-limited upstream (CoinGecko's free tier allows ~30 calls per
minute) by funnelling every outbound GET through one worker task:

- A fresh cache hit returns immediately and never touches the queue.
- Queued requests are sent strictly FIFO, one at a time, at least
  ``min_interval`` seconds apart regardless of URL.
- A 429 puts the worker to sleep for ``rate_limit_backoff`` seconds and then
  retries the same request before anything else in the queue, unless its
  caller has cancelled in the meantime.
- Any other failure is delivered to the caller and not retried.

Known risk: with ``max_rate_limit_retries`` unset, a sustained 429 stalls the
queue on one request indefinitely while the backlog behind it grows.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from cryptodash.config import ThrottleSettings
from cryptodash.exceptions import (
    RateLimitRetriesExhaustedError,
    ThrottleQueueFullError,
    ThrottleStoppedError,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamRequestError,
    UpstreamTimeoutError,
)
from cryptodash.logging import get_logger

logger = get_logger(__name__)

_RATE_LIMITED = 429


@dataclass
class CacheEntry:
    """Parsed JSON body of a successful response and when it was stored."""

    data: Any
    timestamp: float


@dataclass
class ThrottleQueueItem:
    """A queued request. ``future`` is the caller's result channel."""

    url: str
    future: asyncio.Future  # type: ignore[type-arg]
    timestamp: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class CacheStats:
    """Read-only diagnostic snapshot of the throttle."""

    size: int
    queue_length: int
    is_processing: bool


class RequestThrottle:
    """Long-lived throttling service owning the request queue and the cache.

    Construct once at process start, ``await start()``, pass the instance to
    every component that talks to the upstream, and ``await stop()`` on
    shutdown. Also usable as an async context manager.

    Args:
        settings: Interval, TTL, timeout, back-off and queue bound.
        http_client: Client used for outbound calls. When None the throttle
            creates its own on start and closes it on stop.
        clock: Monotonic time source, in seconds.
    """

    def __init__(
        self,
        settings: ThrottleSettings,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock

        self._queue: asyncio.Queue[ThrottleQueueItem] = asyncio.Queue(
            maxsize=settings.max_queue_size
        )
        self._cache: dict[str, CacheEntry] = {}
        self._last_request_time: float | None = None
        self._current: ThrottleQueueItem | None = None

        self._running = False
        self._worker_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._sweep_task: asyncio.Task | None = None  # type: ignore[type-arg]

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def start(self) -> None:
        """Start the request worker and the periodic cache sweep."""
        if self._running:
            logger.warning("throttle_already_running")
            return
        if self._owns_client:
            self._client = httpx.AsyncClient(headers={"Accept": "application/json"})
        self._running = True
        self._worker_task = asyncio.create_task(self._worker_loop())
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "throttle_started",
            min_interval=self._settings.min_interval,
            cache_ttl=self._settings.cache_ttl,
            max_queue_size=self._settings.max_queue_size,
        )

    async def stop(self) -> None:
        """Stop both tasks and fail every request still waiting for a result."""
        self._running = False

        for task in (self._worker_task, self._sweep_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._worker_task = None
        self._sweep_task = None

        abandoned = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            abandoned += self._fail(item, ThrottleStoppedError("throttle stopped"))

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

        logger.info("throttle_stopped", abandoned_requests=abandoned)

    async def __aenter__(self) -> "RequestThrottle":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._running

    # ──────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────

    async def request(self, url: str) -> Any:
        """Return the parsed JSON body for ``url``, from cache or via the queue.

        Raises:
            ThrottleStoppedError: The throttle is not running, or stopped
                while the request was pending.
            ThrottleQueueFullError: The queue is bounded and full.
            UpstreamError: The upstream call failed.
        """
        entry = self._fresh_entry(url)
        if entry is not None:
            logger.debug("throttle_cache_hit", url=url)
            return entry.data

        if not self._running:
            raise ThrottleStoppedError("throttle is not running")

        item = ThrottleQueueItem(
            url=url,
            future=asyncio.get_running_loop().create_future(),
            timestamp=self._clock(),
        )
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning("throttle_queue_full", url=url, queue_length=self._queue.qsize())
            raise ThrottleQueueFullError(
                f"request queue is full ({self._settings.max_queue_size} pending)"
            ) from None

        logger.debug("throttle_enqueued", url=url, queue_length=self._queue.qsize())
        return await item.future

    def clear_expired_cache(self) -> int:
        """Drop cache entries older than the TTL. Returns how many were removed."""
        now = self._clock()
        expired = [
            url
            for url, entry in self._cache.items()
            if now - entry.timestamp > self._settings.cache_ttl
        ]
        for url in expired:
            del self._cache[url]
        return len(expired)

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._cache),
            queue_length=self._queue.qsize(),
            is_processing=self._current is not None,
        )

    # ──────────────────────────────────────────────
    # Worker
    # ──────────────────────────────────────────────

    async def _worker_loop(self) -> None:
        """Sole consumer of the queue: serve one request at a time, in order."""
        while True:
            item = await self._queue.get()
            if item.future.done():
                # Caller gave up (cancelled) before its turn came
                self._queue.task_done()
                continue

            self._current = item
            try:
                await self._process(item)
            except asyncio.CancelledError:
                self._fail(item, ThrottleStoppedError("throttle stopped"))
                raise
            except Exception as e:
                logger.error("throttle_worker_error", url=item.url, exc_info=True)
                self._fail(item, UpstreamRequestError(str(e), item.url))
            finally:
                self._current = None
                self._queue.task_done()

    async def _process(self, item: ThrottleQueueItem) -> None:
        # An earlier queued request for the same URL may have filled the cache
        entry = self._fresh_entry(item.url)
        if entry is not None:
            logger.debug("throttle_cache_hit", url=item.url, queued=True)
            self._resolve(item, entry.data)
            return

        rate_limited = 0
        while True:
            if item.future.done():
                # Caller gave up while this request was backing off
                logger.debug("throttle_request_abandoned", url=item.url, attempts=rate_limited)
                return

            await self._wait_for_slot()

            try:
                response = await self._send(item.url)
            except UpstreamError as e:
                logger.error("throttle_request_failed", url=item.url, error=str(e))
                self._fail(item, e)
                return

            if response.status_code == _RATE_LIMITED:
                rate_limited += 1
                max_retries = self._settings.max_rate_limit_retries
                if max_retries is not None and rate_limited > max_retries:
                    logger.error(
                        "throttle_rate_limit_retries_exhausted",
                        url=item.url,
                        attempts=rate_limited,
                    )
                    self._fail(item, RateLimitRetriesExhaustedError(rate_limited, item.url))
                    return

                logger.warning(
                    "throttle_rate_limited",
                    url=item.url,
                    attempt=rate_limited,
                    backoff_seconds=self._settings.rate_limit_backoff,
                )
                await asyncio.sleep(self._settings.rate_limit_backoff)
                continue

            if not response.is_success:
                error = UpstreamHTTPError(response.status_code, response.reason_phrase, item.url)
                logger.error("throttle_request_failed", url=item.url, error=str(error))
                self._fail(item, error)
                return

            try:
                data = response.json()
            except ValueError as e:
                logger.error("throttle_invalid_json", url=item.url, error=str(e))
                self._fail(item, UpstreamRequestError(f"invalid JSON body: {e}", item.url))
                return

            self._cache[item.url] = CacheEntry(data=data, timestamp=self._clock())
            self._resolve(item, data)
            return

    async def _wait_for_slot(self) -> None:
        """Sleep until ``min_interval`` has passed since the previous outbound call."""
        if self._last_request_time is None:
            return
        wait = self._settings.min_interval - (self._clock() - self._last_request_time)
        while wait > 0:
            logger.debug("throttle_waiting", wait_seconds=round(wait, 3))
            await asyncio.sleep(wait)
            wait = self._settings.min_interval - (self._clock() - self._last_request_time)

    async def _send(self, url: str) -> httpx.Response:
        if self._client is None:
            raise ThrottleStoppedError("throttle has no HTTP client")

        logger.info("throttle_request", url=url)
        self._last_request_time = self._clock()
        timeout = self._settings.request_timeout
        try:
            return await asyncio.wait_for(self._client.get(url, timeout=timeout), timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeoutError(f"timed out after {timeout}s", url) from e
        except httpx.HTTPError as e:
            raise UpstreamRequestError(str(e) or type(e).__name__, url) from e

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.sweep_interval)
            removed = self.clear_expired_cache()
            logger.debug("throttle_cache_swept", removed=removed, size=len(self._cache))

    # ──────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────

    def _fresh_entry(self, url: str) -> CacheEntry | None:
        entry = self._cache.get(url)
        if entry is not None and self._clock() - entry.timestamp < self._settings.cache_ttl:
            return entry
        return None

    @staticmethod
    def _resolve(item: ThrottleQueueItem, data: Any) -> None:
        if not item.future.done():
            item.future.set_result(data)

    @staticmethod
    def _fail(item: ThrottleQueueItem, error: Exception) -> int:
        if item.future.done():
            return 0
        item.future.set_exception(error)
        return 1
