"""Tests for RequestThrottle.

Upstream calls are answered by an httpx.MockTransport handler, so no test
touches the network. TTL tests drive the throttle with a fake clock.
"""

import asyncio
import time

import httpx
import pytest

from cryptodash.config import ThrottleSettings
from cryptodash.exceptions import (
    RateLimitRetriesExhaustedError,
    ThrottleQueueFullError,
    ThrottleStoppedError,
    UpstreamHTTPError,
    UpstreamRequestError,
    UpstreamTimeoutError,
)
from cryptodash.market_data.throttle import CacheStats, RequestThrottle

URL_A = "https://upstream.test/a"
URL_B = "https://upstream.test/b"
URL_C = "https://upstream.test/c"


class RecordingHandler:
    """MockTransport handler returning ``{"url": ...}`` and recording calls."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.times: list[float] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        self.times.append(time.monotonic())
        return httpx.Response(200, json={"url": str(request.url)})


class BlockingHandler:
    """Handler that holds every request until ``release`` is set."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls: list[str] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        self.started.set()
        await self.release.wait()
        return httpx.Response(200, json={"ok": True})


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TestCache:
    """Tests for cache short-circuiting and TTL expiry."""

    @pytest.mark.asyncio
    async def test_second_request_served_from_cache(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                first = await throttle.request(URL_A)
                second = await throttle.request(URL_A)

        assert first == second == {"url": URL_A}
        assert handler.calls == [URL_A]

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_hit_upstream_once(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        """Both requests miss the cache at enqueue; the second finds it at dequeue."""
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                results = await asyncio.gather(throttle.request(URL_A), throttle.request(URL_A))

        assert results == [{"url": URL_A}, {"url": URL_A}]
        assert handler.calls == [URL_A]

    @pytest.mark.asyncio
    async def test_cache_hit_works_after_stop(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            throttle = RequestThrottle(fast_throttle_settings, http)
            await throttle.start()
            await throttle.request(URL_A)
            await throttle.stop()

            assert await throttle.request(URL_A) == {"url": URL_A}

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(
        self, fast_throttle_settings, make_http_client, fake_clock
    ) -> None:
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http, clock=fake_clock) as throttle:
                await throttle.request(URL_A)
                fake_clock.advance(299)
                await throttle.request(URL_A)
                assert len(handler.calls) == 1

                fake_clock.advance(2)
                await throttle.request(URL_A)

        assert len(handler.calls) == 2

    @pytest.mark.asyncio
    async def test_clear_expired_cache_removes_only_stale(
        self, fast_throttle_settings, make_http_client, fake_clock
    ) -> None:
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http, clock=fake_clock) as throttle:
                await throttle.request(URL_A)
                await throttle.request(URL_B)
                fake_clock.advance(200)
                await throttle.request(URL_C)
                fake_clock.advance(150)

                removed = throttle.clear_expired_cache()

                assert removed == 2
                assert throttle.get_cache_stats().size == 1

    @pytest.mark.asyncio
    async def test_entry_exactly_at_ttl_is_not_swept(
        self, fast_throttle_settings, make_http_client, fake_clock
    ) -> None:
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http, clock=fake_clock) as throttle:
                await throttle.request(URL_A)
                fake_clock.advance(300)

                assert throttle.clear_expired_cache() == 0

    @pytest.mark.asyncio
    async def test_sweep_loop_clears_expired_entries(self, make_http_client) -> None:
        settings = ThrottleSettings(min_interval=0.0, cache_ttl=0.01, sweep_interval=0.05)
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(settings, http) as throttle:
                await throttle.request(URL_A)
                assert throttle.get_cache_stats().size == 1

                await asyncio.sleep(0.2)

                assert throttle.get_cache_stats().size == 0


# ---------------------------------------------------------------------------
# Ordering, spacing and rate limiting
# ---------------------------------------------------------------------------


class TestScheduling:
    """Tests for FIFO order, minimum spacing and 429 handling."""

    @pytest.mark.asyncio
    async def test_requests_sent_in_fifo_order(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                await asyncio.gather(
                    throttle.request(URL_A), throttle.request(URL_B), throttle.request(URL_C)
                )

        assert handler.calls == [URL_A, URL_B, URL_C]

    @pytest.mark.asyncio
    async def test_minimum_spacing_between_calls(self, make_http_client) -> None:
        settings = ThrottleSettings(min_interval=0.2)
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(settings, http) as throttle:
                await asyncio.gather(
                    throttle.request(URL_A), throttle.request(URL_B), throttle.request(URL_C)
                )

        gaps = [b - a for a, b in zip(handler.times, handler.times[1:])]
        assert len(gaps) == 2
        for gap in gaps:
            assert gap >= 0.2 - 0.02

    @pytest.mark.asyncio
    async def test_default_interval_spaces_two_calls(self, make_http_client) -> None:
        handler = RecordingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(ThrottleSettings(), http) as throttle:
                await asyncio.gather(throttle.request(URL_A), throttle.request(URL_B))

        assert handler.times[1] - handler.times[0] >= 2.1 - 0.02

    @pytest.mark.asyncio
    async def test_rate_limited_request_retried_before_next(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            calls.append(url)
            if url == URL_A and calls.count(URL_A) == 1:
                return httpx.Response(429)
            return httpx.Response(200, json={"url": url})

        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                results = await asyncio.gather(throttle.request(URL_A), throttle.request(URL_B))

        assert calls == [URL_A, URL_A, URL_B]
        assert results == [{"url": URL_A}, {"url": URL_B}]

    @pytest.mark.asyncio
    async def test_cancelled_request_stops_retrying(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        """A caller cancelling during 429 back-off releases the queue."""
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            calls.append(url)
            if url == URL_A:
                return httpx.Response(429)
            return httpx.Response(200, json={"url": url})

        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                rate_limited = asyncio.create_task(throttle.request(URL_A))
                while URL_A not in calls:
                    await asyncio.sleep(0.005)
                behind = asyncio.create_task(throttle.request(URL_B))
                await asyncio.sleep(0)

                rate_limited.cancel()
                result = await asyncio.wait_for(behind, timeout=1.0)

                with pytest.raises(asyncio.CancelledError):
                    await rate_limited
                a_calls = calls.count(URL_A)
                await asyncio.sleep(0.05)

        assert result == {"url": URL_B}
        assert calls.count(URL_A) == a_calls
        assert calls[-1] == URL_B

    @pytest.mark.asyncio
    async def test_rate_limit_retry_cap(self, make_http_client) -> None:
        settings = ThrottleSettings(
            min_interval=0.0, rate_limit_backoff=0.01, max_rate_limit_retries=2
        )
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(429)

        async with make_http_client(handler) as http:
            async with RequestThrottle(settings, http) as throttle:
                with pytest.raises(RateLimitRetriesExhaustedError) as exc_info:
                    await throttle.request(URL_A)

        assert len(calls) == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.url == URL_A


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    """Tests for error delivery to callers."""

    @pytest.mark.asyncio
    async def test_http_error_delivered_and_not_cached(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(500)

        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                with pytest.raises(UpstreamHTTPError) as exc_info:
                    await throttle.request(URL_A)
                with pytest.raises(UpstreamHTTPError):
                    await throttle.request(URL_A)

                assert throttle.get_cache_stats().size == 0

        assert exc_info.value.status_code == 500
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_timeout_raises_distinct_error(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                with pytest.raises(UpstreamTimeoutError):
                    await throttle.request(URL_A)

    @pytest.mark.asyncio
    async def test_slow_upstream_hits_request_timeout(self, make_http_client) -> None:
        settings = ThrottleSettings(min_interval=0.0, request_timeout=0.05)

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        async with make_http_client(handler) as http:
            async with RequestThrottle(settings, http) as throttle:
                with pytest.raises(UpstreamTimeoutError):
                    await throttle.request(URL_A)

    @pytest.mark.asyncio
    async def test_transport_error_raises_request_error(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                with pytest.raises(UpstreamRequestError):
                    await throttle.request(URL_A)

    @pytest.mark.asyncio
    async def test_invalid_json_raises_request_error(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not json</html>")

        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                with pytest.raises(UpstreamRequestError):
                    await throttle.request(URL_A)

    @pytest.mark.asyncio
    async def test_worker_survives_failed_request(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == URL_A:
                return httpx.Response(503)
            return httpx.Response(200, json={"url": str(request.url)})

        async with make_http_client(handler) as http:
            async with RequestThrottle(fast_throttle_settings, http) as throttle:
                results = await asyncio.gather(
                    throttle.request(URL_A), throttle.request(URL_B), return_exceptions=True
                )

        assert isinstance(results[0], UpstreamHTTPError)
        assert results[1] == {"url": URL_B}


# ---------------------------------------------------------------------------
# Lifecycle and bounds
# ---------------------------------------------------------------------------


class TestLifecycle:
    """Tests for start/stop, the queue bound and diagnostics."""

    @pytest.mark.asyncio
    async def test_request_before_start_raises(self, fast_throttle_settings) -> None:
        throttle = RequestThrottle(fast_throttle_settings)
        with pytest.raises(ThrottleStoppedError):
            await throttle.request(URL_A)

    @pytest.mark.asyncio
    async def test_initial_stats(self, fast_throttle_settings) -> None:
        throttle = RequestThrottle(fast_throttle_settings)
        assert throttle.get_cache_stats() == CacheStats(
            size=0, queue_length=0, is_processing=False
        )

    @pytest.mark.asyncio
    async def test_owned_client_created_and_closed(self, fast_throttle_settings) -> None:
        throttle = RequestThrottle(fast_throttle_settings)

        await throttle.start()
        assert throttle.running
        assert isinstance(throttle._client, httpx.AsyncClient)

        await throttle.stop()
        assert not throttle.running
        assert throttle._client is None

    @pytest.mark.asyncio
    async def test_injected_client_left_open(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        async with make_http_client(RecordingHandler()) as http:
            async with RequestThrottle(fast_throttle_settings, http):
                pass
            assert not http.is_closed

    @pytest.mark.asyncio
    async def test_double_start_is_noop(self, fast_throttle_settings, make_http_client) -> None:
        async with make_http_client(RecordingHandler()) as http:
            throttle = RequestThrottle(fast_throttle_settings, http)
            await throttle.start()
            worker = throttle._worker_task
            await throttle.start()

            assert throttle._worker_task is worker
            await throttle.stop()

    @pytest.mark.asyncio
    async def test_bounded_queue_rejects_overflow(self, make_http_client) -> None:
        settings = ThrottleSettings(min_interval=0.0, max_queue_size=1)
        handler = BlockingHandler()
        async with make_http_client(handler) as http:
            async with RequestThrottle(settings, http) as throttle:
                in_flight = asyncio.create_task(throttle.request(URL_A))
                await handler.started.wait()
                queued = asyncio.create_task(throttle.request(URL_B))
                await asyncio.sleep(0)

                stats = throttle.get_cache_stats()
                assert stats.is_processing
                assert stats.queue_length == 1

                with pytest.raises(ThrottleQueueFullError):
                    await throttle.request(URL_C)

                handler.release.set()
                assert await in_flight == {"ok": True}
                assert await queued == {"ok": True}

        assert handler.calls == [URL_A, URL_B]

    @pytest.mark.asyncio
    async def test_stop_fails_in_flight_and_queued_requests(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        handler = BlockingHandler()
        async with make_http_client(handler) as http:
            throttle = RequestThrottle(fast_throttle_settings, http)
            await throttle.start()

            in_flight = asyncio.create_task(throttle.request(URL_A))
            await handler.started.wait()
            queued = asyncio.create_task(throttle.request(URL_B))
            await asyncio.sleep(0)

            await throttle.stop()

            with pytest.raises(ThrottleStoppedError):
                await in_flight
            with pytest.raises(ThrottleStoppedError):
                await queued
            assert throttle.get_cache_stats().queue_length == 0

    @pytest.mark.asyncio
    async def test_request_after_stop_raises(
        self, fast_throttle_settings, make_http_client
    ) -> None:
        async with make_http_client(RecordingHandler()) as http:
            throttle = RequestThrottle(fast_throttle_settings, http)
            await throttle.start()
            await throttle.stop()

            with pytest.raises(ThrottleStoppedError):
                await throttle.request(URL_A)
