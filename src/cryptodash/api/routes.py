"""JSON API endpoints: technical analysis, price history, throttle diagnostics."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from cryptodash.logging import bind_request_context

router = APIRouter()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/technical-analysis")
async def get_technical_analysis(
    request: Request,
    symbol: str = "bitcoin",
    timeframe: str = "1d",
    days: int = Query(default=90, ge=1, le=365),
    source: str | None = None,
) -> JSONResponse:
    """RSI, MACD and trading signals for one instrument."""
    bind_request_context(path=request.url.path, symbol=symbol, timeframe=timeframe, source=source)
    service = request.app.state.analysis_service
    report = await service.analyze_symbol(symbol, timeframe, days, source)
    return JSONResponse(
        content={"success": True, "data": jsonable_encoder(report), "timestamp": _now_iso()}
    )


@router.get("/historical-prices")
async def get_historical_prices(
    request: Request,
    symbol: str = "bitcoin",
    timeframe: str = "1d",
    days: int = Query(default=90, ge=1, le=365),
    source: str | None = None,
) -> JSONResponse:
    """Closing price history as ``[timestamp_ms, close]`` pairs."""
    bind_request_context(path=request.url.path, symbol=symbol, timeframe=timeframe, source=source)
    client = request.app.state.market_data_client
    history = await client.fetch_price_history(symbol, timeframe, days, source)
    prices = [
        [int(ts.timestamp() * 1000), close]
        for ts, close in zip(history.timestamps, history.closes)
    ]
    return JSONResponse(
        content={
            "success": True,
            "data": {"symbol": history.symbol, "source": history.source, "prices": prices},
            "timestamp": _now_iso(),
        }
    )


@router.get("/throttle/stats")
async def get_throttle_stats(request: Request) -> JSONResponse:
    """Throttle cache size, queue length and whether a request is in flight."""
    stats = request.app.state.throttle.get_cache_stats()
    return JSONResponse(
        content={
            "size": stats.size,
            "queue_length": stats.queue_length,
            "is_processing": stats.is_processing,
        }
    )
