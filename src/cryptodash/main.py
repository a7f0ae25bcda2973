"""Entry point for the cryptodash technical-analysis API.

Builds every component exactly once and hands them to the FastAPI app:
1. AppSettings (configuration)
2. Logging setup
3. RequestThrottle (process-wide upstream throttle and cache)
4. MarketDataClient (price history through the throttle)
5. TechnicalAnalysisService (indicators + signals)

The throttle's worker and sweep tasks must run on the same event loop as
uvicorn, so they are started and stopped by the FastAPI lifespan rather
than here.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from cryptodash.analysis import TechnicalAnalysisService
from cryptodash.api.app import create_app
from cryptodash.config import AppSettings
from cryptodash.logging import get_logger, setup_logging
from cryptodash.market_data.client import MarketDataClient
from cryptodash.market_data.throttle import RequestThrottle


def build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Does NOT start the throttle -- that happens in the lifespan.

    Returns:
        Dict mapping component names to instances.
    """
    throttle = RequestThrottle(settings.throttle)
    client = MarketDataClient(throttle, settings.market_data)
    analysis_service = TechnicalAnalysisService(client, settings.indicators)

    return {
        "throttle": throttle,
        "market_data_client": client,
        "analysis_service": analysis_service,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Expose components on app.state and own the throttle lifecycle."""
    logger = get_logger("cryptodash.main")
    components = app.state.components

    app.state.throttle = components["throttle"]
    app.state.market_data_client = components["market_data_client"]
    app.state.analysis_service = components["analysis_service"]

    await components["throttle"].start()
    logger.info("lifespan_started")

    yield

    await components["throttle"].stop()
    logger.info("cryptodash_stopped")


async def run() -> None:
    """Load settings, wire components and serve the API with uvicorn."""
    settings = AppSettings()

    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("cryptodash.main")

    app = create_app(lifespan=lifespan)
    app.state.settings = settings
    app.state.components = build_components(settings)

    logger.info(
        "starting_api",
        host=settings.api.host,
        port=settings.api.port,
        default_source=settings.market_data.default_source,
    )

    config = uvicorn.Config(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
