"""TrendGuard — application entry point.

Boots the FastAPI internal server and runs it alongside a trading engine.
The market-data and execution collaborators are supplied by the caller.
"""

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI

from trendguard.api.routers import configure_routers, router
from trendguard.broker.base import ExecutionProtocol, MarketDataProtocol
from trendguard.config import load_config, load_settings
from trendguard.engine import TradingEngine

app = FastAPI(title="TrendGuard Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("trendguard")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_engine(
    market_data: MarketDataProtocol,
    execution: ExecutionProtocol,
    env_path: Optional[str] = None,
) -> TradingEngine:
    """Load config and tunables, build an engine and wire it into the routers."""
    config = load_config(env_path)
    configure_logging(config.log_level)
    settings = load_settings(config.settings_path)
    engine = TradingEngine(config, settings, market_data, execution)
    configure_routers(engine)
    logger.info(
        "Engine built for %s (interval %s, poll %ds)",
        ", ".join(config.symbols), config.short_interval, config.poll_interval_seconds,
    )
    return engine


async def serve(engine: TradingEngine, port: int = 8080) -> None:
    """Start the API server and the trading loop concurrently."""
    import uvicorn

    uvi_config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(uvi_config)

    await engine.initialize()
    engine_task = asyncio.create_task(engine.run())
    logger.info("Status API available at http://localhost:%d", port)
    try:
        await server.serve()
    finally:
        # Server exit (Ctrl-C) stops the loop and flattens positions
        engine.stop()
        results = await engine_task
        await engine.shutdown()
        logger.info("TrendGuard stopped after %d cycle(s).", len(results))
