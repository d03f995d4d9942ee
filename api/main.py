"""FastAPI application for the DuckChain assistant.

Mounts the route modules:
- /api/prompt - classify and route free-text prompts, interactive follow-ups
- /api/intent - intent parsing and the contact book
- /api/market - MCP pool data, token recommendations, CoinGecko prices
- /api/portfolio - agent wallet balances and analytics
- /api/transfer, /api/swap - on-chain actions from agent wallets
- /system/health - component health

Configuration is read from the environment (see ``core.config``).
No authentication (local network only).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import services
from api.routes import health, intent, market, portfolio, prompt, swap, transfer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Falls back to limited mode when the MCP server is unreachable
    await services.get_market().initialize()
    yield
    await services.shutdown()


app = FastAPI(
    title="DuckChain Assistant API",
    description="Intent classification, prompt routing and agent wallet actions on DuckChain",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

for _module in (prompt, intent, market, portfolio, transfer, swap, health):
    app.include_router(_module.router)


@app.get("/")
async def root():
    return {
        "name": app.title,
        "version": app.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.exception_handler(Exception)
async def global_exception_handler(_request, exc):
    """Global exception handler to ensure consistent error responses."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
