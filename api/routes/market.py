"""Market data endpoints backed by the MCP server and CoinGecko."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query

from api.services import get_market, get_price_feed
from core.market_data.mcp_client import (
    DEFAULT_RECOMMENDATION_COUNT,
    MAX_RECOMMENDATION_COUNT,
    RECOMMENDATION_CRITERIA,
    format_market_data_for_llm,
)

router = APIRouter(prefix="/api/market", tags=["market"])


@router.get("/status")
async def market_status() -> dict[str, Any]:
    return {"success": True, "data": get_market().get_status()}


@router.get("/pools/search")
async def search_pools(
    query: str = Query(..., min_length=1),
    network: Optional[str] = None,
) -> dict[str, Any]:
    result = await get_market().search_pools(query, network)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result["error"])
    return result


@router.get("/recommendations")
async def recommendations(
    criteria: str = Query("balanced"),
    count: int = Query(DEFAULT_RECOMMENDATION_COUNT, ge=1, le=MAX_RECOMMENDATION_COUNT),
    network: Optional[str] = None,
) -> dict[str, Any]:
    result = await get_market().get_token_recommendations(criteria, count, network)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result["error"])
    return {**result, "availableCriteria": list(RECOMMENDATION_CRITERIA)}


@router.get("/context")
async def market_context(
    network: Optional[str] = None,
    criteria: str = Query("balanced"),
    include_top_pools: bool = True,
    include_token_recommendations: bool = True,
) -> dict[str, Any]:
    """Market context for LLM prompts, with its markdown rendering."""
    market = get_market()
    context = await market.get_market_context_for_llm(
        include_top_pools=include_top_pools,
        include_token_recommendations=include_token_recommendations,
        network=network,
        recommendation_criteria=criteria,
    )
    return {"success": True, "data": context, "formatted": format_market_data_for_llm(context)}


@router.get("/prices")
async def prices(symbols: Optional[str] = Query(None, description="Comma-separated symbols")) -> dict[str, Any]:
    wanted = [s.strip().upper() for s in symbols.split(",") if s.strip()] if symbols else None
    return await asyncio.to_thread(get_price_feed().fetch_market_data, wanted)
