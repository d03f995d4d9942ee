"""Swap quotes and execution through the DuckChain router."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from api.services import get_swaps

router = APIRouter(prefix="/api/swap", tags=["swap"])


class QuoteRequest(BaseModel):
    fromToken: str = Field(..., min_length=1)
    toToken: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    slippage: float = Field(0.5, ge=0, le=50)


class ExecuteRequest(QuoteRequest):
    userId: str = Field(..., min_length=1)


@router.post("/quote")
async def quote(request: QuoteRequest) -> dict[str, Any]:
    try:
        data = await asyncio.to_thread(
            get_swaps().get_swap_quote, request.fromToken, request.toToken, request.amount, request.slippage
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True, "data": data}


@router.post("/execute")
async def execute(request: ExecuteRequest) -> dict[str, Any]:
    """Swap from the user's agent wallet; failures come back with ``success: false``."""
    try:
        return await asyncio.to_thread(
            get_swaps().execute_swap,
            request.userId,
            request.fromToken,
            request.toToken,
            request.amount,
            request.slippage,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
