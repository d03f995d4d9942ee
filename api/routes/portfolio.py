"""Agent wallet balances."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from fastapi import APIRouter, HTTPException, Path as PathParam

from api.services import get_portfolio
from core.chain.client import ChainError

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])


async def _run(fn: Callable[..., dict[str, Any]], *args: Any) -> dict[str, Any]:
    try:
        data = await asyncio.to_thread(fn, *args)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ChainError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"success": True, "data": data}


@router.get("/{user_id}/balance")
async def balance(user_id: str = PathParam(..., min_length=1)) -> dict[str, Any]:
    controller = get_portfolio()
    address = await asyncio.to_thread(controller.get_user_wallet_address, user_id)
    return await _run(controller.get_complete_balance, address)


@router.get("/{user_id}/tokens/{symbol}")
async def token_balance(
    user_id: str = PathParam(..., min_length=1),
    symbol: str = PathParam(..., min_length=1, max_length=10),
) -> dict[str, Any]:
    controller = get_portfolio()
    address = await asyncio.to_thread(controller.get_user_wallet_address, user_id)
    return await _run(controller.get_specific_token_balance, address, symbol.upper())


@router.get("/{user_id}/summary")
async def summary(user_id: str = PathParam(..., min_length=1)) -> dict[str, Any]:
    controller = get_portfolio()
    address = await asyncio.to_thread(controller.get_user_wallet_address, user_id)
    return await _run(controller.get_portfolio_summary, address)
