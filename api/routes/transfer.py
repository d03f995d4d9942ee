"""Transfers from a user's agent wallet."""

from __future__ import annotations

from typing import Any, Optional, Union

from fastapi import APIRouter
from pydantic import BaseModel, Field

from api.services import get_transfers

router = APIRouter(prefix="/api/transfer", tags=["transfer"])


class TransferRequest(BaseModel):
    message: str = Field(..., min_length=1)
    userId: str = Field(..., min_length=1)
    agentId: Optional[str] = None


class TransferArgsRequest(BaseModel):
    userId: str = Field(..., min_length=1)
    amount: Optional[Union[float, str]] = None
    token: Optional[str] = None
    recipient: Optional[str] = None


@router.post("")
async def transfer(request: TransferRequest) -> dict[str, Any]:
    """Analyze a free-text request and transfer when it is complete and funded."""
    return await get_transfers().process_transfer_request(request.message, request.userId, request.agentId)


@router.post("/args")
async def transfer_with_args(request: TransferArgsRequest) -> dict[str, Any]:
    args = request.model_dump(exclude={"userId"})
    return await get_transfers().process_transfer_with_args(args, request.userId)
