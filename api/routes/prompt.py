"""Prompt routing endpoints used by the chat client."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api.services import get_message_processor, get_prompt_router
from core.routing.router import ROUTER_VERSION

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prompt", tags=["prompt"])


class RoutePromptRequest(BaseModel):
    message: str = ""
    userId: Optional[str] = None
    agentId: Optional[str] = None
    execute: bool = False


class MessageRequest(BaseModel):
    message: str = ""
    userId: Optional[str] = None
    sessionId: Optional[str] = None


class InteractiveRequest(BaseModel):
    originalIntent: dict[str, Any] = Field(default_factory=dict)
    userResponses: dict[str, Any] = Field(default_factory=dict)
    userId: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _bad_request(error: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": error, "timestamp": _now()})


@router.post("/route")
async def route_prompt(request: RoutePromptRequest):
    """Classify a message and process it with the matching handler."""
    if not request.message.strip():
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation error", "errors": ["message is required"]},
        )
    try:
        return await get_prompt_router().route_prompt(
            request.message, request.userId, request.agentId, request.execute
        )
    except Exception as exc:
        logger.exception("Prompt routing failed")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Prompt routing failed",
                "error": str(exc),
                "metadata": {"timestamp": _now(), "routerVersion": ROUTER_VERSION},
            },
        )


@router.post("/message")
async def process_message(request: MessageRequest):
    """Parse a message; execute it when complete, otherwise ask for the missing arguments."""
    if not request.message.strip():
        return _bad_request("Message is required and must be a string")
    return await get_message_processor().process_message_with_validation(request.message, request.userId)


@router.post("/interactive")
async def process_interactive(request: InteractiveRequest):
    if not request.originalIntent or not request.userResponses:
        return _bad_request("Original intent and user responses are required")
    return await get_message_processor().process_interactive_response(
        request.originalIntent, request.userResponses, request.userId
    )


@router.get("/info")
async def router_info() -> dict[str, Any]:
    return {"success": True, "data": get_prompt_router().get_router_info()}


@router.get("/actions")
async def supported_actions() -> dict[str, Any]:
    return {"success": True, "data": {"supportedActions": get_prompt_router().get_supported_actions()}}
