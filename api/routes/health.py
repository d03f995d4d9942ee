"""GET /system/health: per-component status plus the worst of them."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from api.services import get_chain, get_llm_router, get_market
from core.health import HealthChecker, HealthStatus

router = APIRouter(prefix="/system/health", tags=["health"])

_STARTED_AT = time.time()
_SEVERITY = {"ok": 0, "degraded": 1, "error": 2}

Status = Literal["ok", "degraded", "error"]


class ComponentReport(BaseModel):
    status: Status
    message: str
    latency_ms: Optional[float] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_status(cls, status: HealthStatus) -> "ComponentReport":
        return cls(
            status=status.status,
            message=status.message,
            latency_ms=status.latency_ms,
            details=status.details or None,
        )


@router.get("")
async def health_check() -> dict[str, Any]:
    """Report the LLM provider, RPC endpoint, MCP market data and wallet database."""
    checker = HealthChecker(router=get_llm_router(), chain=get_chain(), market=get_market())
    checks = await asyncio.to_thread(checker.check_all)

    body: dict[str, Any] = {
        "api": {"status": "ok", "uptime_seconds": int(time.time() - _STARTED_AT), "message": "API running"},
    }
    body.update(
        {name: ComponentReport.from_status(status).model_dump(exclude_none=True) for name, status in checks.items()}
    )
    worst = max((report["status"] for report in body.values()), key=_SEVERITY.__getitem__)
    body["overall"] = {"status": worst}
    return body
