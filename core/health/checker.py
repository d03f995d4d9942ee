"""Component probes behind ``GET /system/health``.

Each probe returns a ``HealthStatus``. Only the RPC and database probes do
I/O; the LLM and market data probes report configuration and connection
state already held by the services.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.chain.client import ChainClient, ChainError
from core.config import get_settings

if TYPE_CHECKING:
    from core.ai.router import LLMRouter
    from core.market_data.mcp_client import MCPMarketDataService

_engine_cache: dict[str, Engine] = {}


@dataclass
class HealthStatus:
    status: Literal["ok", "degraded", "error"]
    latency_ms: Optional[float] = None
    message: Optional[str] = None
    details: Optional[dict[str, Any]] = None


def _ms_since(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class HealthChecker:
    def __init__(
        self,
        database_url: Optional[str] = None,
        *,
        router: Optional["LLMRouter"] = None,
        chain: Optional[ChainClient] = None,
        market: Optional["MCPMarketDataService"] = None,
    ):
        self.database_url = database_url or get_settings().database_url
        self.router = router
        self.chain = chain
        self.market = market

    def _get_engine(self) -> Engine:
        engine = _engine_cache.get(self.database_url)
        if engine is None:
            engine = _engine_cache[self.database_url] = create_engine(self.database_url, pool_pre_ping=True)
        return engine

    def check_database(self) -> HealthStatus:
        """Round-trip latency and the number of registered agent wallets."""
        if not self.database_url:
            return HealthStatus(status="error", message="DATABASE_URL not configured")

        engine = self._get_engine()
        started = time.perf_counter()
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            return HealthStatus(
                status="error", message=f"Database error: {type(exc).__name__}", details={"error": str(exc)}
            )
        latency = _ms_since(started)

        try:
            with engine.connect() as conn:
                wallet_count = conn.execute(text("SELECT COUNT(*) FROM agent_wallets")).scalar()
        except SQLAlchemyError:
            # no agent has been registered yet, so the table does not exist
            wallet_count = 0
        return HealthStatus(
            status="ok", latency_ms=latency, message="Database connected", details={"agent_wallets": wallet_count}
        )

    def check_rpc(self) -> HealthStatus:
        chain = self.chain or ChainClient()
        started = time.perf_counter()
        try:
            block = chain.block_number()
        except ChainError as exc:
            return HealthStatus(status="error", message="RPC unreachable", details={"error": str(exc)})
        return HealthStatus(
            status="ok",
            latency_ms=_ms_since(started),
            message="RPC connected",
            details={"block_number": block, "chain_id": chain.chain_id, "rpc_url": chain.rpc_url},
        )

    def check_llm(self) -> HealthStatus:
        if self.router is None:
            return HealthStatus(status="degraded", message="LLM router not initialized")
        if not self.router.is_available():
            return HealthStatus(status="degraded", message="No LLM API key; using rule-based fallbacks")
        return HealthStatus(
            status="ok", message="LLM provider configured", details={"provider": self.router.provider.name.value}
        )

    def check_market_data(self) -> HealthStatus:
        if self.market is None:
            return HealthStatus(status="degraded", message="Market data service not initialized")
        state = self.market.get_status()
        if state["connected"]:
            return HealthStatus(status="ok", message=f"MCP connected ({state['mode']})", details=state)
        return HealthStatus(
            status="degraded", message="MCP server unavailable; using GeckoTerminal and static data", details=state
        )

    def check_all(self) -> dict[str, HealthStatus]:
        return {
            "llm": self.check_llm(),
            "rpc": self.check_rpc(),
            "market_data": self.check_market_data(),
            "database": self.check_database(),
        }
