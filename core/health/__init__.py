"""Health probes for the LLM provider, DuckChain RPC, MCP market data and wallet database."""

from core.health.checker import HealthChecker, HealthStatus

__all__ = ["HealthChecker", "HealthStatus"]
