"""Tests for component health checks."""

from unittest.mock import MagicMock

from core.health import checker as checker_module
from core.health.checker import HealthChecker, HealthStatus

WALLET = "0x5555555555555555555555555555555555555555"


def test_health_status_dataclass():
    status = HealthStatus(status="ok", latency_ms=15.5, message="All good", details={"count": 100})

    assert status.status == "ok"
    assert status.latency_ms == 15.5
    assert status.details == {"count": 100}


def test_database_not_configured(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "")

    result = HealthChecker().check_database()

    assert result.status == "error"
    assert "not configured" in result.message


def test_database_without_wallet_table(tmp_path):
    result = HealthChecker(f"sqlite:///{tmp_path / 'empty.db'}").check_database()

    assert result.status == "ok"
    assert result.latency_ms >= 0
    assert result.details == {"agent_wallets": 0}


def test_database_counts_agent_wallets(wallets, tmp_path):
    wallets.register("agent-1", "user-1", WALLET)
    wallets.register("agent-2", "user-2", WALLET)

    result = HealthChecker(f"sqlite:///{tmp_path / 'wallets.db'}").check_database()

    assert result.status == "ok"
    assert result.details == {"agent_wallets": 2}


def test_database_error(tmp_path):
    result = HealthChecker(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}").check_database()

    assert result.status == "error"
    assert result.message.startswith("Database error: OperationalError")


def test_engine_reused_per_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'cached.db'}"
    first = HealthChecker(url)
    second = HealthChecker(url)

    assert first._get_engine() is second._get_engine()
    assert checker_module._engine_cache[url] is first._get_engine()


def test_rpc_ok_and_down(chain):
    ok = HealthChecker("sqlite://", chain=chain).check_rpc()
    assert ok.status == "ok"
    assert ok.details == {"block_number": 1234, "chain_id": 5545, "rpc_url": "http://rpc.invalid"}

    chain.down = True
    down = HealthChecker("sqlite://", chain=chain).check_rpc()
    assert down.status == "error"
    assert down.message == "RPC unreachable"
    assert down.details == {"error": "rpc down"}


def test_llm_states(offline_router, make_router):
    assert HealthChecker("sqlite://").check_llm().status == "degraded"
    assert HealthChecker("sqlite://", router=offline_router).check_llm().message.startswith("No LLM API key")

    ready = HealthChecker("sqlite://", router=make_router()).check_llm()
    assert ready.status == "ok"
    assert ready.details == {"provider": "together"}


def test_market_data_states(market):
    assert HealthChecker("sqlite://").check_market_data().status == "degraded"

    limited = HealthChecker("sqlite://", market=market).check_market_data()
    assert limited.status == "degraded"
    assert limited.details["connected"] is False

    market.connected = True
    assert HealthChecker("sqlite://", market=market).check_market_data().message == "MCP connected (stdio)"


def test_check_all(tmp_path, chain, offline_router, market):
    checker = HealthChecker(f"sqlite:///{tmp_path / 'all.db'}", router=offline_router, chain=chain, market=market)
    checker.check_rpc = MagicMock(return_value=HealthStatus(status="ok", message="stubbed"))

    results = checker.check_all()

    assert list(results) == ["llm", "rpc", "market_data", "database"]
    assert results["rpc"].message == "stubbed"
    assert results["llm"].status == "degraded"
    assert results["database"].status == "ok"
