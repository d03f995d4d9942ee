"""Tests for portfolio balances, valuation and analytics."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from core.chain.client import ChainClient, ChainError, format_units, parse_units
from core.chain.config import TOKENS, get_chain_token, get_token_address
from core.chain.portfolio import (
    PortfolioController,
    PortfolioService,
    calculate_daily_gain_loss,
    calculate_diversification,
    create_balance_summary,
    create_token_balance_summary,
    get_largest_holding,
)

DUCK = TOKENS["DUCK"].address
USDT = TOKENS["USDT"].address
WALLET = "0x5555555555555555555555555555555555555555"


@pytest.fixture
def funded_chain(chain):
    chain.native = 2 * 10**18
    chain.erc20_balances = {DUCK: 1000 * 10**18, USDT: 5 * 10**6}
    return chain


@pytest.fixture
def service(funded_chain, price_feed):
    return PortfolioService(funded_chain, price_feed)


# ---------------------------------------------------------------------------
# Units / config
# ---------------------------------------------------------------------------


def test_format_and_parse_units():
    assert format_units(2 * 10**18, 18) == "2"
    assert format_units(1000 * 10**18, 18) == "1000"
    assert format_units(1_500_000, 6) == "1.5"
    assert format_units(0, 18) == "0"
    assert parse_units("1.5", 18) == 15 * 10**17
    assert parse_units(0.1, 6) == 100_000


def test_token_lookup():
    assert get_chain_token("duck").decimals == 18
    assert get_token_address("TON") == "native"
    assert get_token_address(DUCK.lower()) == DUCK.lower()
    with pytest.raises(ValueError, match="Unsupported token"):
        get_chain_token("DOGE")


def test_chain_client_wraps_rpc_errors():
    w3 = MagicMock()
    w3.eth.get_balance.side_effect = ValueError("execution reverted")
    w3.is_connected.side_effect = requests.ConnectionError("refused")
    client = ChainClient("http://rpc.invalid", web3=w3)

    with pytest.raises(ChainError, match="Failed to fetch TON balance"):
        client.get_native_balance(WALLET)
    assert client.is_connected() is False
    assert client.get_token_info("native")["symbol"] == "TON"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def test_portfolio_balance_values_holdings(service):
    portfolio = service.get_portfolio_balance(WALLET)

    assert portfolio["nativeBalance"]["balanceFormatted"] == "2"
    assert portfolio["nativeBalance"]["usdValue"] == 10.0
    by_symbol = {t["symbol"]: t for t in portfolio["tokenBalances"]}
    assert by_symbol["DUCK"]["usdValue"] == pytest.approx(5.0)
    assert by_symbol["USDT"]["balanceFormatted"] == "5"
    assert by_symbol["WTON"]["usdValue"] == 0
    assert portfolio["priceData"]["WTON"]["source"] == "unavailable"
    assert portfolio["totalUsdValue"] == pytest.approx(20.0)


def test_failed_token_read_becomes_zero_row(funded_chain, price_feed):
    funded_chain.failing = {DUCK}
    portfolio = PortfolioService(funded_chain, price_feed).get_portfolio_balance(WALLET)

    duck = next(t for t in portfolio["tokenBalances"] if t["symbol"] == "DUCK")
    assert duck["balance"] == "0"
    assert "balanceOf reverted" in duck["error"]
    assert portfolio["totalUsdValue"] == pytest.approx(15.0)


def test_native_read_failure_raises(funded_chain, price_feed):
    funded_chain.down = True
    with pytest.raises(ChainError):
        PortfolioService(funded_chain, price_feed).get_portfolio_balance(WALLET)


def test_token_balance(service):
    usdt = service.get_token_balance(WALLET, "usdt")
    assert usdt["symbol"] == "USDT"
    assert usdt["usdValue"] == pytest.approx(5.0)

    ton = service.get_token_balance(WALLET, "TON")
    assert ton["balanceFormatted"] == "2"
    assert ton["usdPrice"] == 5.0


def test_portfolio_summary_analytics(service):
    summary = service.get_portfolio_summary(WALLET)
    analytics = summary["analytics"]

    assert analytics["tokenCount"] == 4
    assert analytics["largestHolding"]["symbol"] == "TON"
    assert analytics["largestHolding"]["type"] == "native"
    assert analytics["diversification"]["herfindahlIndex"] == pytest.approx(0.375)
    assert analytics["diversification"]["isWellDiversified"] is False
    assert analytics["diversification"]["dominantAsset"] is None
    # +2.5% of $10, -12% of $5, +0.01% of $5
    assert analytics["totalGainLoss24h"] == pytest.approx(0.25 - 0.6 + 0.0005)


# ---------------------------------------------------------------------------
# Analytics helpers
# ---------------------------------------------------------------------------


def _portfolio(native_usd, *token_usd):
    return {
        "nativeBalance": {"symbol": "TON", "usdValue": native_usd},
        "tokenBalances": [{"symbol": f"T{i}", "usdValue": v} for i, v in enumerate(token_usd)],
        "totalUsdValue": native_usd + sum(token_usd),
    }


def test_diversification_empty_and_dominant():
    assert calculate_diversification(_portfolio(0)) == {
        "herfindahlIndex": 0,
        "isWellDiversified": False,
        "dominantAsset": None,
    }
    assert calculate_diversification(_portfolio(90, 10))["dominantAsset"] == "TON"
    assert calculate_diversification(_portfolio(10, 10, 10, 10, 10))["isWellDiversified"] is True


def test_largest_holding_prefers_tokens_when_bigger():
    assert get_largest_holding(_portfolio(1, 5, 3))["symbol"] == "T0"


def test_daily_gain_loss_without_price_data():
    assert calculate_daily_gain_loss(_portfolio(10, 10)) == 0.0


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


def test_summaries_for_empty_wallet():
    assert create_balance_summary({"totalUsdValue": 0}).startswith("📭")
    assert create_token_balance_summary({"symbol": "DUCK", "balanceFormatted": "0"}) == (
        "📭 You don't have any DUCK tokens in your wallet."
    )


def test_controller_uses_agent_wallet(service, wallets):
    wallets.register("agent-1", "user-1", WALLET)
    controller = PortfolioController(service, wallets, default_wallet="0x" + "0" * 40)

    assert controller.get_user_wallet_address("user-1") == WALLET
    assert controller.get_user_wallet_address("nobody") == "0x" + "0" * 40
    assert controller.get_user_wallet_address(None) == "0x" + "0" * 40


def test_process_balance_request(service):
    controller = PortfolioController(service, default_wallet=WALLET)
    intent = {"classification": {"actionSubtype": "balance"}, "validation": {"resolved": {}}}

    response = controller.process_portfolio_request(intent, "user-1")

    assert response["success"]
    assert response["subtype"] == "balance"
    assert "**Total Value:** $20.00" in response["data"]["message"]
    assert response["data"]["portfolioData"]["requestType"] == "balance"
    assert response["data"]["intent"]["processed"] is True


def test_process_token_balance_request(service):
    controller = PortfolioController(service, default_wallet=WALLET)
    intent = {
        "classification": {"actionSubtype": "token-balance"},
        "validation": {"resolved": {"token": "DUCK"}},
    }

    response = controller.process_portfolio_request(intent, None)

    assert response["data"]["portfolioData"]["tokenBalance"]["symbol"] == "DUCK"
    assert "💎 **Your DUCK Balance**" in response["data"]["message"]


def test_process_summary_request(service):
    controller = PortfolioController(service, default_wallet=WALLET)
    intent = {"classification": {"actionSubtype": "portfolio-summary"}}

    response = controller.process_portfolio_request(intent, None)

    assert "📈 **Portfolio Analytics**" in response["data"]["message"]
    assert "**Largest Holding:** TON (50.0%)" in response["data"]["message"]


def test_process_request_chain_failure(funded_chain, price_feed):
    funded_chain.down = True
    controller = PortfolioController(PortfolioService(funded_chain, price_feed), default_wallet=WALLET)

    response = controller.process_portfolio_request({"classification": {"actionSubtype": "balance"}}, "u")

    assert response["success"] is False
    assert response["data"]["portfolioData"] is None
    assert "rpc down" in response["error"]
