"""Tests for swap quotes, path encoding and pre-flight checks."""

from __future__ import annotations

import pytest

from core.chain.config import TOKENS
from core.chain.swap import FALLBACK_RATES, SwapService, encode_path

DUCK = TOKENS["DUCK"].address
WTON = TOKENS["WTON"].address
USDT = TOKENS["USDT"].address
WALLET = "0x5555555555555555555555555555555555555555"


@pytest.fixture
def swaps(chain, wallets, price_feed):
    return SwapService(chain, wallets, price_feed)


def test_encode_single_hop_path():
    token0 = "0x" + "a" * 40
    token1 = "0x" + "B" * 40
    assert encode_path([token0, token1], [3000]) == "0x" + "a" * 40 + "000bb8" + "b" * 40


def test_encode_rejects_multi_hop():
    with pytest.raises(ValueError, match="single-hop"):
        encode_path([DUCK, WTON, USDT], [3000, 500])


def test_token_info_from_local_table(swaps):
    assert swaps.get_token_info("ton") == {"symbol": "TON", "name": "Toncoin", "decimals": 18, "address": "native"}
    assert swaps.get_token_info(USDT.lower())["decimals"] == 6


def test_quote_uses_price_ratio(swaps):
    quote = swaps.get_swap_quote("TON", "DUCK", 10, slippage=1.0)

    assert float(quote["toToken"]["estimatedAmount"]) == pytest.approx(10_000)
    assert float(quote["minimumOutput"]) == pytest.approx(9_900)
    assert quote["route"] == ["native", DUCK]
    assert quote["fees"] == [3000]
    assert quote["fromToken"]["amount"] == "10"


def test_quote_falls_back_to_static_rates(swaps, price_feed):
    price_feed.tokens = {}

    quote = swaps.get_swap_quote("WTON", "DUCK", 2)

    assert float(quote["toToken"]["estimatedAmount"]) == pytest.approx(2 * FALLBACK_RATES[("WTON", "DUCK")])
    assert swaps.exchange_rate("USDT", "DUCK") == 1.0


def test_quote_rejects_identical_tokens(swaps):
    with pytest.raises(ValueError, match="identical"):
        swaps.get_swap_quote("DUCK", DUCK.lower(), 1)
    with pytest.raises(ValueError, match="Unsupported token"):
        swaps.get_swap_quote("DOGE", "DUCK", 1)


def test_allowance_check(swaps, chain):
    assert swaps.check_allowance("TON", WALLET, 1)["needsApproval"] is False

    chain.allowance = 5 * 10**6
    result = swaps.check_allowance("USDT", WALLET, 10)
    assert result["needsApproval"] is True
    assert result["currentAllowance"] == "5"


def test_token_balance(swaps, chain):
    chain.erc20_balances = {USDT: 2_500_000}
    assert swaps.get_token_balance(WALLET, "USDT") == {"balance": "2.5", "decimals": 6, "symbol": "USDT"}


def test_execute_without_agent_fails_cleanly(swaps):
    result = swaps.execute_swap("nobody", "TON", "DUCK", 1)

    assert result["success"] is False
    assert result["status"] == "failed"
    assert "No active DuckChain agent" in result["error"]


def test_execute_with_insufficient_balance(swaps, chain, wallets):
    wallets.register("agent-1", "user-1", WALLET, "AGENT_ONE_KEY")
    chain.native = 10**18

    result = swaps.execute_swap("user-1", "TON", "DUCK", 5)

    assert result["success"] is False
    assert "Insufficient TON balance. Available: 1, Required: 5" in result["error"]
    assert chain.sent == []


def test_approve_native_is_refused(swaps, wallets):
    wallets.register("agent-1", "user-1", WALLET, "AGENT_ONE_KEY")

    result = swaps.approve_token("user-1", "TON")

    assert result == {"success": False, "error": "Native TON does not need approval"}
