"""Tests for validated message processing and interactive completion."""

from __future__ import annotations

import pytest

from core.ai.types import TaskName
from core.chain.client import ChainError
from core.chain.portfolio import PortfolioController, PortfolioService
from core.chain.transfer import TransferService
from core.intent.service import IntentService
from core.routing.actions import ActionsProcessor
from core.routing.messages import MessageProcessor
from core.routing.router import PromptRouter

WALLET = "0x5555555555555555555555555555555555555555"


class RecordingSwaps:
    def __init__(self):
        self.calls = []

    def execute_swap(self, user_id, from_token, to_token, amount, slippage=0.5):
        self.calls.append((user_id, from_token, to_token, amount))
        return {"success": True, "transactionHash": "0xbeef", "swapDetails": {"amountIn": str(amount)}}


@pytest.fixture
def swaps():
    return RecordingSwaps()


@pytest.fixture
def build(contacts, chain, wallets, market, price_feed, swaps):
    def _build(llm) -> MessageProcessor:
        transfers = TransferService(llm, contacts, chain, wallets)
        intent = IntentService(llm, contacts, transfer_service=transfers)
        actions = ActionsProcessor(llm, transfers, swaps)
        portfolio = PortfolioController(PortfolioService(chain, price_feed), wallets, default_wallet=WALLET)
        prompt_router = PromptRouter(llm, intent, actions, transfers, market, price_feed, portfolio)
        return MessageProcessor(intent, prompt_router, actions, transfers, swaps, portfolio)

    return _build


@pytest.fixture
def processor(build, offline_router):
    return build(offline_router)


# ---------------------------------------------------------------------------
# process_message_with_validation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_portfolio_request(processor, chain):
    chain.native = 10**18

    reply = await processor.process_message_with_validation("show my DUCK balance", "user-1")

    assert reply["success"] is True
    assert reply["subtype"] == "token-balance"
    assert reply["data"]["portfolioData"]["tokenBalance"]["symbol"] == "DUCK"


@pytest.mark.asyncio
async def test_portfolio_error(processor, chain):
    chain.down = True

    reply = await processor.process_message_with_validation("show my DUCK balance", "user-1")

    assert reply["success"] is False
    assert reply["type"] == "portfolioError"
    assert reply["data"]["error"]


@pytest.mark.asyncio
async def test_complete_transfer_goes_to_transfer_service(processor):
    reply = await processor.process_message_with_validation("send 5 TON to alice")

    assert reply["type"] == "transfer"
    assert reply["success"] is False
    assert reply["data"]["status"] == "wallet_error"


@pytest.mark.asyncio
async def test_complete_swap_executes(processor, swaps):
    reply = await processor.process_message_with_validation("swap 10 TON for DUCK", "user-1")

    assert reply["type"] == "swap"
    assert reply["success"] is True
    assert reply["data"]["swapResult"]["transactionHash"] == "0xbeef"
    assert swaps.calls == [("user-1", "TON", "DUCK", 10)]


@pytest.mark.asyncio
async def test_incomplete_action_requests_arguments(build, make_router):
    llm = make_router(
        {
            TaskName.CLASSIFICATION: {"type": "actions", "actionSubtype": "transfer", "confidence": 0.9},
            TaskName.EXTRACTION: {"args": {"recipient": "bob"}},
        }
    )

    reply = await build(llm).process_message_with_validation("send some tokens to bob", "user-1")

    assert reply["type"] == "argumentRequest"
    assert reply["data"]["interactive"]["missingArgs"] == ["amount"]
    assert set(reply["data"]["contactsAndTokens"]) == {"contacts", "tokens", "allContacts", "allTokens"}


@pytest.mark.asyncio
async def test_strategy_and_information_use_prompt_router(processor):
    strategy = await processor.process_message_with_validation("suggest a long term strategy")
    assert strategy["type"] == "strategy"
    assert strategy["data"]["strategy"]["type"] == "strategy"

    information = await processor.process_message_with_validation("what is the price of TON")
    assert information["type"] == "information"
    assert information["data"]["information"]["result"]["requestType"] == "price_data"


@pytest.mark.asyncio
async def test_unmatched_message_is_general(processor):
    reply = await processor.process_message_with_validation("review this", "user-1")

    assert reply["type"] == "general"
    assert reply["success"] is True


# ---------------------------------------------------------------------------
# process_interactive_response
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_interactive_transfer(processor):
    original = {"extraction": {"actionType": "transfer", "args": {"recipient": "alice"}}, "userId": "user-1"}

    reply = await processor.process_interactive_response(original, {"amount": 2, "tokenId": "DUCK"})

    assert reply["type"] == "transfer"
    assert reply["data"]["status"] == "wallet_error"


@pytest.mark.asyncio
async def test_interactive_completion_executes_swap(processor, swaps):
    original = {
        "classification": {"type": "actions", "actionSubtype": "swap"},
        "extraction": {"actionType": "swap", "args": {"fromToken": "TON", "toToken": "DUCK"}},
        "userId": "user-1",
    }

    reply = await processor.process_interactive_response(original, {"amount": 3})

    assert reply["type"] == "actionComplete"
    assert reply["data"]["actionResult"]["transactionHash"] == "0xbeef"
    assert swaps.calls == [("user-1", "TON", "DUCK", 3)]


@pytest.mark.asyncio
async def test_interactive_still_missing(processor):
    original = {
        "classification": {"type": "actions", "actionSubtype": "swap"},
        "extraction": {"actionType": "swap", "args": {"fromToken": "TON"}},
    }

    reply = await processor.process_interactive_response(original, {"toToken": "NOPE"})

    assert reply["type"] == "argumentRequest"
    assert reply["data"]["interactive"]["missingArgs"] == ["toToken", "amount"]


@pytest.mark.asyncio
async def test_interactive_unsupported_action_reports_error(processor):
    original = {
        "classification": {"type": "actions", "actionSubtype": "other"},
        "extraction": {"actionType": "other", "args": {}},
    }

    reply = await processor.process_interactive_response(original, {})

    assert reply["type"] == "actionError"
    assert "not yet supported" in reply["data"]["error"]


@pytest.mark.asyncio
async def test_swap_chain_failure_is_swap_error(build, offline_router, swaps, monkeypatch):
    def rpc_down(*args, **kwargs):
        raise ChainError("Failed to get token info: rpc down")

    monkeypatch.setattr(swaps, "execute_swap", rpc_down)

    reply = await build(offline_router).process_message_with_validation("swap 10 TON for DUCK", "user-1")

    assert reply["type"] == "swapError"
    assert reply["success"] is False
    assert "rpc down" in reply["data"]["error"]
