"""Tests for argument extraction (LLM and regex fallbacks)."""

import pytest

from core.ai.types import TaskName
from core.intent.classifier import Classification
from core.intent.extraction import (
    ArgumentExtractor,
    build_extraction_prompt,
    extract_portfolio_arguments_regex,
    extract_swap_arguments_regex,
    extract_transfer_arguments_regex,
    normalize_args,
)

SWAP = Classification(type="actions", action_subtype="swap")
TRANSFER = Classification(type="actions", action_subtype="transfer")


# ---------------------------------------------------------------------------
# Regex fallbacks
# ---------------------------------------------------------------------------


def test_swap_phrase():
    assert extract_swap_arguments_regex("swap 10 TON for DUCK") == {
        "fromToken": "TON",
        "toToken": "DUCK",
        "amount": 10,
        "swapType": "exactInput",
    }


def test_swap_loose_token_order():
    args = extract_swap_arguments_regex("I want 2.5 duck into usdt")
    assert args["fromToken"] == "DUCK"
    assert args["toToken"] == "USDT"
    assert args["amount"] == 2.5


def test_swap_exact_output():
    assert extract_swap_arguments_regex("swap 10 ton for duck, exact output")["swapType"] == "exactOutput"


def test_swap_incomplete_returns_empty():
    assert extract_swap_arguments_regex("swap TON") == {}
    assert extract_swap_arguments_regex("swap TON for DUCK") == {}


def test_transfer_phrase_strips_punctuation():
    assert extract_transfer_arguments_regex("send 5 ton to alice.") == {
        "amount": 5,
        "tokenId": "TON",
        "recipient": "alice",
    }
    assert extract_transfer_arguments_regex("give alice some tokens") == {}


def test_portfolio_regex():
    args = extract_portfolio_arguments_regex("how did my duck do over 7d", "token-balance")
    assert args == {"requestType": "token-balance", "token": "DUCK", "timeframe": "7d"}


def test_normalize_args():
    args = normalize_args("swap", {"fromToken": "ton", "toToken": "0xabc", "amount": 1, "note": None})
    assert args == {"fromToken": "TON", "toToken": "0xabc", "amount": 1, "swapType": "exactInput"}


def test_extraction_prompt_falls_back_to_transfer_rules():
    assert "recipient, amount, tokenId" in build_extraction_prompt("unknownAction")
    assert "fromToken, toToken, amount, swapType" in build_extraction_prompt("swap")


# ---------------------------------------------------------------------------
# ArgumentExtractor
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_non_action_has_empty_args(offline_router):
    extractor = ArgumentExtractor(offline_router)
    result = await extractor.extract_arguments("explain TON", Classification(type="information"))
    assert result == {"args": {}}


@pytest.mark.asyncio
async def test_offline_swap_uses_regex(offline_router):
    result = await ArgumentExtractor(offline_router).extract_arguments("swap 1 ton to duck", SWAP)

    assert result["actionType"] == "swap"
    assert result["args"] == {"fromToken": "TON", "toToken": "DUCK", "amount": 1, "swapType": "exactInput"}
    assert result["originalMessage"] == "swap 1 ton to duck"


@pytest.mark.asyncio
async def test_llm_args_are_normalized(make_router):
    router = make_router({TaskName.EXTRACTION: {"args": {"recipient": "bob", "amount": 3, "tokenId": "usdt"}}})

    result = await ArgumentExtractor(router).extract_arguments("send bob 3 usdt", TRANSFER)

    assert result["args"] == {"recipient": "bob", "amount": 3, "tokenId": "USDT"}
    call = router.provider.calls[0]
    assert "Extract arguments for transfer action" in call["system_prompt"]


@pytest.mark.asyncio
async def test_empty_llm_args_fall_back_to_regex(make_router):
    router = make_router({TaskName.EXTRACTION: {"args": {}}})

    result = await ArgumentExtractor(router).extract_arguments("transfer 2 duck to bob", TRANSFER)

    assert result["args"] == {"amount": 2, "tokenId": "DUCK", "recipient": "bob"}


@pytest.mark.asyncio
async def test_portfolio_extraction_offline(offline_router):
    classification = Classification(type="portfolio-information", action_subtype="token-balance")

    result = await ArgumentExtractor(offline_router).extract_portfolio_arguments(
        "show my usdt balance today", classification
    )

    assert result["type"] == "portfolio-information"
    assert result["actionType"] == "token-balance"
    assert result["args"] == {"requestType": "token-balance", "token": "USDT", "timeframe": "today"}


@pytest.mark.asyncio
async def test_portfolio_extraction_llm_uppercases_token(make_router):
    router = make_router({TaskName.PORTFOLIO: {"args": {"token": "duck"}}})
    classification = Classification(type="portfolio-information", action_subtype="token-balance")

    result = await ArgumentExtractor(router).extract_portfolio_arguments("duck?", classification)

    assert result["args"] == {"token": "DUCK", "requestType": "token-balance"}


@pytest.mark.asyncio
async def test_pipeline_extraction_offline(offline_router):
    result = await ArgumentExtractor(offline_router).extract_pipeline_arguments("when TON pumps buy DUCK")

    assert result["pipeline"] == {"trigger": None, "actions": [], "conditions": []}
    assert result["args"] == {}
    assert "error" not in result


@pytest.mark.asyncio
async def test_pipeline_extraction_error(make_router):
    result = await ArgumentExtractor(make_router({})).extract_pipeline_arguments("when TON pumps buy DUCK")

    assert result["error"] == "no reply configured"
    assert result["pipeline"]["error"] == "no reply configured"


@pytest.mark.asyncio
async def test_pipeline_extraction_success(make_router):
    pipeline = {
        "trigger": {"type": "price_movement", "token": "TON", "direction": "increase", "percentage": 10},
        "actions": [{"type": "buy", "token": "DUCK", "amount": 100}],
    }
    router = make_router({TaskName.PIPELINE: {"pipeline": pipeline}})

    result = await ArgumentExtractor(router).extract_pipeline_arguments("when TON rises 10% buy 100 DUCK")

    assert result["type"] == "pipeline"
    assert result["pipeline"]["conditions"] == []
    assert result["args"] is result["pipeline"]
