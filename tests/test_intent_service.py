"""Tests for the end-to-end intent pipeline and interactive completion."""

import pytest

from core.ai.types import TaskName
from core.intent.interactive import create_interactive_component, generate_interactive_data
from core.intent.service import IntentService
from core.intent.validation import validate_and_resolve_arguments, validate_portfolio_arguments

ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"


class RecordingTransferService:
    def __init__(self):
        self.calls = []

    async def process_transfer_with_args(self, args, user_id):
        self.calls.append((args, user_id))
        return {"success": True, "type": "transfer", "data": args}


# ---------------------------------------------------------------------------
# Validation dispatch
# ---------------------------------------------------------------------------


def test_missing_args_are_trivially_valid(contacts):
    assert validate_and_resolve_arguments({"args": None}, contacts)["isValid"] is True


def test_portfolio_token_balance_needs_token():
    result = validate_portfolio_arguments({"requestType": "token-balance"})
    assert result["missing"] == ["token"]
    assert result["quality"] == 95

    result = validate_portfolio_arguments({"requestType": "token-balance", "token": "doge"})
    assert result["isValid"]
    assert result["resolved"]["token"] == "DOGE"
    assert result["warnings"] == ["Token doge may not be supported"]


def test_action_dispatch_resolves_contact(contacts):
    extraction = {"actionType": "transfer", "args": {"recipient": "bob", "amount": 1}}
    result = validate_and_resolve_arguments(extraction, contacts)
    assert result["isValid"]
    assert result["resolved"]["recipient"] == BOB


# ---------------------------------------------------------------------------
# Interactive forms
# ---------------------------------------------------------------------------


def test_no_missing_args_means_no_form(contacts):
    assert generate_interactive_data([], "actions", contacts) is None


def test_recipient_component_lists_contacts(contacts):
    component = create_interactive_component("recipient", contacts)
    assert component["type"] == "combobox"
    assert component["allowCustom"] is True
    assert {o["value"] for o in component["options"]} >= {ALICE, BOB}


def test_form_prefills_partial_values(contacts):
    data = generate_interactive_data(
        ["amount", "fromToken"], "actions", contacts, action_type="swap", args={"amount": 5}
    )
    assert data["type"] == "argumentRequest"
    assert data["missingArgs"] == ["amount", "fromToken"]
    amount, from_token = data["components"]
    assert amount["defaultValue"] == 5
    assert amount["actionType"] == "swap"
    assert from_token["label"] == "From Token"
    assert "defaultValue" not in from_token


def test_unknown_argument_gets_text_input(contacts):
    component = create_interactive_component("validator", contacts)
    assert component == {
        "name": "validator",
        "type": "input",
        "inputType": "text",
        "label": "Validator",
        "placeholder": "Enter validator",
    }


# ---------------------------------------------------------------------------
# IntentService
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_parse_complete_transfer(offline_router, contacts):
    service = IntentService(offline_router, contacts)

    intent = await service.parse_intent("send 5 TON to alice", user_id="u1")

    assert intent["classification"]["type"] == "actions"
    assert intent["classification"]["actionSubtype"] == "transfer"
    assert intent["extraction"]["args"] == {"amount": 5, "tokenId": "TON", "recipient": "alice"}
    assert intent["validation"]["resolved"]["recipient"] == ALICE
    assert intent["isComplete"] is True
    assert intent["interactiveData"] is None
    assert intent["userId"] == "u1"


@pytest.mark.asyncio
async def test_parse_incomplete_transfer_asks_for_arguments(make_router, contacts):
    router = make_router(
        {
            TaskName.CLASSIFICATION: {"type": "actions", "actionSubtype": "transfer", "confidence": 0.9},
            TaskName.EXTRACTION: {"args": {"recipient": "bob"}},
        }
    )
    service = IntentService(router, contacts)

    intent = await service.parse_intent("send some tokens to bob")

    assert intent["isComplete"] is False
    assert intent["validation"]["missing"] == ["amount"]
    assert intent["interactiveData"]["missingArgs"] == ["amount"]
    assert intent["interactiveData"]["messageType"] == "actions"


@pytest.mark.asyncio
async def test_parse_portfolio_intent(offline_router, contacts):
    intent = await IntentService(offline_router, contacts).parse_intent("show my DUCK balance")

    assert intent["classification"]["actionSubtype"] == "token-balance"
    assert intent["validation"]["resolved"] == {"token": "DUCK", "requestType": "token-balance"}
    assert intent["isComplete"] is True


@pytest.mark.asyncio
async def test_parse_offline_pipeline_is_incomplete(offline_router, contacts):
    intent = await IntentService(offline_router, contacts).parse_intent("when TON rises 10% then buy DUCK")

    assert intent["classification"]["type"] == "pipeline"
    assert intent["validation"]["missing"] == ["trigger", "actions"]
    assert intent["isComplete"] is False


@pytest.mark.asyncio
async def test_parse_failure_degrades_to_information(offline_router, contacts, monkeypatch):
    service = IntentService(offline_router, contacts)

    async def boom(message):
        raise RuntimeError("classifier exploded")

    monkeypatch.setattr(service, "classify_message", boom)

    intent = await service.parse_intent("anything", user_id="u2")

    assert intent["classification"] == {"type": "information", "confidence": 0.1}
    assert intent["error"] == "classifier exploded"
    assert intent["isComplete"] is False


@pytest.mark.asyncio
async def test_interactive_response_revalidates(offline_router, contacts):
    service = IntentService(offline_router, contacts)
    original = {
        "classification": {"type": "actions", "actionSubtype": "swap"},
        "extraction": {"actionType": "swap", "args": {"fromToken": "TON", "toToken": "DUCK"}},
        "userId": "u1",
    }

    updated = await service.process_interactive_response(original, {"amount": 3, "note": ""})

    assert updated["isComplete"] is True
    assert updated["extraction"]["args"] == {"fromToken": "TON", "toToken": "DUCK", "amount": 3}
    assert updated["validation"]["resolved"]["toToken"] == "DUCK"
    assert updated["interactiveData"] is None


@pytest.mark.asyncio
async def test_interactive_response_still_missing(offline_router, contacts):
    service = IntentService(offline_router, contacts)
    original = {
        "classification": {"type": "actions"},
        "extraction": {"actionType": "swap", "args": {"fromToken": "TON"}},
    }

    updated = await service.process_interactive_response(original, {"toToken": "NOPE"})

    assert updated["isComplete"] is False
    assert updated["validation"]["missing"] == ["toToken", "amount"]
    assert updated["interactiveData"]["missingArgs"] == ["toToken", "amount"]


@pytest.mark.asyncio
async def test_interactive_transfer_goes_to_transfer_service(offline_router, contacts):
    transfers = RecordingTransferService()
    service = IntentService(offline_router, contacts, transfer_service=transfers)
    original = {"extraction": {"actionType": "transfer", "args": {"recipient": "alice"}}, "userId": "u9"}

    result = await service.process_interactive_response(original, {"amount": 2})

    assert result["success"] is True
    assert transfers.calls == [({"amount": 2, "token": "TON", "recipient": "alice"}, "u9")]
