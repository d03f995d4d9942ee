"""Tests for the contacts book and token list."""

import json

from core.registry.contacts import ContactsTokensService, is_evm_address
from core.registry.tokens import TokenValidator, calculate_similarity

ALICE = "0x1111111111111111111111111111111111111111"
STRANGER = "0x9999999999999999999999999999999999999999"
DUCK_ADDRESS = "0xdA65892eA771d3268610337E9964D916028B7dAD"


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------


def test_calculate_similarity():
    assert calculate_similarity("", "") == 1.0
    assert calculate_similarity("duck", "duk") == 0.75
    assert calculate_similarity("abc", "xyz") == 0.0
    assert calculate_similarity("kitten", "sitting") == 4 / 7


def test_is_evm_address():
    assert is_evm_address(ALICE)
    assert not is_evm_address("0x1234")
    assert not is_evm_address(None)


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class TestResolveContact:
    def test_by_key(self, contacts):
        assert contacts.resolve_contact("alice")["address"] == ALICE

    def test_by_exact_name_case_insensitive(self, contacts):
        assert contacts.resolve_contact("bob martin")["key"] == "bob"

    def test_by_partial_name(self, contacts):
        assert contacts.resolve_contact("treas")["key"] == "treasury"

    def test_by_known_address(self, contacts):
        assert contacts.resolve_contact(ALICE.upper().replace("0X", "0x"))["key"] == "alice"

    def test_unknown_address_is_ad_hoc(self, contacts):
        contact = contacts.resolve_contact(STRANGER)
        assert contact["type"] == "address"
        assert contact["address"] == STRANGER

    def test_unknown_name(self, contacts):
        assert contacts.resolve_contact("carol") is None
        assert contacts.resolve_contact("") is None


def test_suggest_contacts(contacts):
    suggestions = contacts.suggest_contacts("alise")
    assert [c["key"] for c in suggestions] == ["alice"]
    assert contacts.suggest_contacts("zzzzzz") == []


def test_add_update_delete_persist(contacts, tmp_path):
    assert contacts.add_contact("Carol", {"name": "Carol", "address": STRANGER})
    saved = json.loads((tmp_path / "contacts.json").read_text())
    assert saved["contacts"]["carol"]["category"] == "personal"
    assert saved["metadata"]["totalContacts"] == 4

    assert contacts.update_contact("carol", {"category": "business", "type": None})
    assert contacts.resolve_contact("carol")["category"] == "business"
    assert contacts.resolve_contact("carol")["type"] == "friend"

    assert contacts.delete_contact("carol")
    assert not contacts.delete_contact("carol")
    assert not contacts.update_contact("nobody", {"name": "x"})

    reloaded = ContactsTokensService(tmp_path / "contacts.json", tmp_path / "tokens.json")
    assert "carol" not in reloaded.get_all_contacts()


def test_missing_contacts_file_starts_empty(tmp_path, contacts):
    service = ContactsTokensService(tmp_path / "nope.json", tokens=contacts.tokens)
    assert service.get_all_contacts() == {}


def test_contacts_grouped_by_category(contacts):
    categories = contacts.get_contacts_by_category()
    assert {c["key"] for c in categories["personal"]} == {"alice", "bob"}
    assert [c["key"] for c in categories["business"]] == ["treasury"]


# ---------------------------------------------------------------------------
# Action arguments
# ---------------------------------------------------------------------------


def test_validate_transfer_arguments(contacts):
    result = contacts.validate_action_arguments("transfer", {"recipient": "alice", "amount": 5})
    assert result["isValid"]
    assert result["resolved"]["recipient"] == ALICE
    assert result["resolved"]["recipient_resolved"]["name"] == "Alice"
    assert result["requiredArgs"] == ["recipient", "amount"]


def test_validate_unknown_recipient(contacts):
    result = contacts.validate_action_arguments("transfer", {"recipient": "carol", "amount": 5})
    assert result["missing"] == ["recipient"]
    assert result["errors"] == ['Contact "carol" not found']


def test_validate_swap_resolves_tokens(contacts):
    result = contacts.validate_action_arguments("swap", {"fromToken": "ton", "toToken": "duck", "amount": 1})
    assert result["isValid"]
    assert result["resolved"]["fromToken"] == "TON"
    assert result["resolved"]["toToken_resolved"]["address"] == DUCK_ADDRESS


def test_validate_unknown_token(contacts):
    result = contacts.validate_action_arguments("swap", {"fromToken": "PEPE", "toToken": "DUCK"})
    assert result["missing"] == ["fromToken", "amount"]
    assert result["errors"] == ['Token "PEPE" not found in DuckChain']


def test_unknown_action_requires_nothing(contacts):
    assert contacts.validate_action_arguments("stake", {})["isValid"]


def test_contacts_and_tokens_payload(contacts):
    data = contacts.get_contacts_and_tokens_data()
    assert set(data) == {"contacts", "tokens", "allContacts", "allTokens"}
    assert data["allTokens"]["USDT"]["decimals"] == 6
    assert [t["symbol"] for t in data["tokens"]["stablecoin"]] == ["USDT"]
    assert contacts.get_combobox_options("amount") == []


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokenValidator:
    def test_find_by_symbol_address_and_name(self, contacts):
        tokens = contacts.tokens
        assert tokens.find_token("duck")["symbol"] == "DUCK"
        assert tokens.find_token(DUCK_ADDRESS.lower())["symbol"] == "DUCK"
        assert tokens.find_token("wrapped")["symbol"] == "WTON"
        assert tokens.find_token("0xdead") is None
        assert tokens.find_token("  ") is None

    def test_suggestions(self, contacts):
        assert contacts.tokens.suggest_similar_tokens("DUK") == ["DUCK"]

    def test_validate_swap_tokens(self, contacts):
        tokens = contacts.tokens
        assert tokens.validate_swap_tokens("TON", "DUCK")["isValid"]

        same = tokens.validate_swap_tokens("DUCK", "duck")
        assert not same["isValid"]
        assert same["errors"] == ["Cannot swap the same token"]

        typo = tokens.validate_swap_tokens("DUK", "USDT")
        assert typo["errors"] == ['Token "DUK" not found in DuckChain']
        assert typo["suggestions"] == ["Did you mean: DUCK?"]

    def test_network_scoping(self, contacts):
        tokens = contacts.tokens
        assert tokens.find_token("DUCK", network="duck chain")["symbol"] == "DUCK"
        assert tokens.find_token("DUCK", network="ethereum") is None

        other = tokens.validate_swap_tokens("TON", "DUK", network="ethereum")
        assert not other["isValid"]
        assert other["errors"] == ['Token "TON" not found in ethereum', 'Token "DUK" not found in ethereum']
        assert other["suggestions"] == []

    def test_tokens_by_tag(self, contacts):
        assert [t["symbol"] for t in contacts.tokens.get_tokens_by_tag("wrapped")] == ["WTON"]

    def test_token_list_for_llm(self, contacts):
        text = contacts.tokens.get_token_list_for_llm()
        assert text.startswith("Available tokens on DuckChain:")
        assert "USDT - Tether USD (stablecoin)" in text

    def test_unreadable_file(self, tmp_path):
        broken = tmp_path / "tokens.json"
        broken.write_text("{not json")
        tokens = TokenValidator(broken)
        assert tokens.get_all_tokens() == []
        assert tokens.get_token_list_for_llm() == "No tokens available"
