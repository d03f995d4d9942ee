"""Tests for the agent wallet table (SQLite)."""

import pytest

from core.chain.client import ChainError
from core.chain.wallets import AgentWallet, AgentWalletStore

ADDRESS_A = "0x5555555555555555555555555555555555555555"
ADDRESS_B = "0x6666666666666666666666666666666666666666"


def test_register_and_lookup(wallets):
    wallet = wallets.register("agent-1", "user-1", ADDRESS_A, "AGENT_ONE_KEY")

    assert wallet == AgentWallet("agent-1", "user-1", ADDRESS_A, "AGENT_ONE_KEY", True)
    assert wallets.get_for_user("user-1") == wallet
    assert wallets.get_by_agent_id("agent-1").address == ADDRESS_A
    assert wallets.get_for_user("user-2") is None
    assert wallets.get_by_agent_id("missing") is None


def test_register_replaces_existing_agent(wallets):
    wallets.register("agent-1", "user-1", ADDRESS_A)
    wallets.register("agent-1", "user-1", ADDRESS_B)

    assert wallets.get_by_agent_id("agent-1").address == ADDRESS_B
    assert len(wallets.list_agents()) == 1


def test_list_agents_by_user(wallets):
    wallets.register("agent-1", "user-1", ADDRESS_A)
    wallets.register("agent-2", "user-2", ADDRESS_B)

    assert [w.agent_id for w in wallets.list_agents()] == ["agent-1", "agent-2"]
    assert [w.agent_id for w in wallets.list_agents("user-2")] == ["agent-2"]


def test_deactivate_hides_wallet_from_user_lookup(wallets):
    wallets.register("agent-1", "user-1", ADDRESS_A)

    assert wallets.deactivate("agent-1") is True
    assert wallets.deactivate("agent-9") is False
    assert wallets.get_for_user("user-1") is None
    assert wallets.get_by_agent_id("agent-1").is_active is False


def test_to_dict_omits_key_reference():
    wallet = AgentWallet("agent-1", "user-1", ADDRESS_A, "AGENT_ONE_KEY")
    assert wallet.to_dict() == {"agentId": "agent-1", "userId": "user-1", "address": ADDRESS_A, "isActive": True}


def test_private_key_comes_from_environment(monkeypatch):
    wallet = AgentWallet("agent-1", "user-1", ADDRESS_A, "AGENT_ONE_KEY")

    with pytest.raises(ChainError, match="No signing key configured for agent agent-1"):
        AgentWalletStore.private_key_for(wallet)

    monkeypatch.setenv("AGENT_ONE_KEY", "0x" + "11" * 32)
    assert AgentWalletStore.private_key_for(wallet) == "0x" + "11" * 32

    with pytest.raises(ChainError):
        AgentWalletStore.private_key_for(AgentWallet("agent-2", "user-2", ADDRESS_B))


def test_store_reopens_after_close(tmp_path):
    url = f"sqlite:///{tmp_path / 'wallets.db'}"
    store = AgentWalletStore(url)
    store.register("agent-1", "user-1", ADDRESS_A)
    store.close()

    reopened = AgentWalletStore(url)
    assert reopened.get_for_user("user-1").agent_id == "agent-1"
    reopened.close()
