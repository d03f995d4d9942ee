"""Shared test fixtures for pytest.

Provides an in-memory LLM provider, offline stand-ins for the price feed, the
MCP market data service and the chain RPC, plus a contact book and an agent
wallet database under a temp directory.
Nothing here touches the network.
"""

from __future__ import annotations

import json
import shutil
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from core.ai.providers.base import LLMProvider
from core.ai.router import LLMRouter
from core.ai.types import AIRequest, AIResponse, ProviderConfig, ProviderName, TaskName
from core.chain.client import ChainError
from core.chain.wallets import AgentWalletStore
from core.config import DATA_DIR, reset_settings
from core.market_data.mcp_client import MarketDataError, ToolResult
from core.registry.contacts import ContactsTokensService

ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------


class FakeProvider(LLMProvider):
    """Provider that answers each task with a canned JSON object."""

    def __init__(self, replies: dict[TaskName, Any] | None = None, available: bool = True) -> None:
        super().__init__(
            ProviderConfig(
                name=ProviderName.TOGETHER,
                api_key_env="FAKE_LLM_API_KEY",
                base_url="http://llm.invalid",
                default_model="fake-model",
            )
        )
        self.replies = replies or {}
        self.available = available
        self.calls: list[dict[str, Any]] = []

    def has_credentials(self) -> bool:
        return self.available

    async def complete(
        self,
        request: AIRequest,
        *,
        system_prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float | None = None,
        json_mode: bool = True,
    ) -> AIResponse:
        self.calls.append(
            {
                "task": request.task,
                "user_prompt": request.user_prompt,
                "system_prompt": system_prompt,
                "model": model,
                "max_tokens": max_tokens,
            }
        )
        reply = self.replies.get(request.task)
        if reply is None:
            return self._make_error_response(request, "no reply configured", model=model)
        return AIResponse(
            task=request.task,
            provider=self.name,
            model=model or self.config.default_model,
            raw_text=json.dumps(reply),
            parsed=reply,
            tokens_in=10,
            tokens_out=20,
        )

    async def health_check(self) -> bool:
        return self.available


@pytest.fixture
def make_router() -> Callable[..., LLMRouter]:
    """Factory for an LLMRouter over a FakeProvider."""

    def _make(replies: dict[TaskName, Any] | None = None, available: bool = True) -> LLMRouter:
        return LLMRouter(FakeProvider(replies, available))

    return _make


@pytest.fixture
def offline_router(make_router) -> LLMRouter:
    """Router with no credentials, so every caller takes its rule-based path."""
    return make_router(available=False)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@pytest.fixture
def contacts(tmp_path) -> ContactsTokensService:
    """Contact book over a private copy of the bundled JSON files."""
    contacts_file = tmp_path / "contacts.json"
    tokens_file = tmp_path / "tokens.json"
    shutil.copy(DATA_DIR / "contacts.json", contacts_file)
    shutil.copy(DATA_DIR / "tokens.json", tokens_file)
    return ContactsTokensService(contacts_file, tokens_file)


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------


SAMPLE_PRICES: dict[str, dict[str, Any]] = {
    "TON": {"price": 5.0, "change24h": 2.5, "source": "coingecko"},
    "DUCK": {"price": 0.005, "change24h": -12.0, "source": "coingecko"},
    "USDT": {"price": 1.0, "change24h": 0.01, "source": "coingecko"},
    "ETH": {"price": 2500.0, "change24h": 15.0, "source": "coingecko"},
    "BTC": {"price": 60000.0, "change24h": 1.0, "source": "coingecko"},
}


class FakePriceFeed:
    def __init__(self, tokens: dict[str, dict[str, Any]] | None = None) -> None:
        self.tokens = SAMPLE_PRICES if tokens is None else tokens
        self.requests: list[Any] = []

    def fetch_market_data(self, symbols: list[str] | None = None) -> dict[str, Any]:
        self.requests.append(symbols)
        wanted = [s.upper() for s in symbols] if symbols else list(self.tokens)
        return {
            "tokens": {s: dict(self.tokens[s]) for s in wanted if s in self.tokens},
            "source": "coingecko",
            "timestamp": "2025-01-01T00:00:00+00:00",
        }

    def close(self) -> None:
        pass


class FakeMarket:
    """MCP market data stand-in; tools answer from ``tool_text`` when connected."""

    def __init__(self, connected: bool = False, tool_text: dict[str, str] | None = None) -> None:
        self.connected = connected
        self.use_http_mode = False
        self.tool_text = tool_text or {}
        self.tool_calls: list[tuple[str, dict[str, Any]]] = []
        self.searches: list[str] = []

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        self.tool_calls.append((name, arguments or {}))
        if not self.connected or name not in self.tool_text:
            raise MarketDataError(f"{name} unavailable")
        return ToolResult(text=self.tool_text[name])

    async def search_pools(self, query: str, network: str | None = None) -> dict[str, Any]:
        self.searches.append(query)
        return {"success": True, "query": query, "network": network, "data": f"pools for {query}"}

    async def get_network_pipeline(self, **kwargs: Any) -> dict[str, Any]:
        return {"success": False, "timestamp": "t", "targetNetwork": "duckchain", "data": {}, "errors": ["down"]}

    async def get_market_context_for_llm(self, **kwargs: Any) -> dict[str, Any]:
        return {"timestamp": "t", "network": "duckchain", "data": {}, "success": True}

    def get_status(self) -> dict[str, Any]:
        return {"connected": self.connected, "mode": "stdio", "networkId": "duckchain"}


@pytest.fixture
def price_feed() -> FakePriceFeed:
    return FakePriceFeed()


@pytest.fixture
def market() -> FakeMarket:
    return FakeMarket()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep real credentials and endpoints out of the tests."""
    for name in ("TOGETHER_API_KEY", "DATABASE_URL", "MCP_MODE", "MCP_SERVER_PATH", "DUCKCHAIN_RPC_URL"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


class FakeChain:
    """ChainClient stand-in with fixed balances; records submitted transactions."""

    chain_id = 5545
    rpc_url = "http://rpc.invalid"

    def __init__(
        self,
        native: int = 0,
        erc20: dict[str, int] | None = None,
        failing: tuple[str, ...] = (),
        receipt_status: int = 1,
    ) -> None:
        self.native = native
        self.erc20_balances = erc20 or {}
        self.failing = set(failing)
        self.receipt_status = receipt_status
        self.allowance = 0
        self.down = False
        self.sent: list[dict[str, Any]] = []

    def _check(self) -> None:
        if self.down:
            raise ChainError("rpc down")

    def block_number(self) -> int:
        self._check()
        return 1234

    def gas_price(self) -> int:
        self._check()
        return 2 * 10**9

    def get_native_balance(self, address: str) -> int:
        self._check()
        return self.native

    def get_erc20_balance(self, token_address: str, owner: str) -> int:
        self._check()
        if token_address in self.failing:
            raise ChainError(f"balanceOf reverted for {token_address}")
        return self.erc20_balances.get(token_address, 0)

    def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        return self.allowance

    def get_token_info(self, token_address: str) -> dict[str, Any]:
        raise ChainError(f"no contract at {token_address}")

    def account(self, private_key: str):
        return SimpleNamespace(address="0x4444444444444444444444444444444444444444", key=private_key)

    def send_transaction(self, account, tx: dict[str, Any]) -> str:
        self._check()
        self.sent.append(tx)
        return "0x" + "ab" * 32

    def wait_for_receipt(self, tx_hash: str, timeout: int = 120) -> dict[str, Any]:
        return {"status": self.receipt_status, "gasUsed": 21000, "blockNumber": 1235}


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def wallets(tmp_path):
    """Agent wallet store on a throwaway SQLite file."""
    store = AgentWalletStore(f"sqlite:///{tmp_path / 'wallets.db'}")
    yield store
    store.close()
