"""Lazily created service singletons shared by the route modules."""

from __future__ import annotations

from core.ai.providers import close_providers
from core.ai.router import LLMRouter
from core.chain.client import ChainClient
from core.chain.portfolio import PortfolioController, PortfolioService
from core.chain.swap import SwapService
from core.chain.transfer import TransferService
from core.chain.wallets import AgentWalletStore
from core.config import get_settings
from core.intent.service import IntentService
from core.market_data.mcp_client import MCPMarketDataService
from core.market_data.prices import PriceFeed
from core.registry.contacts import ContactsTokensService
from core.routing.actions import ActionsProcessor
from core.routing.messages import MessageProcessor
from core.routing.router import PromptRouter

_llm_router: LLMRouter | None = None
_contacts: ContactsTokensService | None = None
_chain: ChainClient | None = None
_wallets: AgentWalletStore | None = None
_price_feed: PriceFeed | None = None
_market: MCPMarketDataService | None = None
_transfers: TransferService | None = None
_swaps: SwapService | None = None
_portfolio: PortfolioController | None = None
_intent: IntentService | None = None
_actions: ActionsProcessor | None = None
_prompt_router: PromptRouter | None = None
_message_processor: MessageProcessor | None = None


def get_llm_router() -> LLMRouter:
    global _llm_router
    if _llm_router is None:
        _llm_router = LLMRouter()
    return _llm_router


def get_contacts() -> ContactsTokensService:
    global _contacts
    if _contacts is None:
        settings = get_settings()
        _contacts = ContactsTokensService(settings.contacts_file, settings.tokens_file)
    return _contacts


def get_chain() -> ChainClient:
    global _chain
    if _chain is None:
        _chain = ChainClient()
    return _chain


def get_wallets() -> AgentWalletStore:
    global _wallets
    if _wallets is None:
        _wallets = AgentWalletStore()
    return _wallets


def get_price_feed() -> PriceFeed:
    global _price_feed
    if _price_feed is None:
        _price_feed = PriceFeed(timeout=10)
    return _price_feed


def get_market() -> MCPMarketDataService:
    """Market data service; ``initialize()`` is awaited at application startup."""
    global _market
    if _market is None:
        _market = MCPMarketDataService()
    return _market


def get_transfers() -> TransferService:
    global _transfers
    if _transfers is None:
        _transfers = TransferService(get_llm_router(), get_contacts(), get_chain(), get_wallets())
    return _transfers


def get_swaps() -> SwapService:
    global _swaps
    if _swaps is None:
        _swaps = SwapService(get_chain(), get_wallets(), get_price_feed())
    return _swaps


def get_portfolio() -> PortfolioController:
    global _portfolio
    if _portfolio is None:
        service = PortfolioService(get_chain(), get_price_feed())
        _portfolio = PortfolioController(service, get_wallets())
    return _portfolio


def get_intent() -> IntentService:
    global _intent
    if _intent is None:
        _intent = IntentService(get_llm_router(), get_contacts(), get_transfers())
    return _intent


def get_actions() -> ActionsProcessor:
    global _actions
    if _actions is None:
        _actions = ActionsProcessor(get_llm_router(), get_transfers(), get_swaps())
    return _actions


def get_prompt_router() -> PromptRouter:
    global _prompt_router
    if _prompt_router is None:
        _prompt_router = PromptRouter(
            get_llm_router(),
            get_intent(),
            get_actions(),
            get_transfers(),
            get_market(),
            get_price_feed(),
            get_portfolio(),
        )
    return _prompt_router


def get_message_processor() -> MessageProcessor:
    global _message_processor
    if _message_processor is None:
        _message_processor = MessageProcessor(
            get_intent(),
            get_prompt_router(),
            get_actions(),
            get_transfers(),
            get_swaps(),
            get_portfolio(),
        )
    return _message_processor


async def shutdown() -> None:
    """Close network clients and database pools, then forget every singleton."""
    global _llm_router, _contacts, _chain, _wallets, _price_feed, _market
    global _transfers, _swaps, _portfolio, _intent, _actions, _prompt_router, _message_processor
    if _market is not None:
        await _market.close()
    if _price_feed is not None:
        _price_feed.close()
    if _wallets is not None:
        _wallets.close()
    await close_providers()
    _llm_router = _contacts = _chain = _wallets = _price_feed = _market = None
    _transfers = _swaps = _portfolio = _intent = _actions = _prompt_router = _message_processor = None
