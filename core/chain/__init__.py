"""DuckChain access: RPC client, agent wallets, portfolio, swaps and transfers."""

from core.chain.client import ChainClient, ChainError, format_units, parse_units
from core.chain.config import CHAIN_ID, TOKENS, ChainToken, get_chain_token, get_token_address
from core.chain.portfolio import PortfolioController, PortfolioService
from core.chain.swap import SwapService, encode_path
from core.chain.transfer import TransferService
from core.chain.wallets import AgentWallet, AgentWalletStore

__all__ = [
    "AgentWallet",
    "AgentWalletStore",
    "CHAIN_ID",
    "ChainClient",
    "ChainError",
    "ChainToken",
    "PortfolioController",
    "PortfolioService",
    "SwapService",
    "TOKENS",
    "TransferService",
    "encode_path",
    "format_units",
    "get_chain_token",
    "get_token_address",
    "parse_units",
]
