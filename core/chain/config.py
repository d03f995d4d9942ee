"""DuckChain constants: tokens, contracts, ABIs and fee tiers."""

from __future__ import annotations

from dataclasses import dataclass

CHAIN_ID = 5545
RPC_URL = "https://rpc.duckchain.io"

NATIVE = "native"

SWAP_ROUTER_ADDRESS = "0x3EF68D3f7664b2805D4E88381b64868a56f88bC4"
WTON_DUCK_POOL_ADDRESS = "0xe14364f158c30fC322F59528ff6CBaC4a6005048"
FACTORY_ADDRESS = "0x8c1A3cF8f83074169FE5D7aD50B978e1cD6b37c7"

# Pool fee tiers in hundredths of a basis point
FEE_TIERS = {"LOW": 500, "MEDIUM": 3000, "HIGH": 10000}

MAX_UINT256 = 2**256 - 1

SWAP_GAS_LIMIT = 500_000
SWAP_GAS_PRICE_GWEI = 20
APPROVE_GAS_LIMIT = 100_000
NATIVE_TRANSFER_GAS = 21_000
ERC20_TRANSFER_GAS = 65_000
SWAP_DEADLINE_SECONDS = 1800


@dataclass(frozen=True)
class ChainToken:
    symbol: str
    name: str
    decimals: int
    address: str | None = None
    gecko_id: str | None = None

    @property
    def is_native(self) -> bool:
        return self.address is None


TOKENS: dict[str, ChainToken] = {
    "TON": ChainToken("TON", "Toncoin", 18, None, "the-open-network"),
    "DUCK": ChainToken("DUCK", "DUCK Token", 18, "0xdA65892eA771d3268610337E9964D916028B7dAD", "duckcoin"),
    "WTON": ChainToken("WTON", "Wrapped TON", 18, "0x7F9308E8d724e724EC31395f3af52e0593BB2e3f", "the-open-network"),
    "USDT": ChainToken("USDT", "Tether USD", 6, "0xbE138aD5D41FDc392AE0B61b09421987C1966CC3", "tether"),
}


def get_chain_token(symbol: str) -> ChainToken:
    """Look up a token by symbol.

    Raises:
        ValueError: If the token is not configured on DuckChain
    """
    token = TOKENS.get(str(symbol).upper())
    if token is None:
        raise ValueError(f"Unsupported token: {symbol}")
    return token


def get_token_address(symbol_or_address: str) -> str:
    """Contract address for a symbol, ``NATIVE`` for TON; 0x addresses pass through."""
    value = str(symbol_or_address)
    if value.lower().startswith("0x"):
        return value
    if value.upper() == "NATIVE":
        return NATIVE
    token = get_chain_token(value)
    return token.address or NATIVE


ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

SWAP_ROUTER_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"name": "path", "type": "bytes"},
                    {"name": "recipient", "type": "address"},
                    {"name": "amount", "type": "uint128"},
                    {"name": "minAcquired", "type": "uint256"},
                    {"name": "deadline", "type": "uint256"},
                ],
                "name": "params",
                "type": "tuple",
            }
        ],
        "name": "swapAmount",
        "outputs": [{"name": "cost", "type": "uint256"}, {"name": "acquire", "type": "uint256"}],
        "stateMutability": "payable",
        "type": "function",
    }
]
