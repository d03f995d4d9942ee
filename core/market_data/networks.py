"""Map free-text network names onto GeckoTerminal network ids."""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_NETWORK = "duckchain"

NETWORK_MAPPINGS: dict[str, str] = {
    # DuckChain
    "duckchain": "duckchain",
    "duck chain": "duckchain",
    "duckchain mainnet": "duckchain",
    # Sei
    "sei": "sei-evm",
    "sei-network": "sei-evm",
    "sei-evm": "sei-evm",
    "seinetwork": "sei-evm",
    "sei evm": "sei-evm",
    "sei_evm": "sei-evm",
    "sei network": "sei-evm",
    # Ethereum
    "ethereum": "eth",
    "eth": "eth",
    "ether": "eth",
    "ethereum mainnet": "eth",
    "eth mainnet": "eth",
    # BNB Smart Chain
    "bsc": "bsc",
    "binance": "bsc",
    "binance smart chain": "bsc",
    "bnb": "bsc",
    "bnb chain": "bsc",
    "binance chain": "bsc",
    # Polygon
    "polygon": "polygon_pos",
    "matic": "polygon_pos",
    "polygon pos": "polygon_pos",
    "polygon matic": "polygon_pos",
    "poly": "polygon_pos",
    # Arbitrum
    "arbitrum": "arbitrum",
    "arb": "arbitrum",
    "arbitrum one": "arbitrum",
    "arbitrum mainnet": "arbitrum",
    # Optimism
    "optimism": "optimism",
    "op": "optimism",
    "optimistic": "optimism",
    # Avalanche
    "avalanche": "avax",
    "avax": "avax",
    "avalanche c-chain": "avax",
    "avax c-chain": "avax",
    # Fantom
    "fantom": "ftm",
    "ftm": "ftm",
    "fantom opera": "ftm",
    "solana": "solana",
    "sol": "solana",
    "base": "base",
    "base mainnet": "base",
    "coinbase base": "base",
    "cronos": "cro",
    "cro": "cro",
    "crypto.com": "cro",
    "moonbeam": "glmr",
    "moonriver": "movr",
    "harmony": "one",
    "one": "one",
    "celo": "celo",
    "aurora": "aurora",
    "metis": "metis",
    "boba": "boba",
    "fuse": "fuse",
    "gnosis": "xdai",
    "xdai": "xdai",
    "kava": "kava",
    "evmos": "evmos",
    "osmosis": "osmosis",
}

# Too ambiguous to pick out of running English text.
_AMBIGUOUS_KEYS = frozenset({"op", "one"})

_NETWORK_PATTERNS = [
    re.compile(r"(?:on|from|in|for)\s+([a-z0-9\-_ .]+?)(?:\s+network|\s+chain|\s+blockchain|$)"),
    re.compile(r"([a-z0-9\-_ ]+?)(?:-evm|-network|-chain)"),
    re.compile(r"tokens?\s+(?:on|from|in)\s+([a-z0-9\-_ .]+)"),
]


def _keys_longest_first() -> list[str]:
    return sorted(NETWORK_MAPPINGS, key=len, reverse=True)


def _mentions(text: str, key: str) -> bool:
    return re.search(r"(?<![a-z0-9])" + re.escape(key) + r"(?![a-z0-9])", text) is not None


def extract_network_from_message(message: str | None) -> str | None:
    """Return the network name a message refers to, or None.

    The returned value is a key of ``NETWORK_MAPPINGS`` (not yet normalized).
    """
    if not message:
        return None
    lower = message.lower()

    for pattern in _NETWORK_PATTERNS:
        match = pattern.search(lower)
        if match:
            candidate = match.group(1).strip(" .")
            if candidate in NETWORK_MAPPINGS:
                logger.debug("Extracted network %r from message", candidate)
                return candidate

    for key in _keys_longest_first():
        if key in _AMBIGUOUS_KEYS:
            continue
        if _mentions(lower, key):
            logger.debug("Found network mention %r", key)
            return key
    return None


def normalize_network_name(
    user_input: str | None,
    supported_networks: list[dict[str, Any]] | None = None,
    default: str = DEFAULT_NETWORK,
) -> str:
    """Map user input to a GeckoTerminal network id, falling back to ``default``."""
    if not user_input or not isinstance(user_input, str):
        return default

    normalized = user_input.lower().strip()
    if normalized in NETWORK_MAPPINGS:
        return NETWORK_MAPPINGS[normalized]

    for key in _keys_longest_first():
        if key not in _AMBIGUOUS_KEYS and _mentions(normalized, key):
            return NETWORK_MAPPINGS[key]

    for network in supported_networks or []:
        network_id = str(network.get("id", "")).lower()
        name = str(network.get("name", "")).lower()
        if normalized in (network_id, name) or (name and normalized in name):
            return network["id"]

    logger.warning("Unknown network %r, using default %s", user_input, default)
    return default
