"""Message heuristics shared by the prompt router handlers."""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from core.market_data.networks import DEFAULT_NETWORK

# Largest integer a JSON client can hold exactly in a double
MAX_SAFE_INTEGER = 2**53

_SYMBOL_RE = re.compile(r"\$?\b[A-Z]{2,10}\b")
_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")
_KNOWN_TOKENS_RE = re.compile(r"\b(?:TON|WTON|DUCK|USDT|USDC|ETH|BTC|WBTC)\b", re.IGNORECASE)

# Upper-case words that look like symbols but never are
_SYMBOL_STOPWORDS = frozenset({"OK", "AM", "PM", "US", "AI", "API", "DEX", "APY", "APR", "TVL", "USD"})

NETWORK_KEYWORDS: dict[str, list[str]] = {
    "duckchain": ["duckchain", "duck chain"],
    "ton": ["ton network", "the open network"],
    "sei-evm": ["sei", "sei-evm", "sei network", "seinetwork"],
    "eth": ["ethereum", "eth", "ether"],
    "bsc": ["bsc", "binance", "bnb", "binance smart chain"],
    "polygon_pos": ["polygon", "matic"],
    "arbitrum": ["arbitrum", "arb"],
    "optimism": ["optimism"],
    "avax": ["avalanche", "avax"],
    "ftm": ["fantom", "ftm"],
    "base": ["base chain", "base network", "coinbase"],
    "cro": ["cronos", "cro"],
}

HIGH_RISK_KEYWORDS = ["high risk", "risky", "aggressive", "speculative", "volatile", "meme", "gambling", "yolo"]
LOW_RISK_KEYWORDS = [
    "low risk",
    "safe",
    "conservative",
    "stable",
    "secure",
    "stablecoin",
    "blue chip",
    "without risk",
    "no risk",
    "risk free",
    "risk-free",
    "zero risk",
    "minimal risk",
    "safest",
    "most secure",
    "guaranteed",
    "protected",
    "capital preservation",
]
MEDIUM_RISK_KEYWORDS = ["medium risk", "moderate", "balanced", "diversified"]

RELATED_QUERIES: dict[str, list[str]] = {
    "token_specific": ["What is the trading volume?", "Show me the price history", "What are the risks?"],
    "market_overview": ["Which tokens are trending?", "Show me new listings", "What is the market sentiment?"],
    "price_data": ["Show me price alerts", "Compare with other tokens", "What affects the price?"],
    "general": ["Show me top tokens", "What are the market fundamentals?", "How to start trading?"],
}


def _has_word(lower: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", lower) is not None


def sanitize(value: Any) -> Any:
    """Make a result JSON-safe.

    Integers beyond what a double holds exactly become strings, as do
    Decimals, bytes, dates and enums. Containers are walked recursively.
    """
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, int):
        return str(value) if abs(value) > MAX_SAFE_INTEGER else value
    if isinstance(value, dict):
        return {str(k): sanitize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize(v) for v in value]
    if isinstance(value, Enum):
        return sanitize(value.value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return str(value)


def extract_token_mentions(message: str) -> list[str]:
    """Upper-case symbols, ``$``-prefixed symbols, addresses and known token names."""
    mentions: list[str] = []
    for pattern in (_SYMBOL_RE, _ADDRESS_RE, _KNOWN_TOKENS_RE):
        for match in pattern.findall(message):
            token = match.lstrip("$")
            token = token if token.startswith("0x") else token.upper()
            if token in _SYMBOL_STOPWORDS or token in mentions:
                continue
            mentions.append(token)
    return mentions


def classify_information_request(message: str) -> str:
    lower = message.lower()
    if any(word in lower for word in ("price", "cost", "value")):
        return "price_data"
    if any(word in lower for word in ("market", "overview", "summary")):
        return "market_overview"
    if extract_token_mentions(message):
        return "token_specific"
    return "general"


def generate_related_queries(request_type: str) -> list[str]:
    return list(RELATED_QUERIES.get(request_type, RELATED_QUERIES["general"]))


def classify_feedback_request(message: str) -> str:
    lower = message.lower()
    if "portfolio" in lower or "holdings" in lower:
        return "portfolio_performance"
    if any(word in lower for word in ("action", "trade", "transaction")):
        return "action_review"
    if "strategy" in lower or "plan" in lower:
        return "strategy_evaluation"
    return "general_feedback"


def extract_risk_preference(message: str) -> str:
    """``high``, ``low``, ``medium`` or ``balanced``; high-risk words win."""
    lower = message.lower()
    if any(_has_word(lower, k) for k in HIGH_RISK_KEYWORDS):
        return "high"
    if any(_has_word(lower, k) for k in LOW_RISK_KEYWORDS):
        return "low"
    if any(_has_word(lower, k) for k in MEDIUM_RISK_KEYWORDS):
        return "medium"
    return "balanced"


def extract_token_type_preference(message: str) -> list[str]:
    lower = message.lower()
    preferences = []
    if "stablecoin" in lower or "stable" in lower:
        preferences.append("stablecoin")
    if any(word in lower for word in ("meme", "doge", "shib")):
        preferences.append("meme")
    if any(word in lower for word in ("defi", "swap", "farm")):
        preferences.append("defi")
    if any(word in lower for word in ("wrapped", "weth", "wbtc", "wton")):
        preferences.append("wrapped")
    if "utility" in lower or "governance" in lower:
        preferences.append("utility")
    return preferences


def extract_network_mentions(message: str) -> list[str]:
    """Network ids mentioned in ``message``; the default network when none are."""
    lower = message.lower()
    networks = [
        network_id
        for network_id, keywords in NETWORK_KEYWORDS.items()
        if any(_has_word(lower, keyword) for keyword in keywords)
    ]
    return networks or [DEFAULT_NETWORK]


def recommendation_criteria_from_message(message: str) -> str:
    lower = message.lower()
    if "safe" in lower:
        return "safe"
    if "growth" in lower or "high return" in lower:
        return "growth"
    if "stable" in lower:
        return "stable"
    if _has_word(lower, "new"):
        return "new_tokens"
    if "trendy" in lower or "popular" in lower or "trending" in lower:
        return "trendy_tokens"
    if "high risk" in lower or "risky" in lower:
        return "high_risk_high_reward"
    return "balanced"


# -----------------------------------------------------------------------------
# Market intelligence summaries
# -----------------------------------------------------------------------------


def _count(intelligence: dict[str, Any], key: str) -> int:
    return int((intelligence.get(key) or {}).get("count") or 0)


def assess_network_health(intelligence: dict[str, Any]) -> str:
    new_pools = _count(intelligence, "newPools")
    new_tokens = _count(intelligence, "newTokens")
    if new_pools > 5 and new_tokens > 3:
        return "Excellent - High growth activity"
    if new_pools > 2 and new_tokens > 1:
        return "Good - Steady development"
    if _count(intelligence, "trendingPools") > 0:
        return "Active - Existing market engagement"
    return "Stable - Established market conditions"


def assess_investment_opportunities(intelligence: dict[str, Any]) -> list[str]:
    new_tokens = _count(intelligence, "newTokens")
    new_pools = _count(intelligence, "newPools")
    trending = _count(intelligence, "trendingPools")
    opportunities = []
    if new_tokens:
        opportunities.append(f"Early adoption opportunities: {new_tokens} new tokens detected")
    if new_pools:
        opportunities.append(f"Liquidity provision opportunities: {new_pools} new pools available")
    if trending:
        opportunities.append(f"Active trading opportunities: {trending} trending pools with high volume")
    return opportunities or ["Market consolidation phase - consider established positions"]


def assess_risk_factors(intelligence: dict[str, Any]) -> list[str]:
    new_pools = _count(intelligence, "newPools")
    risks = []
    if _count(intelligence, "newTokens") > 5:
        risks.append("High new token activity - Exercise caution with unverified projects")
    if _count(intelligence, "trendingPools") == 0 and new_pools == 0:
        risks.append("Low market activity - Potential liquidity concerns")
    if new_pools > 10:
        risks.append("Potential market fragmentation - Liquidity may be spread thin")
    return risks or ["Standard market risks apply - Always do your own research"]
