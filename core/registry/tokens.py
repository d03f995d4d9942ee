"""Token list lookup, swap-pair validation and typo suggestions."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
SIMILARITY_THRESHOLD = 0.6


def calculate_similarity(a: str, b: str) -> float:
    """1 - edit distance / longer length; two empty strings are identical."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - Levenshtein.distance(a, b)) / max_len


def _network_key(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


class TokenValidator:
    """Token list for one network, loaded from a JSON file.

    File format::

        {"network": "DuckChain", "tokens": [{"symbol", "name", "address", "decimals", "tags"}]}
    """

    def __init__(self, tokens_file: Path | str) -> None:
        self.tokens_file = Path(tokens_file)
        self.network = "DuckChain"
        self.tokens: list[dict[str, Any]] = []
        self.load()

    def load(self) -> None:
        try:
            data = json.loads(self.tokens_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load token list %s: %s", self.tokens_file, exc)
            self.tokens = []
            return
        self.network = data.get("network", self.network)
        self.tokens = [t for t in data.get("tokens", []) if t.get("symbol") and t.get("address")]
        logger.info("Loaded %d tokens for %s", len(self.tokens), self.network)

    def get_all_tokens(self) -> list[dict[str, Any]]:
        return list(self.tokens)

    def get_tokens_by_tag(self, tag: str) -> list[dict[str, Any]]:
        return [t for t in self.tokens if tag in (t.get("tags") or [])]

    def serves_network(self, network: str | None) -> bool:
        """True for ``None`` or any spelling of this list's network."""
        return network is None or _network_key(network) == _network_key(self.network)

    def find_token(self, identifier: str | None, network: str | None = None) -> dict[str, Any] | None:
        """Find a token by address, exact symbol, then partial symbol or name.

        Only this list's network is populated; any other ``network`` finds nothing.
        """
        if not identifier or not self.serves_network(network):
            return None
        query = identifier.strip().lower()
        if not query:
            return None

        if query.startswith("0x"):
            return next((t for t in self.tokens if t["address"].lower() == query), None)

        by_symbol = next((t for t in self.tokens if t["symbol"].lower() == query), None)
        if by_symbol is not None:
            return by_symbol

        return next(
            (t for t in self.tokens if query in t["symbol"].lower() or query in t.get("name", "").lower()),
            None,
        )

    def suggest_similar_tokens(self, query: str) -> list[str]:
        """Up to three symbols close to ``query``: exact, partial, then typo matches."""
        query_lower = (query or "").lower()
        suggestions: list[str] = []
        for token in self.tokens:
            symbol = token["symbol"].lower()
            name = token.get("name", "").lower()
            if symbol == query_lower or name == query_lower:
                suggestions.insert(0, token["symbol"])
            elif query_lower and (query_lower in symbol or query_lower in name):
                suggestions.append(token["symbol"])
            elif (
                abs(len(symbol) - len(query_lower)) <= 1
                and calculate_similarity(symbol, query_lower) > SIMILARITY_THRESHOLD
            ):
                suggestions.append(token["symbol"])
        return suggestions[:MAX_SUGGESTIONS]

    def validate_swap_tokens(self, from_token: str, to_token: str, network: str | None = None) -> dict[str, Any]:
        """Resolve both sides of a swap and report unknown or identical tokens."""
        result: dict[str, Any] = {
            "isValid": False,
            "fromTokenInfo": None,
            "toTokenInfo": None,
            "errors": [],
            "suggestions": [],
        }

        for key, query in (("fromTokenInfo", from_token), ("toTokenInfo", to_token)):
            info = self.find_token(query, network)
            if info is None:
                result["errors"].append(f'Token "{query}" not found in {network or self.network}')
                similar = self.suggest_similar_tokens(query) if self.serves_network(network) else []
                if similar:
                    result["suggestions"].append(f"Did you mean: {', '.join(similar)}?")
            else:
                result[key] = info

        from_info, to_info = result["fromTokenInfo"], result["toTokenInfo"]
        if from_info and to_info and from_info["address"] == to_info["address"]:
            result["errors"].append("Cannot swap the same token")

        result["isValid"] = bool(from_info and to_info and from_info["address"] != to_info["address"])
        return result

    def get_token_list_for_llm(self) -> str:
        if not self.tokens:
            return "No tokens available"
        lines = []
        for token in self.tokens:
            tags = token.get("tags")
            suffix = f" ({', '.join(tags)})" if tags else ""
            lines.append(f"{token['symbol']} - {token.get('name', token['symbol'])}{suffix}")
        return f"Available tokens on {self.network}:\n" + "\n".join(lines)
