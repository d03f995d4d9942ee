"""Argument validation and contact/token resolution for extracted intents."""

from __future__ import annotations

import logging
from typing import Any

from core.intent.pipeline import validate_pipeline
from core.registry.contacts import ContactsTokensService

logger = logging.getLogger(__name__)

SUPPORTED_PORTFOLIO_TOKENS = ("TON", "DUCK", "USDT", "BTC", "ETH")


def validate_portfolio_arguments(args: dict[str, Any]) -> dict[str, Any]:
    missing: list[str] = []
    resolved: dict[str, Any] = {}
    warnings: list[str] = []

    token = args.get("token")
    if token:
        symbol = str(token).upper()
        if symbol not in SUPPORTED_PORTFOLIO_TOKENS:
            warnings.append(f"Token {token} may not be supported")
        resolved["token"] = symbol

    request_type = args.get("requestType")
    if request_type:
        resolved["requestType"] = request_type
        if request_type == "token-balance" and not token:
            missing.append("token")

    if args.get("timeframe"):
        resolved["timeframe"] = args["timeframe"]

    return {
        "isValid": not missing,
        "missing": missing,
        "resolved": resolved,
        "warnings": warnings,
        "errors": [],
        "quality": 95,
    }


def validate_and_resolve_arguments(
    extraction: dict[str, Any], contacts: ContactsTokensService
) -> dict[str, Any]:
    """Dispatch validation by extraction kind (pipeline, portfolio, action)."""
    if extraction.get("args") is None:
        return {"isValid": True, "missing": [], "resolved": {}}

    if extraction.get("type") == "pipeline":
        return validate_pipeline(extraction.get("pipeline"), extraction.get("originalMessage"))

    if extraction.get("type") == "portfolio-information":
        return validate_portfolio_arguments(extraction["args"])

    return contacts.validate_action_arguments(extraction.get("actionType"), extraction["args"])
