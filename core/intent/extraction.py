"""Argument extraction for actions, portfolio requests and pipelines."""

from __future__ import annotations

import logging
import re
from typing import Any

from core.ai.router import LLMRouter
from core.ai.types import TaskName
from core.intent.classifier import Classification

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Per-action extraction rules
# ---------------------------------------------------------------------------

EXTRACTION_RULES: dict[str, dict[str, list[str]]] = {
    "transfer": {
        "args": ["recipient", "amount", "tokenId"],
        "examples": [
            'send 100 TON to alice → {"recipient": "alice", "amount": 100, "tokenId": "TON"}',
            'transfer 50 USDT to 0x2222222222222222222222222222222222222222 → '
            '{"recipient": "0x2222222222222222222222222222222222222222", "amount": 50, "tokenId": "USDT"}',
        ],
    },
    "swap": {
        "args": ["fromToken", "toToken", "amount", "swapType"],
        "examples": [
            'swap 100 TON for USDT → {"fromToken": "TON", "toToken": "USDT", "amount": 100, "swapType": "exactInput"}',
            'exchange DUCK to USDT → {"fromToken": "DUCK", "toToken": "USDT", "swapType": "exactInput"}',
            'swap 1 ton to duck → {"fromToken": "TON", "toToken": "DUCK", "amount": 1, "swapType": "exactInput"}',
            'trade 50 usdt for wton → {"fromToken": "USDT", "toToken": "WTON", "amount": 50, "swapType": "exactInput"}',
        ],
    },
    "stake": {
        "args": ["amount", "tokenId", "validator"],
        "examples": [
            'stake 1000 DUCK → {"amount": 1000, "tokenId": "DUCK"}',
            'delegate to validator 0x4444444444444444444444444444444444444444 → '
            '{"validator": "0x4444444444444444444444444444444444444444"}',
        ],
    },
    "createAgent": {
        "args": ["name", "description", "strategy"],
        "examples": [
            'create trading agent called "DCA Bot" → {"name": "DCA Bot", "description": "trading agent"}',
            'make agent for arbitrage → {"description": "arbitrage", "strategy": "arbitrage"}',
        ],
    },
    "associateToken": {
        "args": ["tokenId"],
        "examples": [
            'associate token 0xdA65892eA771d3268610337E9964D916028B7dAD → '
            '{"tokenId": "0xdA65892eA771d3268610337E9964D916028B7dAD"}',
            'associate USDT → {"tokenId": "USDT"}',
        ],
    },
    "createTopic": {
        "args": ["memo", "submitKey"],
        "examples": [
            'create topic for alerts → {"memo": "alerts"}',
            'make new topic "price updates" → {"memo": "price updates"}',
        ],
    },
    "sendMessage": {
        "args": ["topicId", "message"],
        "examples": [
            'send "hello" to topic 12 → {"topicId": "12", "message": "hello"}',
            'publish message to topic → {"message": "publish message"}',
        ],
    },
    "balance": {
        "args": [],
        "examples": [
            "show my balance → {}",
            "check my wallet → {}",
            "what tokens do I have → {}",
        ],
    },
}

TOKEN_ARG_KEYS = ("tokenId", "fromToken", "toToken", "token")


def build_extraction_prompt(action_type: str) -> str:
    """System prompt for extracting the arguments of one action type.

    Unknown action types use the transfer rules.
    """
    rules = EXTRACTION_RULES.get(action_type, EXTRACTION_RULES["transfer"])
    examples = "\n".join(rules["examples"])
    return f"""Extract arguments for {action_type} action. Required arguments: {', '.join(rules['args'])}

Rules:
- Extract ONLY the specified arguments
- For contact names (like "alice"), keep as-is (don't convert to addresses)
- For token symbols: NORMALIZE to UPPERCASE (ton → TON, duck → DUCK, usdt → USDT)
- For amounts, extract as numbers
- For addresses (0x...), keep the exact format
- For swapType: default to "exactInput" if not specified
- If an argument is not found, omit it from the result
- ALWAYS extract all available tokens and amounts from the message

Examples:
{examples}

Respond with JSON: {{"args": {{extracted_arguments}}}}"""


def normalize_args(action_type: str, args: dict[str, Any]) -> dict[str, Any]:
    """Uppercase token symbols and default the swap type."""
    normalized = {k: v for k, v in args.items() if v is not None}
    for key in TOKEN_ARG_KEYS:
        value = normalized.get(key)
        if isinstance(value, str) and not value.startswith("0x"):
            normalized[key] = value.upper()
    if action_type == "swap":
        normalized.setdefault("swapType", "exactInput")
    return normalized


# ---------------------------------------------------------------------------
# Regex fallbacks
# ---------------------------------------------------------------------------

SWAP_PHRASE_RE = re.compile(
    r"(swap|exchange|convert|trade)\s+(\d+(?:\.\d+)?)\s+(\w+)\s+(?:to|for|into)\s+(\w+)", re.IGNORECASE
)
SWAP_TOKEN_RE = re.compile(r"\b(wton|duck|ton|usdt|usdc|btc|eth)\b", re.IGNORECASE)
AMOUNT_RE = re.compile(r"\b(\d+(?:\.\d+)?)\b")
EXACT_OUTPUT_RE = re.compile(r"\b(exact.*output|exactoutput)\b", re.IGNORECASE)

TRANSFER_PHRASE_RE = re.compile(r"(?:transfer|send|pay)\s+(\d+(?:\.\d+)?)\s+(\w+)\s+to\s+(.+)", re.IGNORECASE)

PORTFOLIO_TOKEN_RE = re.compile(r"\b(wton|duck|ton|usdt|btc|eth)\b", re.IGNORECASE)
TIMEFRAME_RE = re.compile(r"\b(24h|7d|30d|today|this week|this month|last week|last month)\b", re.IGNORECASE)


def _number(raw: str) -> float | int:
    value = float(raw)
    return int(value) if value.is_integer() else value


def extract_swap_arguments_regex(message: str) -> dict[str, Any]:
    """Pull ``fromToken``, ``toToken``, ``amount`` and ``swapType`` out of a swap message.

    Returns ``{}`` unless both tokens and an amount are found.
    """
    swap_type = "exactOutput" if EXACT_OUTPUT_RE.search(message) else "exactInput"

    phrase = SWAP_PHRASE_RE.search(message)
    if phrase:
        return {
            "fromToken": phrase.group(3).upper(),
            "toToken": phrase.group(4).upper(),
            "amount": _number(phrase.group(2)),
            "swapType": swap_type,
        }

    tokens = [m.group(1).upper() for m in SWAP_TOKEN_RE.finditer(message)]
    amounts = [_number(m.group(1)) for m in AMOUNT_RE.finditer(message)]
    if len(tokens) >= 2 and amounts:
        return {"fromToken": tokens[0], "toToken": tokens[1], "amount": amounts[0], "swapType": swap_type}

    logger.debug("Regex could not extract complete swap arguments from %r", message)
    return {}


def extract_transfer_arguments_regex(message: str) -> dict[str, Any]:
    match = TRANSFER_PHRASE_RE.search(message)
    if not match:
        return {}
    return {
        "amount": _number(match.group(1)),
        "tokenId": match.group(2).upper(),
        "recipient": match.group(3).strip().rstrip(".!?"),
    }


def extract_portfolio_arguments_regex(message: str, request_type: str) -> dict[str, Any]:
    args: dict[str, Any] = {"requestType": request_type}
    token = PORTFOLIO_TOKEN_RE.search(message)
    if token:
        args["token"] = token.group(1).upper()
    timeframe = TIMEFRAME_RE.search(message)
    if timeframe:
        args["timeframe"] = timeframe.group(1).lower()
    return args


REGEX_EXTRACTORS = {
    "swap": extract_swap_arguments_regex,
    "transfer": extract_transfer_arguments_regex,
}


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class ArgumentExtractor:
    """Second stage of intent parsing: structured arguments from free text."""

    def __init__(self, router: LLMRouter) -> None:
        self.router = router

    async def extract_arguments(self, message: str, classification: Classification) -> dict[str, Any]:
        """Extract action arguments; non-action messages yield ``{"args": {}}``."""
        if classification.type != "actions":
            return {"args": {}}

        action_type = classification.action_subtype or "other"
        args: dict[str, Any] = {}

        if self.router.is_available():
            response = await self.router.complete_json(
                TaskName.EXTRACTION,
                f'Extract arguments from: "{message}"',
                system_prompt=build_extraction_prompt(action_type),
            )
            if response.ok and isinstance(response.parsed.get("args"), dict):
                args = response.parsed["args"]
                logger.info("LLM extracted %d argument(s) for %s", len(args), action_type)

        if not args and action_type in REGEX_EXTRACTORS:
            args = REGEX_EXTRACTORS[action_type](message)
            if args:
                logger.info("Regex fallback extracted %s arguments: %s", action_type, sorted(args))

        return {
            "actionType": action_type,
            "args": normalize_args(action_type, args),
            "originalMessage": message,
        }

    async def extract_portfolio_arguments(self, message: str, classification: Classification) -> dict[str, Any]:
        action_type = classification.action_subtype or "balance"
        args: dict[str, Any] = {}

        if self.router.is_available():
            response = await self.router.complete_json(
                TaskName.PORTFOLIO, f'Extract portfolio arguments from: "{message}"'
            )
            if response.ok and isinstance(response.parsed.get("args"), dict):
                args = response.parsed["args"]

        if not args:
            args = extract_portfolio_arguments_regex(message, action_type)
        args.setdefault("requestType", action_type)
        if isinstance(args.get("token"), str):
            args["token"] = args["token"].upper()

        return {
            "type": "portfolio-information",
            "actionType": action_type,
            "args": args,
            "originalMessage": message,
        }

    async def extract_pipeline_arguments(self, message: str) -> dict[str, Any]:
        empty = {"trigger": None, "actions": [], "conditions": []}

        if not self.router.is_available():
            return {"type": "pipeline", "pipeline": empty, "args": {}, "originalMessage": message}

        response = await self.router.complete_json(TaskName.PIPELINE, f'Extract pipeline from: "{message}"')
        pipeline = response.parsed.get("pipeline") if response.ok else None
        if not isinstance(pipeline, dict):
            error = response.error or "LLM response had no pipeline object"
            logger.warning("Pipeline extraction failed: %s", error)
            return {
                "type": "pipeline",
                "pipeline": {**empty, "error": error},
                "args": {},
                "originalMessage": message,
                "error": error,
            }

        pipeline.setdefault("conditions", [])
        pipeline.setdefault("actions", [])
        return {"type": "pipeline", "pipeline": pipeline, "args": pipeline, "originalMessage": message}
