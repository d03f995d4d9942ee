"""Layer 1 message classification: LLM first, keyword heuristics as fallback."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any

from core.ai.router import LLMRouter
from core.ai.types import TaskName

logger = logging.getLogger(__name__)

MESSAGE_TYPES = frozenset(
    {"portfolio-information", "actions", "pipeline", "strategy", "information", "feedbacks"}
)

# Models sometimes answer with a label instead of a number
CONFIDENCE_LABELS = {"high": 0.9, "medium": 0.6, "low": 0.3}
DEFAULT_CONFIDENCE = 0.5


def coerce_confidence(value: Any) -> float:
    """Confidence in [0, 1] from whatever the model put in the field."""
    if value is None:
        return 0.0
    if isinstance(value, str) and value.strip().lower() in CONFIDENCE_LABELS:
        return CONFIDENCE_LABELS[value.strip().lower()]
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if math.isnan(confidence):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, confidence))


@dataclass
class Classification:
    """Result of classifying one user message."""

    type: str
    action_subtype: str | None = None
    confidence: float = 0.0
    reasoning: str = ""
    keywords: list[str] = field(default_factory=list)
    method: str = "fallback"  # "llm" | "fallback"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["actionSubtype"] = data.pop("action_subtype")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Classification":
        subtype = data.get("actionSubtype", data.get("action_subtype"))
        keywords = data.get("keywords")
        return cls(
            type=data.get("type", "information"),
            action_subtype=subtype if isinstance(subtype, str) else None,
            confidence=coerce_confidence(data.get("confidence")),
            reasoning=str(data.get("reasoning") or ""),
            keywords=[str(k) for k in keywords] if isinstance(keywords, list) else [],
            method=data.get("method", "fallback"),
        )


# ---------------------------------------------------------------------------
# Keyword heuristics
# ---------------------------------------------------------------------------

_ACTION_VERBS = r"(buy|sell|swap|transfer|stake)"

PIPELINE_PATTERNS = [
    re.compile(r"\b(when|if|whenever|as soon as|once)\b.*\b(then|do|execute|perform|buy|sell|swap|transfer|stake)\b"),
    re.compile(rf"\b(after|following)\b.*\b{_ACTION_VERBS}\b"),
    re.compile(rf"\b{_ACTION_VERBS}\b.*\band\s+(then\s+)?\b{_ACTION_VERBS}\b"),
    re.compile(r"\b(automate|automatically|set up|create workflow|pipeline)\b"),
    re.compile(r"\b(trigger|alert|notify)\b.*\b(when|if)\b"),
]

BASIC_PIPELINE_KEYWORDS = ["when", "if", "then", "whenever", "trigger", "automate"]
PIPELINE_ACTION_WORDS = ["buy", "sell", "swap", "transfer", "stake", "send"]

_TOKENS = r"(ton|duck|usdt|wton|btc|eth)"

# Patterns score higher than keywords; subtype order comes from _portfolio_subtype_order.
PORTFOLIO_PATTERNS: dict[str, dict[str, list]] = {
    "balance": {
        "patterns": [
            re.compile(r"\b(check|show|get|what('s|s)?)\b.*\b(balance|wallet|portfolio|holdings|funds)\b"),
            re.compile(r"\bmy\s+(balance|wallet|portfolio|holdings|funds)\b"),
            re.compile(r"\b(total|overall|complete)\s+(balance|portfolio|holdings)\b"),
        ],
        "keywords": ["balance", "wallet", "portfolio", "holdings", "my funds"],
    },
    "token-balance": {
        "patterns": [
            re.compile(rf"\b(check|show|get|what('s|s)?|how much)\b.*\b{_TOKENS}\b.*\b(balance|do i have|holdings?)\b"),
            re.compile(rf"\bmy\s+{_TOKENS}\s+(balance|holdings?)\b"),
        ],
        "keywords": ["ton balance", "duck balance", "my ton", "my duck"],
    },
    "portfolio-summary": {
        "patterns": [
            re.compile(r"\b(portfolio|holdings?)\s+(performance|summary|analytics|overview|stats)\b"),
            re.compile(r"\b(show|get)\s+(portfolio|holdings?)\s+(summary|overview|stats)\b"),
        ],
        "keywords": ["portfolio performance", "portfolio summary", "holdings summary"],
    },
}

ACTION_PATTERNS: dict[str, dict[str, list]] = {
    "transfer": {
        "patterns": [re.compile(r"\b(send|transfer|pay)\b.*\b(to|tokens?|coins?)\b")],
        "keywords": ["send", "transfer", "pay"],
    },
    "swap": {
        "patterns": [re.compile(r"\b(swap|exchange|trade|convert)\b.*\b(for|to|tokens?)\b")],
        "keywords": ["swap", "exchange", "trade", "convert"],
    },
    "stake": {
        "patterns": [re.compile(r"\b(stake|delegate)\b.*\b(tokens?|coins?|rewards?)\b")],
        "keywords": ["stake", "delegate"],
    },
}

STRATEGY_KEYWORDS = [
    "strategy", "plan", "invest", "portfolio", "dca",
    "dollar cost averaging", "long term", "allocation",
]
FEEDBACK_KEYWORDS = ["feedback", "review", "evaluate", "how did"]
INFORMATION_KEYWORDS = ["what", "how", "why", "explain", "tell me", "price of", "market", "analysis"]


def _matches(lower: str, keywords: list[str]) -> list[str]:
    """Keywords found in ``lower`` starting at a word boundary."""
    return [k for k in keywords if re.search(rf"\b{re.escape(k)}", lower)]


def _portfolio_subtype_order(lower: str) -> list[str]:
    # A named token makes token-balance more specific than a plain balance query.
    if re.search(rf"\b{_TOKENS}\b", lower):
        return ["token-balance", "portfolio-summary", "balance"]
    return ["portfolio-summary", "balance", "token-balance"]


def calculate_pipeline_confidence(message: str) -> float:
    """Confidence for a heuristic pipeline match; base 0.7, capped at 0.95."""
    lower = message.lower()
    confidence = 0.7

    conditionals = ["when", "if", "whenever", "as soon as", "after", "once"]
    confidence += min(0.2, sum(w in lower for w in conditionals) * 0.05)

    confidence += min(0.15, sum(w in lower for w in PIPELINE_ACTION_WORDS) * 0.05)

    connectors = ["then", "and", "after that", "followed by"]
    confidence += min(0.1, sum(w in lower for w in connectors) * 0.05)

    if re.search(r"%|\bpercent\b", lower):
        confidence += 0.05
    if re.search(r"\$?\d+", lower):
        confidence += 0.05

    return round(min(0.95, confidence), 4)


def fallback_classification(message: str) -> Classification:
    """Classify with keyword heuristics when the LLM is unavailable or fails."""
    lower = (message or "").lower()

    if any(p.search(lower) for p in PIPELINE_PATTERNS):
        return Classification(
            type="pipeline",
            action_subtype="workflow",
            confidence=calculate_pipeline_confidence(lower),
            reasoning="Detected pipeline patterns with conditional logic or multiple actions",
        )

    pipeline_hits = _matches(lower, BASIC_PIPELINE_KEYWORDS)
    if pipeline_hits and _matches(lower, PIPELINE_ACTION_WORDS):
        return Classification(
            type="pipeline",
            action_subtype="workflow",
            confidence=min(0.9, 0.6 + len(pipeline_hits) * 0.1),
            reasoning=f"Detected {len(pipeline_hits)} pipeline keyword(s) with action words",
            keywords=pipeline_hits,
        )

    for subtype in _portfolio_subtype_order(lower):
        config = PORTFOLIO_PATTERNS[subtype]
        if any(p.search(lower) for p in config["patterns"]):
            return Classification(
                type="portfolio-information",
                action_subtype=subtype,
                confidence=0.9,
                reasoning=f"Matched {subtype} portfolio pattern with context",
            )
        hits = _matches(lower, config["keywords"])
        if hits:
            return Classification(
                type="portfolio-information",
                action_subtype=subtype,
                confidence=0.75,
                reasoning=f"Detected {subtype} portfolio keywords",
                keywords=hits,
            )

    for subtype, config in ACTION_PATTERNS.items():
        if any(p.search(lower) for p in config["patterns"]):
            return Classification(
                type="actions",
                action_subtype=subtype,
                confidence=0.85,
                reasoning=f"Matched {subtype} pattern with context",
            )
        hits = _matches(lower, config["keywords"])
        if hits:
            return Classification(
                type="actions",
                action_subtype=subtype,
                confidence=0.65,
                reasoning=f"Detected {subtype} keywords",
                keywords=hits,
            )

    for msg_type, keywords, confidence in (
        ("strategy", STRATEGY_KEYWORDS, 0.7),
        ("feedbacks", FEEDBACK_KEYWORDS, 0.6),
        ("information", INFORMATION_KEYWORDS, 0.6),
    ):
        hits = _matches(lower, keywords)
        if hits:
            return Classification(
                type=msg_type,
                action_subtype="other",
                confidence=confidence,
                reasoning=f"Detected {msg_type} keywords",
                keywords=hits,
            )

    return Classification(
        type="information",
        confidence=0.3,
        reasoning="No clear patterns detected, defaulting to information request",
    )


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class MessageClassifier:
    """Classifies messages with the LLM, falling back to keyword heuristics."""

    def __init__(self, router: LLMRouter) -> None:
        self.router = router

    async def classify_message(self, message: str) -> Classification:
        if not self.router.is_available():
            return fallback_classification(message)

        response = await self.router.complete_json(TaskName.CLASSIFICATION, f'Classify: "{message}"')
        parsed = response.parsed if response.ok else None
        if not parsed or not isinstance(parsed.get("type"), str) or parsed["type"] not in MESSAGE_TYPES:
            logger.warning("LLM classification unusable (%s), using fallback", response.error or parsed)
            return fallback_classification(message)

        classification = Classification.from_dict(parsed)
        classification.method = "llm"
        logger.info(
            "Classified message as %s/%s (confidence=%.2f)",
            classification.type,
            classification.action_subtype,
            classification.confidence,
        )
        return classification
