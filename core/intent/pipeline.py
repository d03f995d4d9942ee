"""Structural validation of extracted automation pipelines.

A pipeline is ``{trigger, conditions, actions, metadata}`` as produced by the
pipeline extraction prompt. Validation never raises; problems are reported as
``errors`` (blocking) and ``warnings`` (advisory).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from core.intent.classifier import calculate_pipeline_confidence
from core.registry.contacts import is_evm_address

logger = logging.getLogger(__name__)

TRIGGER_TYPES = (
    "price_movement",
    "price_target",
    "balance_threshold",
    "portfolio_value",
    "time_based",
    "technical_indicator",
)

ACTION_TYPES = (
    "buy",
    "sell",
    "swap",
    "transfer",
    "stake",
    "unstake",
    "add_liquidity",
    "remove_liquidity",
    "notify",
)

FLEXIBLE_AMOUNTS = ("all", "max")


def is_valid_address(value: Any) -> bool:
    return is_evm_address(value)


def _is_flexible_amount(amount: str) -> bool:
    return amount.lower() in FLEXIBLE_AMOUNTS or "%" in amount


def _check_positive_amount(amount: Any, prefix: str, errors: list[str]) -> None:
    if isinstance(amount, (int, float)) and not isinstance(amount, bool) and amount <= 0:
        errors.append(f"{prefix}: Amount must be a positive number")


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


def _price_movement(t: dict, errors: list[str], warnings: list[str]) -> None:
    if not t.get("token"):
        errors.append("Price movement trigger missing token")
    if t.get("direction") not in ("increase", "decrease"):
        errors.append("Price movement trigger needs valid direction (increase/decrease)")
    percentage = t.get("percentage")
    if percentage is None:
        errors.append("Price movement trigger missing percentage")
    elif isinstance(percentage, (int, float)) and (percentage <= 0 or percentage > 1000):
        warnings.append("Price movement percentage seems unusual")


def _price_target(t: dict, errors: list[str], warnings: list[str]) -> None:
    if not t.get("token"):
        errors.append("Price target trigger missing token")
    target = t.get("target_price")
    if target is None:
        errors.append("Price target trigger missing target_price")
    if t.get("direction") not in ("above", "below"):
        errors.append("Price target trigger needs valid direction (above/below)")
    if isinstance(target, (int, float)) and target <= 0:
        warnings.append("Target price should be positive")


def _balance_threshold(t: dict, errors: list[str], warnings: list[str]) -> None:
    threshold = t.get("threshold_amount")
    if threshold is None:
        errors.append("Balance threshold trigger missing threshold_amount")
    if t.get("comparison") not in ("above", "below"):
        errors.append("Balance threshold trigger needs valid comparison (above/below)")
    if isinstance(threshold, (int, float)) and threshold <= 0:
        warnings.append("Threshold amount should be positive")


def _portfolio_value(t: dict, errors: list[str], warnings: list[str]) -> None:
    if t.get("target_value") is None:
        errors.append("Portfolio value trigger missing target_value")
    if not t.get("currency"):
        warnings.append("Portfolio value trigger should specify currency")
    if t.get("comparison") not in ("above", "below"):
        errors.append("Portfolio value trigger needs valid comparison (above/below)")


def _time_based(t: dict, errors: list[str], warnings: list[str]) -> None:
    if not t.get("schedule") and not t.get("interval"):
        errors.append("Time-based trigger missing schedule or interval")


def _technical_indicator(t: dict, errors: list[str], warnings: list[str]) -> None:
    if not t.get("indicator"):
        errors.append("Technical indicator trigger missing indicator")
    if not t.get("token"):
        errors.append("Technical indicator trigger missing token")


TRIGGER_VALIDATORS: dict[str, Callable[[dict, list[str], list[str]], None]] = {
    "price_movement": _price_movement,
    "price_target": _price_target,
    "balance_threshold": _balance_threshold,
    "portfolio_value": _portfolio_value,
    "time_based": _time_based,
    "technical_indicator": _technical_indicator,
}


def validate_trigger(trigger: dict[str, Any]) -> dict[str, Any]:
    errors: list[str] = []
    warnings: list[str] = []
    trigger_type = trigger.get("type")
    validator = TRIGGER_VALIDATORS.get(trigger_type) if isinstance(trigger_type, str) else None
    if validator is None:
        warnings.append(f"Unknown trigger type: {trigger_type}")
    else:
        validator(trigger, errors, warnings)
    return {"isValid": not errors, "errors": errors, "warnings": warnings}


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _buy(a: dict, i: int, errors: list[str], warnings: list[str]) -> None:
    if not a.get("token"):
        errors.append(f"Action {i}: Buy action missing token")
    amount = a.get("amount")
    if amount is None:
        errors.append(f"Action {i}: Buy action missing amount")
    elif isinstance(amount, str) and not _is_flexible_amount(amount):
        warnings.append(f"Action {i}: Buy amount format may need clarification")
    _check_positive_amount(amount, f"Action {i}", errors)


def _sell(a: dict, i: int, errors: list[str], warnings: list[str]) -> None:
    if not a.get("token"):
        errors.append(f"Action {i}: Sell action missing token")
    if a.get("amount") is None:
        errors.append(f"Action {i}: Sell action missing amount")
    _check_positive_amount(a.get("amount"), f"Action {i}", errors)


def _swap(a: dict, i: int, errors: list[str], warnings: list[str]) -> None:
    if not a.get("from_token"):
        errors.append(f"Action {i}: Swap action missing from_token")
    if not a.get("to_token"):
        errors.append(f"Action {i}: Swap action missing to_token")
    if a.get("amount") is None:
        errors.append(f"Action {i}: Swap action missing amount")
    from_token, to_token = a.get("from_token"), a.get("to_token")
    if from_token and to_token and str(from_token).upper() == str(to_token).upper():
        errors.append(f"Action {i}: Cannot swap token with itself")
    _check_positive_amount(a.get("amount"), f"Action {i}", errors)


def _transfer(a: dict, i: int, errors: list[str], warnings: list[str]) -> None:
    if a.get("amount") is None:
        errors.append(f"Action {i}: Transfer action missing amount")
    destination = a.get("destination")
    if not destination:
        errors.append(f"Action {i}: Transfer action missing destination")
    elif not is_valid_address(destination):
        warnings.append(f"Action {i}: Transfer destination address format should be verified")
    _check_positive_amount(a.get("amount"), f"Action {i}", errors)


def _stake(a: dict, i: int, errors: list[str], warnings: list[str]) -> None:
    if not a.get("token"):
        errors.append(f"Action {i}: Stake action missing token")
    amount = a.get("amount")
    if isinstance(amount, str) and not _is_flexible_amount(amount):
        warnings.append(f"Action {i}: Stake amount format may need clarification")
    _check_positive_amount(amount, f"Action {i}", errors)


ACTION_VALIDATORS: dict[str, Callable[[dict, int, list[str], list[str]], None]] = {
    "buy": _buy,
    "sell": _sell,
    "swap": _swap,
    "transfer": _transfer,
    "stake": _stake,
}


def validate_actions(actions: list[dict[str, Any]]) -> dict[str, Any]:
    """Validate each action; unknown types are kept with a warning."""
    valid_actions: list[dict[str, Any]] = []
    errors: list[str] = []
    warnings: list[str] = []

    for index, action in enumerate(actions):
        action_type = action.get("type") if isinstance(action, dict) else None
        if not action_type:
            errors.append(f"Action {index}: Missing action type")
            continue
        validator = ACTION_VALIDATORS.get(action_type) if isinstance(action_type, str) else None
        if validator is not None:
            validator(action, index, errors, warnings)
        elif action_type not in ACTION_TYPES:
            warnings.append(f"Action {index}: Unknown action type: {action_type}")
        valid_actions.append(action)

    return {"validActions": valid_actions, "errors": errors, "warnings": warnings}


def validate_conditions(conditions: list[dict[str, Any]]) -> dict[str, Any]:
    warnings = [
        f"Condition {i}: Missing condition type"
        for i, condition in enumerate(conditions)
        if not (isinstance(condition, dict) and condition.get("type"))
    ]
    return {"isValid": True, "warnings": warnings}


def check_consistency(resolved: dict[str, Any]) -> list[str]:
    """Advisory warnings about the trigger/condition and action combination."""
    warnings: list[str] = []

    trigger = resolved.get("trigger")
    conditions = resolved.get("conditions")
    if trigger and conditions:
        trigger_type = trigger.get("type")
        related = {trigger_type}
        if trigger_type == "price_movement":
            related |= {"price_increase", "price_decrease"}
        condition_types = {c["type"] for c in conditions if isinstance(c, dict) and isinstance(c.get("type"), str)}
        if not condition_types & related:
            warnings.append("Trigger and conditions may not be logically consistent")

    actions = resolved.get("actions") or []
    if len(actions) > 1:
        by_token: dict[str, set[str]] = defaultdict(set)
        for action in actions:
            token, action_type = action.get("token"), action.get("type")
            if token and isinstance(token, str) and isinstance(action_type, str):
                by_token[token].add(action_type)
        for token, types in by_token.items():
            if {"buy", "sell"} <= types:
                warnings.append(f"Potential conflict: buying and selling {token} in same pipeline")

    return warnings


def assess_quality(resolved: dict[str, Any], errors: list[str], warnings: list[str]) -> int:
    """Score 0..100: penalties per error and warning, bonuses for completeness."""
    score = 100 - 20 * len(errors) - 5 * len(warnings)

    actions = resolved.get("actions") or []
    trigger = resolved.get("trigger")
    if trigger:
        score += 10
    if actions:
        score += 10
    if resolved.get("conditions"):
        score += 5
    if resolved.get("metadata"):
        score += 5
    if len(actions) > 1:
        score += 5
    if trigger and trigger.get("type") in ("price_movement", "technical_indicator"):
        score += 5

    return max(0, min(100, score))


def validate_pipeline(pipeline: dict[str, Any] | None, original_message: str | None = None) -> dict[str, Any]:
    """Validate a pipeline's trigger, actions and conditions.

    Returns ``{isValid, missing, resolved, errors, warnings, pipelineType,
    quality}``; ``confidence`` is added when the original message is given.
    """
    if not pipeline or not isinstance(pipeline, dict):
        return {
            "isValid": False,
            "missing": ["pipeline_structure"],
            "resolved": {},
            "errors": ["No pipeline structure found in extraction"],
            "warnings": [],
        }

    trigger = pipeline.get("trigger")
    actions = pipeline.get("actions") or []
    conditions = pipeline.get("conditions") or []
    # a lone action or condition object counts as a one-item list
    if not isinstance(actions, list):
        actions = [actions]
    if not isinstance(conditions, list):
        conditions = [conditions]
    metadata = pipeline.get("metadata")

    missing: list[str] = []
    resolved: dict[str, Any] = {}
    errors: list[str] = []
    warnings: list[str] = []

    if not trigger:
        missing.append("trigger")
        errors.append("No trigger defined for pipeline")
    elif not isinstance(trigger, dict) or not trigger.get("type"):
        missing.append("trigger_type")
        errors.append("Trigger missing required type field")
    else:
        result = validate_trigger(trigger)
        errors.extend(result["errors"])
        warnings.extend(result["warnings"])
        if result["isValid"]:
            resolved["trigger"] = trigger

    if not actions:
        missing.append("actions")
        errors.append("Pipeline must have at least one action")
    else:
        result = validate_actions(actions)
        if result["validActions"]:
            resolved["actions"] = result["validActions"]
        errors.extend(result["errors"])
        warnings.extend(result["warnings"])

    if conditions:
        result = validate_conditions(conditions)
        resolved["conditions"] = conditions
        warnings.extend(result["warnings"])

    if metadata:
        resolved["metadata"] = metadata

    warnings.extend(check_consistency(resolved))

    is_valid = not missing and not errors
    logger.info(
        "Pipeline validation: valid=%s errors=%d warnings=%d", is_valid, len(errors), len(warnings)
    )

    validation = {
        "isValid": is_valid,
        "missing": missing,
        "resolved": resolved,
        "errors": errors,
        "warnings": warnings,
        "pipelineType": "advanced_workflow",
        "quality": assess_quality(resolved, errors, warnings),
    }
    if original_message:
        validation["confidence"] = calculate_pipeline_confidence(original_message)
    return validation
