"""Guidance and execution for ``actions`` messages."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from core.ai.router import LLMRouter
from core.ai.types import TaskName
from core.chain.client import ChainError
from core.chain.swap import SwapService
from core.chain.transfer import TransferService
from core.intent.classifier import Classification
from core.intent.extraction import extract_swap_arguments_regex

logger = logging.getLogger(__name__)

SUPPORTED_ACTIONS = [
    "transfer",
    "swap",
    "stake",
    "lend",
    "borrow",
    "bridge",
    "buy",
    "sell",
    "mint",
    "burn",
    "balance",
    "other",
]

EXECUTABLE_ACTIONS = ("transfer", "swap")

ACTION_VERBS = {
    "transfer": "transferring",
    "swap": "swapping",
    "stake": "staking",
    "lend": "lending",
    "borrow": "borrowing",
    "buy": "purchasing",
    "sell": "selling",
    "bridge": "bridging",
    "mint": "minting",
    "burn": "burning",
}

ACTION_RESULT_VERSION = "1.0.0"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_action_message(classification: Classification, execute: bool) -> str:
    action_type = classification.action_subtype or "action"
    verb = ACTION_VERBS.get(action_type, "processing")
    if execute:
        return f"🚀 I'm {verb} your request right now! Let me handle the transaction for you..."
    return (
        f"📋 I understand you want to {action_type}. "
        "Let me analyze your request and prepare the transaction details for you."
    )


def generate_basic_action_plan(classification: Classification) -> dict[str, Any]:
    action_type = classification.action_subtype or "other"
    return {
        "action": action_type,
        "message": f"Basic {action_type} plan generated",
        "steps": [
            "Validate transaction parameters",
            "Check account balance and permissions",
            "Prepare transaction",
            "Execute transaction",
            "Confirm completion",
        ],
        "requirements": ["Valid token addresses", "Sufficient balance", "Network connection"],
        "estimatedTime": "30-60 seconds",
        "confidence": "medium",
    }


def validate_action_result(
    result: dict[str, Any], message: str, classification: Classification
) -> dict[str, Any]:
    """Fill defaults the LLM left out and attach processing metadata."""
    result = dict(result)
    result.setdefault("actionType", classification.action_subtype or "other")
    if not isinstance(result.get("steps"), list):
        plan_steps = (result.get("actionPlan") or {}).get("steps")
        result["steps"] = plan_steps if isinstance(plan_steps, list) else [
            "Review your request",
            "Prepare necessary tokens",
            "Execute transaction",
        ]
    if not isinstance(result.get("warnings"), list):
        result["warnings"] = ["Always verify transaction details before confirming"]
    if not isinstance(result.get("recommendations"), list):
        result["recommendations"] = ["Start with small amounts to test the process"]
    result.setdefault("riskLevel", "medium")
    result.setdefault("estimatedTime", "2-5 minutes")
    result["metadata"] = {
        "classification": classification.to_dict(),
        "originalMessage": message,
        "processedAt": _now(),
        "version": ACTION_RESULT_VERSION,
    }
    return result


def fallback_action_processing(message: str, classification: Classification, execute: bool = False) -> dict[str, Any]:
    action_type = classification.action_subtype or "other"
    return {
        "actionType": action_type,
        "basicGuidance": f"To perform a {action_type} action, you'll need a funded DuckChain agent wallet.",
        "steps": [
            "Make sure your agent wallet holds the tokens involved",
            "Describe the action with amount, token and recipient or target token",
            "Review gas fees and confirm the transaction",
        ],
        "warnings": [
            "Always double-check transaction details",
            "Ensure you have sufficient TON for gas",
            "Start with small amounts for testing",
        ],
        "recommendations": [
            "Keep your private keys secure",
            "Monitor transaction status until confirmation",
        ],
        "riskLevel": "medium",
        "estimatedTime": "3-10 minutes",
        "metadata": {
            "classification": classification.to_dict(),
            "originalMessage": message,
            "processedAt": _now(),
            "fallback": True,
            "version": ACTION_RESULT_VERSION,
        },
        "executionStatus": "fallback_no_execution" if execute else "guidance_only",
    }


class ActionsProcessor:
    """LLM guidance for on-chain actions, with optional execution of transfers and swaps."""

    def __init__(self, router: LLMRouter, transfers: TransferService, swaps: SwapService) -> None:
        self.router = router
        self.transfers = transfers
        self.swaps = swaps

    @staticmethod
    def get_supported_actions() -> list[str]:
        return list(SUPPORTED_ACTIONS)

    async def process_action(
        self,
        message: str,
        classification: Classification,
        *,
        execute: bool = False,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        user_message = generate_action_message(classification, execute)
        if not self.router.is_available():
            return {
                "userMessage": user_message,
                "actionPlan": generate_basic_action_plan(classification),
                "status": "planned",
                "executed": False,
                "error": "AI not available - basic action plan generated",
            }

        action_type = classification.action_subtype or "other"
        response = await self.router.complete_json(
            TaskName.ACTION,
            f'Action type: {action_type}\nExecute: {"yes" if execute else "no"}\nUser request: "{message}"',
        )
        if not response.ok:
            logger.warning("Action guidance failed (%s), using fallback", response.error)
            return {"userMessage": user_message, **fallback_action_processing(message, classification, execute)}

        result = validate_action_result(response.parsed, message, classification)
        result["userMessage"] = user_message
        if not (execute and user_id):
            result["executionStatus"] = "guidance_only"
            return result

        if action_type not in EXECUTABLE_ACTIONS:
            result["execution"] = {
                "message": f"Execution not yet supported for {action_type} actions",
                "status": "not_implemented",
            }
            result["executionStatus"] = "not_implemented"
            return result

        try:
            execution = await self._execute_from_message(action_type, message, user_id)
        except (ChainError, ValueError) as e:
            logger.error("%s execution failed for user %s: %s", action_type, user_id, e)
            result["execution"] = {"error": str(e), "status": "failed"}
            result["executionStatus"] = "failed"
            return result
        result["execution"] = execution
        result["executionStatus"] = "completed" if execution.get("success") else "failed"
        return result

    async def _execute_from_message(self, action_type: str, message: str, user_id: str) -> dict[str, Any]:
        if action_type == "transfer":
            return await self.transfers.process_transfer_request(message, user_id)
        args = extract_swap_arguments_regex(message)
        if not args:
            raise ValueError("Could not parse swap details from message")
        return await asyncio.to_thread(
            self.swaps.execute_swap, user_id, args["fromToken"], args["toToken"], args["amount"]
        )

    async def execute_action(self, action_type: str, resolved_args: dict[str, Any], user_id: str) -> dict[str, Any]:
        """Execute an action whose arguments were validated and resolved.

        Raises:
            ValueError: For action types that cannot be executed directly,
                or a swap that cannot be quoted
        """
        action = (action_type or "").lower()
        logger.info("Executing %s for user %s", action, user_id)
        if action == "transfer":
            result = await self.transfers.process_transfer_with_args(
                {
                    "amount": resolved_args.get("amount"),
                    "token": resolved_args.get("tokenId") or resolved_args.get("token") or "TON",
                    "recipient": resolved_args.get("recipient"),
                },
                user_id,
            )
            return {
                "success": result.get("success", False),
                "actionType": "transfer",
                "transactionDetails": result,
                "resolvedArgs": resolved_args,
                "timestamp": _now(),
            }
        if action == "swap":
            result = await asyncio.to_thread(
                self.swaps.execute_swap,
                user_id,
                resolved_args["fromToken"],
                resolved_args["toToken"],
                resolved_args["amount"],
            )
            return {
                "success": result.get("success", False),
                "actionType": "swap",
                "transactionHash": result.get("transactionHash"),
                "swapDetails": result.get("swapDetails"),
                "execution": result,
                "timestamp": _now(),
            }
        raise ValueError(f"Action type '{action_type}' not yet supported for direct execution")
