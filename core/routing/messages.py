"""Validated message processing for chat clients.

Unlike :class:`core.routing.router.PromptRouter`, every message goes through
the full intent pipeline first, so incomplete actions come back as an
``argumentRequest`` with form components instead of being guessed at.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from core.chain.client import ChainError
from core.chain.portfolio import PortfolioController
from core.chain.swap import SwapService
from core.chain.transfer import TransferService
from core.intent.classifier import Classification
from core.intent.service import IntentService
from core.routing.actions import ActionsProcessor
from core.routing.helpers import sanitize
from core.routing.router import PromptRouter

logger = logging.getLogger(__name__)

TRANSFER_STATUSES = frozenset(
    {
        "missing_arguments",
        "recipient_not_found",
        "insufficient_funds",
        "wallet_error",
        "executed",
        "execution_failed",
        "processing_error",
    }
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _reply(success: bool, kind: str, data: dict[str, Any]) -> dict[str, Any]:
    return sanitize({"success": success, "type": kind, "data": data, "timestamp": _now()})


class MessageProcessor:
    def __init__(
        self,
        intent: IntentService,
        prompt_router: PromptRouter,
        actions: ActionsProcessor,
        transfers: TransferService,
        swaps: SwapService,
        portfolio: PortfolioController,
    ) -> None:
        self.intent = intent
        self.prompt_router = prompt_router
        self.actions = actions
        self.transfers = transfers
        self.swaps = swaps
        self.portfolio = portfolio

    def _argument_request(self, intent: dict[str, Any]) -> dict[str, Any]:
        return _reply(
            True,
            "argumentRequest",
            {
                "intent": intent,
                "interactive": intent["interactiveData"],
                "contactsAndTokens": self.intent.get_contacts_and_tokens_data(),
            },
        )

    async def _execute_resolved(self, intent: dict[str, Any], user_id: str) -> dict[str, Any]:
        extraction = intent.get("extraction") or {}
        resolved = (intent.get("validation") or {}).get("resolved") or {}
        try:
            result = await self.actions.execute_action(extraction.get("actionType"), resolved, user_id)
        except (ChainError, ValueError) as e:
            logger.error("Action execution failed for user %s: %s", user_id, e)
            return _reply(False, "actionError", {"intent": intent, "error": str(e)})
        return _reply(True, "actionComplete", {"intent": intent, "actionResult": result})

    async def _process_swap(self, intent: dict[str, Any], user_id: str) -> dict[str, Any]:
        args = (intent.get("extraction") or {}).get("args") or {}
        try:
            result = await asyncio.to_thread(
                self.swaps.execute_swap, user_id, args["fromToken"], args["toToken"], args["amount"]
            )
        except (KeyError, ValueError, ChainError) as e:
            logger.error("Swap failed for user %s: %s", user_id, e)
            return _reply(False, "swapError", {"intent": intent, "error": str(e)})
        return _reply(result["success"], "swap", {"intent": intent, "swapResult": result})

    async def process_message_with_validation(self, message: str, user_id: str | None = None) -> dict[str, Any]:
        """Parse ``message`` and act on it when its arguments are complete."""
        user_id = user_id or "default-user"
        intent = await self.intent.parse_intent(message, user_id)
        classification = intent["classification"]
        kind = classification.get("type")
        is_valid = bool(intent["validation"].get("isValid"))

        if is_valid and kind == "portfolio-information":
            result = await asyncio.to_thread(self.portfolio.process_portfolio_request, intent, user_id)
            if result["success"]:
                return sanitize(result)
            return _reply(
                False,
                "portfolioError",
                {
                    "intent": intent,
                    "error": result.get("error"),
                    "message": "I encountered an issue while retrieving your portfolio information. Please try again.",
                },
            )

        if is_valid and kind == "actions":
            action_type = classification.get("actionSubtype") or intent["extraction"].get("actionType")
            if action_type == "transfer":
                result = await self.transfers.process_transfer_request(message, user_id)
                return _reply(result["success"], "transfer", result)
            if action_type == "swap":
                return await self._process_swap(intent, user_id)
            return await self._execute_resolved(intent, user_id)

        if intent.get("interactiveData"):
            return self._argument_request(intent)

        parsed = Classification.from_dict(classification)
        if kind == "strategy":
            strategy = await self.prompt_router.process_strategy(message, parsed)
            return _reply(True, "strategy", {"intent": intent, "strategy": strategy})
        if kind == "information":
            information = await self.prompt_router.process_information(message, parsed)
            return _reply(True, "information", {"intent": intent, "information": information})

        return _reply(
            True,
            "general",
            {"intent": intent, "message": "I understand your message but need more context to help you properly."},
        )

    async def process_interactive_response(
        self,
        original_intent: dict[str, Any],
        user_responses: dict[str, Any],
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Continue an ``argumentRequest`` with the user's form answers."""
        user_id = user_id or original_intent.get("userId") or "default-user"
        updated = await self.intent.process_interactive_response(original_intent, user_responses, user_id)

        if updated.get("status") in TRANSFER_STATUSES or "recipientQuery" in updated:
            return _reply(bool(updated.get("success")), "transfer", updated)

        if updated.get("isComplete") and (updated.get("classification") or {}).get("type") == "actions":
            return await self._execute_resolved(updated, user_id)

        if updated.get("interactiveData"):
            return self._argument_request(updated)

        return _reply(
            False,
            "unexpectedState",
            {"intent": updated, "message": "Unexpected state in interactive processing"},
        )
