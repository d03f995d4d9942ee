"""Intent parsing pipeline: classify, extract, validate, then ask for what's missing."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from core.ai.router import LLMRouter
from core.intent.classifier import Classification, MessageClassifier
from core.intent.extraction import ArgumentExtractor
from core.intent.interactive import generate_interactive_data
from core.intent.validation import validate_and_resolve_arguments
from core.registry.contacts import ContactsTokensService

if TYPE_CHECKING:
    from core.chain.transfer import TransferService

logger = logging.getLogger(__name__)

DEFAULT_TRANSFER_TOKEN = "TON"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class IntentService:
    """Turns a free-text message into a validated intent."""

    def __init__(
        self,
        router: LLMRouter,
        contacts: ContactsTokensService,
        transfer_service: "TransferService | None" = None,
    ) -> None:
        self.router = router
        self.contacts = contacts
        self.transfer_service = transfer_service
        self.classifier = MessageClassifier(router)
        self.extractor = ArgumentExtractor(router)

    async def classify_message(self, message: str) -> Classification:
        return await self.classifier.classify_message(message)

    async def extract(self, message: str, classification: Classification) -> dict[str, Any]:
        if classification.type == "pipeline":
            return await self.extractor.extract_pipeline_arguments(message)
        if classification.type == "portfolio-information":
            return await self.extractor.extract_portfolio_arguments(message, classification)
        return await self.extractor.extract_arguments(message, classification)

    async def parse_intent(self, message: str, user_id: str | None = None) -> dict[str, Any]:
        """Run the full pipeline.

        Returns ``{classification, extraction, validation, interactiveData,
        isComplete, timestamp, userId}``. Unexpected failures degrade to a
        low-confidence information intent carrying ``error``.
        """
        try:
            classification = await self.classify_message(message)
            extraction = await self.extract(message, classification)
            validation = validate_and_resolve_arguments(extraction, self.contacts)
            interactive = generate_interactive_data(
                validation.get("missing"),
                classification.type,
                self.contacts,
                action_type=extraction.get("actionType"),
                args=extraction.get("args"),
            )
        except Exception as exc:
            logger.exception("Intent parsing failed for user %s", user_id)
            return {
                "classification": {"type": "information", "confidence": 0.1},
                "extraction": {"args": {}},
                "validation": {"isValid": False, "missing": [], "resolved": {}},
                "interactiveData": None,
                "isComplete": False,
                "error": str(exc),
                "timestamp": _now(),
                "userId": user_id,
            }

        logger.info(
            "Parsed intent %s/%s valid=%s missing=%s",
            classification.type,
            classification.action_subtype,
            validation.get("isValid"),
            validation.get("missing"),
        )
        return {
            "classification": classification.to_dict(),
            "extraction": extraction,
            "validation": validation,
            "interactiveData": interactive,
            "isComplete": bool(validation.get("isValid")),
            "timestamp": _now(),
            "userId": user_id,
        }

    async def process_interactive_response(
        self,
        original_intent: dict[str, Any],
        user_responses: dict[str, Any],
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Merge form answers into an earlier intent and re-validate it.

        Transfers are handed straight to the transfer service.
        """
        extraction = original_intent.get("extraction") or {}
        original_args = extraction.get("args") or {}
        merged = {**original_args, **{k: v for k, v in user_responses.items() if v not in (None, "")}}
        action_type = extraction.get("actionType")
        user_id = user_id or original_intent.get("userId") or "default-user"

        if action_type == "transfer" and self.transfer_service is not None:
            transfer_args = {
                "amount": merged.get("amount"),
                "token": merged.get("tokenId") or DEFAULT_TRANSFER_TOKEN,
                "recipient": merged.get("recipient"),
            }
            logger.info("Interactive transfer for user %s", user_id)
            return await self.transfer_service.process_transfer_with_args(transfer_args, user_id)

        validation = self.contacts.validate_action_arguments(action_type, merged)
        classification = original_intent.get("classification") or {}
        interactive = None
        if not validation["isValid"]:
            interactive = generate_interactive_data(
                validation["missing"],
                classification.get("type"),
                self.contacts,
                action_type=action_type,
                args=merged,
            )

        return {
            **original_intent,
            "extraction": {**extraction, "args": merged},
            "validation": validation,
            "interactiveData": interactive,
            "isComplete": validation["isValid"],
            "timestamp": _now(),
        }

    def get_contacts_and_tokens_data(self) -> dict[str, Any]:
        return self.contacts.get_contacts_and_tokens_data()
