"""Native TON and ERC-20 transfers from a user's agent wallet.

``process_transfer_request`` takes a free-text message; ``process_transfer_with_args``
takes already-collected ``{amount, token, recipient}``. Both return a result
dict whose ``status`` is one of ``missing_arguments``, ``recipient_not_found``,
``insufficient_funds``, ``wallet_error``, ``executed``, ``execution_failed``
or ``processing_error``.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

from web3 import Web3

from core.ai.router import LLMRouter
from core.ai.types import TaskName
from core.chain.client import RPC_ERRORS, ChainClient, ChainError, format_units, parse_units
from core.chain.config import CHAIN_ID, ERC20_TRANSFER_GAS, NATIVE_TRANSFER_GAS, get_chain_token
from core.chain.wallets import AgentWalletStore
from core.registry.contacts import ContactsTokensService

logger = logging.getLogger(__name__)

TRANSFER_PATTERN = re.compile(r"(?:transfer|send|pay)\s+(\d+(?:\.\d+)?)\s+(\w+)\s+to\s+(.+)", re.IGNORECASE)

TRANSFER_ANALYSIS_PROMPT = """You are a transfer argument analyzer. Extract and validate ALL required information from a transfer request.

REQUIRED ARGUMENTS:
1. amount: numeric value (e.g., 1, 0.5, 100)
2. token: token symbol (DUCK, WTON, TON, USDT - DuckChain tokens only)
3. recipient: who to send to (name, address, or identifier)

OPTIONAL ARGUMENTS:
4. memo: transaction note/message
5. priority: urgency level

Respond with JSON:
{
  "amount": "extracted_amount_or_null",
  "token": "extracted_token_or_null",
  "recipient": "extracted_recipient_or_null",
  "memo": "extracted_memo_or_null",
  "priority": "normal|high|low",
  "confidence": {"amount": 0.9, "token": 0.8, "recipient": 0.7},
  "analysis": {
    "originalMessage": "the_message",
    "extractedPhrases": ["send", "5 TON", "to alice"],
    "ambiguities": [],
    "suggestions": []
  }
}

IMPORTANT: Set fields to null if not found or unclear. Be conservative with confidence scores."""

TOKEN_SELECT_OPTIONS = [
    {"value": "DUCK", "label": "DUCK - Duck Token"},
    {"value": "WTON", "label": "WTON - Wrapped TON"},
    {"value": "TON", "label": "TON - Native TON"},
    {"value": "USDT", "label": "USDT - Tether USD"},
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_amount(value: Any) -> float | None:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


# -----------------------------------------------------------------------------
# Argument analysis
# -----------------------------------------------------------------------------


def basic_argument_parsing(message: str) -> dict[str, Any]:
    """Regex analysis of ``send|transfer|pay <amount> <token> to <recipient>``."""
    match = TRANSFER_PATTERN.search(message)
    if match:
        amount, token, recipient = match.groups()
        return {
            "amount": float(amount),
            "token": token.upper(),
            "recipient": recipient.strip(),
            "memo": None,
            "priority": "normal",
            "confidence": {"amount": 0.8, "token": 0.7, "recipient": 0.6},
            "analysis": {
                "originalMessage": message,
                "extractedPhrases": [match.group(0)],
                "ambiguities": ["Basic parsing - may need verification"],
                "suggestions": ["Verify all extracted parameters"],
            },
        }
    return {
        "amount": None,
        "token": None,
        "recipient": None,
        "memo": None,
        "priority": "normal",
        "confidence": {"amount": 0.0, "token": 0.0, "recipient": 0.0},
        "analysis": {
            "originalMessage": message,
            "extractedPhrases": [],
            "ambiguities": ["Could not parse transfer request"],
            "suggestions": ["Please specify amount, token, and recipient clearly"],
        },
    }


def validate_analysis(analysis: dict[str, Any]) -> dict[str, Any]:
    """Coerce an LLM analysis: numeric amount, upper-case token, default confidences."""
    analysis = dict(analysis)
    if isinstance(analysis.get("amount"), str):
        analysis["amount"] = _to_amount(analysis["amount"])
    for key in ("token", "recipient", "memo"):
        if analysis.get(key) in ("null", ""):
            analysis[key] = None
    if analysis.get("token"):
        analysis["token"] = str(analysis["token"]).upper()
    if not isinstance(analysis.get("confidence"), dict):
        analysis["confidence"] = {
            key: 0.5 if analysis.get(key) else 0.0 for key in ("amount", "token", "recipient")
        }
    return analysis


def identify_missing_arguments(analysis: dict[str, Any]) -> list[str]:
    missing = []
    amount = _to_amount(analysis.get("amount"))
    if amount is None or amount <= 0:
        missing.append("amount")
    if not analysis.get("token"):
        missing.append("token")
    if not analysis.get("recipient"):
        missing.append("recipient")
    return missing


def generate_form_schema(missing: list[str], analysis: dict[str, Any] | None = None) -> dict[str, Any]:
    fields: list[dict[str, Any]] = []
    if "amount" in missing:
        fields.append(
            {
                "name": "amount",
                "type": "number",
                "label": "Amount",
                "placeholder": "Enter amount to transfer",
                "required": True,
                "min": 0.000001,
                "step": 0.000001,
                "validation": "positive_number",
            }
        )
    if "token" in missing:
        fields.append(
            {
                "name": "token",
                "type": "select",
                "label": "Token",
                "placeholder": "Select token to transfer",
                "required": True,
                "options": list(TOKEN_SELECT_OPTIONS),
            }
        )
    if "recipient" in missing:
        fields.append(
            {
                "name": "recipient",
                "type": "text",
                "label": "Recipient",
                "placeholder": "Enter recipient name or address",
                "required": True,
                "validation": "recipient_format",
            }
        )
    fields.append(
        {
            "name": "memo",
            "type": "text",
            "label": "Memo (Optional)",
            "placeholder": "Add a note for this transfer",
            "required": False,
            "maxLength": 100,
        }
    )
    return {
        "title": "Complete Transfer Details",
        "description": "Please provide the missing information to complete your transfer request.",
        "fields": fields,
    }


def generate_recipient_form_schema(recipient_query: str) -> dict[str, Any]:
    return {
        "title": "Recipient Not Found",
        "description": f'Could not find contact "{recipient_query}". Please provide recipient details.',
        "fields": [
            {
                "name": "recipientAddress",
                "type": "text",
                "label": "Wallet Address",
                "placeholder": "0x...",
                "required": True,
                "validation": "ethereum_address",
            },
            {
                "name": "recipientName",
                "type": "text",
                "label": "Contact Name",
                "placeholder": "Enter a name for this contact",
                "required": True,
            },
            {
                "name": "category",
                "type": "select",
                "label": "Contact Category",
                "options": [
                    {"value": "friend", "label": "Friend"},
                    {"value": "family", "label": "Family"},
                    {"value": "business", "label": "Business"},
                    {"value": "other", "label": "Other"},
                ],
                "required": True,
            },
            {
                "name": "saveContact",
                "type": "checkbox",
                "label": "Save this contact for future transfers",
                "defaultValue": True,
            },
        ],
    }


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------


class TransferService:
    def __init__(
        self,
        router: LLMRouter,
        contacts: ContactsTokensService,
        chain: ChainClient | None = None,
        wallets: AgentWalletStore | None = None,
    ) -> None:
        self.router = router
        self.contacts = contacts
        self.chain = chain or ChainClient()
        self.wallets = wallets or AgentWalletStore()

    async def analyze_transfer_arguments(self, message: str) -> dict[str, Any]:
        """LLM argument analysis, falling back to regex parsing."""
        if not self.router.is_available():
            return basic_argument_parsing(message)
        response = await self.router.complete_json(
            TaskName.ACTION,
            f'User Message: "{message}"\n\nExtract the transfer arguments and identify what is missing.',
            system_prompt=TRANSFER_ANALYSIS_PROMPT,
        )
        if not response.ok:
            logger.warning("LLM transfer analysis failed (%s), using basic parsing", response.error)
            return basic_argument_parsing(message)
        return validate_analysis(response.parsed)

    def resolve_recipient(self, recipient_query: str) -> dict[str, Any]:
        if Web3.is_address(recipient_query):
            known = self.contacts.resolve_contact(recipient_query)
            name = known["name"] if known and known.get("type") != "address" else "Unknown Contact"
            return {
                "success": True,
                "resolvedAddress": recipient_query,
                "contactName": name,
                "category": (known or {}).get("category", "unknown"),
                "source": "direct_address",
            }

        contact = self.contacts.resolve_contact(recipient_query)
        if contact:
            return {
                "success": True,
                "resolvedAddress": contact["address"],
                "contactName": contact["name"],
                "category": contact.get("category", "unknown"),
                "source": "contacts",
            }
        return {
            "success": False,
            "reason": "recipient_not_found",
            "suggestions": self.contacts.suggest_contacts(recipient_query),
            "recipientQuery": recipient_query,
        }

    def get_balance(self, address: str, token: str) -> float:
        """Human-unit balance of ``token`` held by ``address``.

        Raises:
            ValueError: If the token is not configured
            ChainError: If the balance cannot be read
        """
        chain_token = get_chain_token(token)
        if chain_token.is_native:
            raw = self.chain.get_native_balance(address)
        else:
            raw = self.chain.get_erc20_balance(chain_token.address, address)
        return float(format_units(raw, chain_token.decimals))

    def check_wallet_balance(self, user_id: str, token: str, amount: float) -> dict[str, Any]:
        wallet = self.wallets.get_for_user(user_id)
        if wallet is None:
            return {"success": False, "reason": "no_agent", "error": "No active agent found for user"}
        try:
            balance = self.get_balance(wallet.address, token)
        except (ChainError, ValueError) as e:
            logger.error("Balance check failed for user %s: %s", user_id, e)
            return {"success": False, "reason": "check_error", "error": str(e)}

        if balance < amount:
            return {
                "success": False,
                "reason": "insufficient_funds",
                "currentBalance": balance,
                "requiredAmount": amount,
                "shortfall": amount - balance,
                "walletAddress": wallet.address,
                "agentId": wallet.agent_id,
            }
        return {"success": True, "currentBalance": balance, "walletAddress": wallet.address, "agentId": wallet.agent_id}

    def estimate_gas_fees(self, token: str) -> dict[str, Any]:
        gas_limit = NATIVE_TRANSFER_GAS if str(token).upper() == "TON" else ERC20_TRANSFER_GAS
        try:
            gas_price = self.chain.gas_price()
        except ChainError as e:
            logger.warning("Gas estimation failed: %s", e)
            return {"gasPrice": "0", "gasLimit": 0, "estimatedFee": "0", "error": "Could not estimate gas fees"}
        return {
            "gasPrice": format_units(gas_price, 9),
            "gasLimit": gas_limit,
            "estimatedFee": format_units(gas_price * gas_limit, 18),
            "estimatedFeeUSD": None,
        }

    @staticmethod
    def generate_funding_instructions(
        wallet_address: str,
        agent_id: str | None,
        token: str,
        required_amount: float,
        current_balance: float,
    ) -> dict[str, Any]:
        shortfall = required_amount - current_balance
        return {
            "status": "funding_required",
            "shortfall": shortfall,
            "currentBalance": current_balance,
            "requiredAmount": required_amount,
            "walletAddress": wallet_address,
            "agentId": agent_id,
            "paymentUri": f"ethereum:{wallet_address}@{CHAIN_ID}",
            "instructions": [
                f"You need {shortfall:.6f} more {token} to complete this transfer",
                f"Send {token} to your agent's DuckChain wallet: {wallet_address}",
                f"Current balance: {current_balance:.6f} {token}",
                f"Required amount: {required_amount:.6f} {token}",
            ],
            "estimatedWaitTime": "1-5 minutes after sending",
        }

    def execute_transfer(self, user_id: str, to_address: str, amount: float, token: str) -> dict[str, Any]:
        """Sign and send from the user's agent wallet, waiting for the receipt."""
        try:
            wallet = self.wallets.get_for_user(user_id)
            if wallet is None:
                raise ChainError("No active DuckChain agent found for user")
            chain_token = get_chain_token(token)
            account = self.chain.account(self.wallets.private_key_for(wallet))
            recipient = Web3.to_checksum_address(to_address)
            value = parse_units(amount, chain_token.decimals)

            if chain_token.is_native:
                tx = {
                    "to": recipient,
                    "value": value,
                    "gas": NATIVE_TRANSFER_GAS,
                    "gasPrice": self.chain.gas_price(),
                }
            else:
                tx = self.chain.erc20(chain_token.address).functions.transfer(recipient, value).build_transaction(
                    {
                        "from": account.address,
                        "chainId": self.chain.chain_id,
                        "gas": ERC20_TRANSFER_GAS * 2,
                        "gasPrice": self.chain.gas_price(),
                    }
                )
            tx_hash = self.chain.send_transaction(account, tx)
            receipt = self.chain.wait_for_receipt(tx_hash)
        except (ChainError, *RPC_ERRORS) as e:
            logger.error("Transfer execution failed for user %s: %s", user_id, e)
            return {"success": False, "error": f"Transfer failed: {e}", "status": "failed"}

        confirmed = receipt["status"] == 1
        logger.info("Transfer %s %s", tx_hash, "confirmed" if confirmed else "reverted")
        return {
            "success": confirmed,
            "transactionHash": tx_hash,
            "transferDetails": {"to": to_address, "amount": amount, "token": token},
            "timestamp": _now(),
            "status": "completed" if confirmed else "reverted",
        }

    async def _resolve_check_execute(self, args: dict[str, Any], user_id: str) -> dict[str, Any]:
        recipient = self.resolve_recipient(str(args["recipient"]))
        if not recipient["success"]:
            return {
                "success": False,
                "status": "recipient_not_found",
                "recipientQuery": args["recipient"],
                "error": "Recipient could not be resolved",
                "suggestedContacts": recipient.get("suggestions", []),
                "requiresUserInput": True,
                "formSchema": generate_recipient_form_schema(str(args["recipient"])),
            }

        amount = float(args["amount"])
        token = str(args["token"]).upper()
        wallet_check = await asyncio.to_thread(self.check_wallet_balance, user_id, token, amount)
        if not wallet_check["success"]:
            if wallet_check["reason"] == "insufficient_funds":
                funding = self.generate_funding_instructions(
                    wallet_check["walletAddress"],
                    wallet_check.get("agentId"),
                    token,
                    amount,
                    wallet_check["currentBalance"],
                )
                return {
                    "success": False,
                    "status": "insufficient_funds",
                    "currentBalance": wallet_check["currentBalance"],
                    "requiredAmount": amount,
                    "shortfall": amount - wallet_check["currentBalance"],
                    "walletAddress": wallet_check["walletAddress"],
                    "agentId": wallet_check.get("agentId"),
                    "fundingInstructions": funding,
                    "requiresFunding": True,
                }
            return {"success": False, "status": "wallet_error", "error": wallet_check.get("error")}

        execution = await asyncio.to_thread(
            self.execute_transfer, user_id, recipient["resolvedAddress"], amount, token
        )
        return {
            "success": execution["success"],
            "status": "executed" if execution["success"] else "execution_failed",
            "transferDetails": {
                "from": wallet_check["walletAddress"],
                "to": recipient["resolvedAddress"],
                "amount": amount,
                "token": token,
                "recipient": {
                    "name": recipient["contactName"],
                    "address": recipient["resolvedAddress"],
                    "category": recipient["category"],
                },
            },
            "transactionHash": execution.get("transactionHash"),
            "executionResult": execution,
        }

    async def process_transfer_with_args(self, args: dict[str, Any], user_id: str) -> dict[str, Any]:
        """Transfer with arguments collected from an interactive form."""
        missing = identify_missing_arguments(args)
        if missing:
            return {
                "success": False,
                "status": "missing_arguments",
                "error": "A positive amount, a token and a recipient are required",
                "missing": missing,
            }
        try:
            return await self._resolve_check_execute(args, user_id)
        except (ChainError, ValueError) as e:
            logger.exception("Transfer with args failed for user %s", user_id)
            return {"success": False, "status": "processing_error", "error": str(e)}

    async def process_transfer_request(
        self, message: str, user_id: str, agent_id: str | None = None
    ) -> dict[str, Any]:
        """Analyze a free-text transfer request and execute it when complete."""
        try:
            analysis = await self.analyze_transfer_arguments(message)
            missing = identify_missing_arguments(analysis)
            if missing:
                return {
                    "success": False,
                    "status": "missing_arguments",
                    "missingArguments": missing,
                    "argumentAnalysis": analysis,
                    "requiresUserInput": True,
                    "formSchema": generate_form_schema(missing, analysis),
                }
            result = await self._resolve_check_execute(analysis, user_id)
        except (ChainError, ValueError) as e:
            logger.exception("Transfer request failed for user %s", user_id)
            return {"success": False, "status": "processing_error", "error": str(e)}
        if agent_id:
            result["agentId"] = result.get("agentId") or agent_id
        return result
