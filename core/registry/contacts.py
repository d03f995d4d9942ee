"""Contacts book and argument resolution for chat actions.

Contacts are kept in a JSON file::

    {"contacts": {"alice": {"name", "address", "type", "category"}},
     "metadata": {"lastUpdated", "totalContacts"}}

Tokens come from :class:`core.registry.tokens.TokenValidator`.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from core.registry.tokens import TokenValidator, calculate_similarity

logger = logging.getLogger(__name__)

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

REQUIRED_ARGUMENTS: dict[str, list[str]] = {
    "transfer": ["recipient", "amount"],
    "transferToken": ["recipient", "tokenId", "amount"],
    "swap": ["fromToken", "toToken", "amount"],
    "createAgent": ["name", "description"],
    "deployContract": ["contractName", "constructorArgs"],
    "associateToken": ["tokenId"],
    "createTopic": ["memo"],
    "sendMessage": ["topicId", "message"],
}

RECIPIENT_ARGS = frozenset({"recipient", "to"})
TOKEN_ARGS = frozenset({"fromToken", "toToken", "inputToken", "outputToken", "tokenId"})


def is_evm_address(value: Any) -> bool:
    return isinstance(value, str) and bool(EVM_ADDRESS_RE.match(value))


class ContactsTokensService:
    """JSON-backed contacts plus token lookups used to resolve action arguments."""

    def __init__(
        self,
        contacts_file: Path | str,
        tokens_file: Path | str | None = None,
        *,
        tokens: TokenValidator | None = None,
    ) -> None:
        if tokens is None and tokens_file is None:
            raise ValueError("tokens_file or tokens is required")
        self.contacts_file = Path(contacts_file)
        self.tokens = tokens or TokenValidator(tokens_file)
        self._lock = threading.Lock()
        self.data = self._load_contacts()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_contacts(self) -> dict[str, Any]:
        try:
            data = json.loads(self.contacts_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("Contacts file %s not found, starting empty", self.contacts_file)
            return {"contacts": {}, "metadata": {}}
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Error loading contacts from %s: %s", self.contacts_file, exc)
            return {"contacts": {}, "metadata": {}}
        data.setdefault("contacts", {})
        data.setdefault("metadata", {})
        return data

    def _save_contacts(self) -> bool:
        metadata = self.data["metadata"]
        metadata["lastUpdated"] = datetime.now(timezone.utc).isoformat()
        metadata["totalContacts"] = len(self.data["contacts"])
        try:
            self.contacts_file.parent.mkdir(parents=True, exist_ok=True)
            self.contacts_file.write_text(json.dumps(self.data, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Error saving contacts to %s: %s", self.contacts_file, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    @property
    def contacts(self) -> dict[str, dict[str, Any]]:
        return self.data["contacts"]

    def get_all_contacts(self) -> dict[str, dict[str, Any]]:
        return dict(self.contacts)

    def resolve_contact(self, name_or_address: str | None) -> dict[str, Any] | None:
        """Resolve a contact by address, key, exact name or partial name.

        An unknown but well-formed address resolves to an ad-hoc entry of
        type ``address``.
        """
        if not name_or_address or not isinstance(name_or_address, str):
            return None
        raw = name_or_address.strip()
        query = raw.lower()

        if is_evm_address(raw):
            for key, contact in self.contacts.items():
                if contact.get("address", "").lower() == query:
                    return {"key": key, **contact}
            return {"key": raw, "name": raw, "address": raw, "type": "address", "category": "unknown"}

        contacts = self.contacts
        for key, contact in contacts.items():
            if key.lower() == query:
                return {"key": key, **contact}
        for key, contact in contacts.items():
            if contact.get("name", "").lower() == query:
                return {"key": key, **contact}
        if query:
            for key, contact in contacts.items():
                if query in contact.get("name", "").lower():
                    return {"key": key, **contact}
        return None

    def suggest_contacts(self, query: str, limit: int = 3) -> list[dict[str, Any]]:
        """Contacts whose key or name is close to ``query``."""
        query = (query or "").strip().lower()
        scored = []
        for key, contact in self.contacts.items():
            score = max(
                calculate_similarity(query, key.lower()),
                calculate_similarity(query, contact.get("name", "").lower()),
            )
            if score > 0.5:
                scored.append((score, {"key": key, **contact}))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [contact for _, contact in scored[:limit]]

    def add_contact(self, key: str, contact: dict[str, Any]) -> bool:
        with self._lock:
            self.contacts[key.lower()] = {
                "name": contact["name"],
                "address": contact["address"],
                "type": contact.get("type", "friend"),
                "category": contact.get("category", "personal"),
            }
            return self._save_contacts()

    def update_contact(self, key: str, changes: dict[str, Any]) -> bool:
        with self._lock:
            existing = self.contacts.get(key.lower())
            if existing is None:
                return False
            existing.update({k: v for k, v in changes.items() if v is not None})
            return self._save_contacts()

    def delete_contact(self, key: str) -> bool:
        with self._lock:
            if self.contacts.pop(key.lower(), None) is None:
                return False
            return self._save_contacts()

    def get_contacts_by_category(self) -> dict[str, list[dict[str, Any]]]:
        categories: dict[str, list[dict[str, Any]]] = {}
        for key, contact in self.contacts.items():
            categories.setdefault(contact.get("category", "unknown"), []).append({"key": key, **contact})
        return categories

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def resolve_token(self, query: str | None) -> dict[str, Any] | None:
        return self.tokens.find_token(query)

    def get_all_tokens(self) -> dict[str, dict[str, Any]]:
        return {t["symbol"]: dict(t) for t in self.tokens.get_all_tokens()}

    def get_tokens_by_category(self) -> dict[str, list[dict[str, Any]]]:
        categories: dict[str, list[dict[str, Any]]] = {}
        for token in self.tokens.get_all_tokens():
            category = (token.get("tags") or ["token"])[0]
            categories.setdefault(category, []).append({**token, "category": category})
        return categories

    # ------------------------------------------------------------------
    # Action arguments
    # ------------------------------------------------------------------

    @staticmethod
    def get_required_arguments(action_type: str | None) -> list[str]:
        return list(REQUIRED_ARGUMENTS.get(action_type or "", []))

    def validate_action_arguments(self, action_type: str | None, args: dict[str, Any]) -> dict[str, Any]:
        """Check required arguments and resolve contacts and tokens.

        Returns ``{isValid, missing, resolved, requiredArgs}``. Arguments that
        are present but cannot be resolved are reported as missing.
        """
        required = self.get_required_arguments(action_type)
        missing: list[str] = []
        errors: list[str] = []
        resolved: dict[str, Any] = {}

        for arg in required:
            value = args.get(arg)
            if value is None or value == "":
                missing.append(arg)
                continue

            if arg in RECIPIENT_ARGS:
                contact = self.resolve_contact(str(value))
                if contact is None:
                    errors.append(f'Contact "{value}" not found')
                    missing.append(arg)
                    continue
                resolved[arg] = contact["address"]
                resolved[f"{arg}_resolved"] = contact
            elif arg in TOKEN_ARGS:
                token = self.tokens.find_token(str(value))
                if token is None:
                    logger.info("Token not found: %r (%s)", value, arg)
                    errors.append(f'Token "{value}" not found in {self.tokens.network}')
                    missing.append(arg)
                    continue
                resolved[arg] = token["symbol"]
                resolved[f"{arg}_resolved"] = {
                    "symbol": token["symbol"],
                    "name": token.get("name"),
                    "address": token["address"],
                    "decimals": token.get("decimals", 18),
                    "id": token["address"],
                }
            else:
                resolved[arg] = value

        return {
            "isValid": not missing,
            "missing": missing,
            "resolved": resolved,
            "errors": errors,
            "requiredArgs": required,
        }

    def get_contact_options(self) -> list[dict[str, Any]]:
        return [
            {
                "value": c["address"],
                "label": f"{c['name']} ({c['address']})",
                "category": c.get("category"),
            }
            for c in self.contacts.values()
        ]

    def get_token_options(self) -> list[dict[str, Any]]:
        return [
            {
                "value": t["address"],
                "label": f"{t.get('name', t['symbol'])} ({t['symbol']})",
                "category": (t.get("tags") or ["token"])[0],
                "symbol": t["symbol"],
                "address": t["address"],
                "decimals": t.get("decimals", 18),
            }
            for t in self.tokens.get_all_tokens()
        ]

    def get_combobox_options(self, arg_name: str) -> list[dict[str, Any]]:
        """Options for a client-side combobox bound to ``arg_name``."""
        if arg_name in RECIPIENT_ARGS:
            return self.get_contact_options()
        if arg_name in TOKEN_ARGS:
            return self.get_token_options()
        return []

    def get_contacts_and_tokens_data(self) -> dict[str, Any]:
        return {
            "contacts": self.get_contacts_by_category(),
            "tokens": self.get_tokens_by_category(),
            "allContacts": self.get_all_contacts(),
            "allTokens": self.get_all_tokens(),
        }
