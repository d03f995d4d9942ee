"""Contacts book and token list."""

from core.registry.contacts import ContactsTokensService, is_evm_address
from core.registry.tokens import TokenValidator, calculate_similarity

__all__ = ["ContactsTokensService", "TokenValidator", "calculate_similarity", "is_evm_address"]
