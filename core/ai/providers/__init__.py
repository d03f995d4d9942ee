"""Chat-completion provider adapters."""

from __future__ import annotations

from .base import LLMProvider, close_providers, get_provider, register_provider
from .together import TogetherProvider

__all__ = ["LLMProvider", "TogetherProvider", "close_providers", "get_provider", "register_provider"]
