"""LLM access for the assistant.

``LLMRouter`` is the entry point: it picks the active system prompt and the
sampling parameters for a ``TaskName`` and sends the call through a provider
adapter from ``core.ai.providers``.
"""

from core.ai.router import TASK_CONFIGS, LLMRouter
from core.ai.types import AIRequest, AIResponse, SystemPrompt, TaskConfig, TaskName

__all__ = ["TASK_CONFIGS", "AIRequest", "AIResponse", "LLMRouter", "SystemPrompt", "TaskConfig", "TaskName"]
