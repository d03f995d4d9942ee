"""LLM router: dispatches prompt tasks to the chat-completion provider.

The router is the single entry point the domain layer uses for LLM calls.
It orchestrates:
1. Prompt lookup (active version per task)
2. Task sampling parameters
3. The provider call
4. Usage tracking
"""

from __future__ import annotations

import json
import logging
from collections import deque
from typing import Any

from core.ai.prompts.registry import PromptRegistry
from core.ai.providers.base import LLMProvider, get_provider, register_provider
from core.ai.providers.together import FAST_MODEL, LARGE_MODEL, TogetherProvider
from core.ai.types import (
    AIRequest,
    AIResponse,
    ProviderName,
    TaskConfig,
    TaskName,
    UsageRecord,
)

logger = logging.getLogger(__name__)

TASK_CONFIGS: dict[TaskName, TaskConfig] = {
    TaskName.CLASSIFICATION: TaskConfig(model=FAST_MODEL, temperature=0.1, max_tokens=200),
    TaskName.EXTRACTION: TaskConfig(model=FAST_MODEL, temperature=0.1, max_tokens=300),
    TaskName.PORTFOLIO: TaskConfig(model=FAST_MODEL, temperature=0.1, max_tokens=200),
    TaskName.PIPELINE: TaskConfig(model=FAST_MODEL, temperature=0.1, max_tokens=800),
    TaskName.STRATEGY: TaskConfig(model=LARGE_MODEL, temperature=0.3, max_tokens=2000, top_p=0.9),
    TaskName.INFORMATION: TaskConfig(model=LARGE_MODEL, temperature=0.4, max_tokens=2000, top_p=0.9),
    TaskName.FEEDBACK: TaskConfig(model=LARGE_MODEL, temperature=0.3, max_tokens=1500, top_p=0.9),
    TaskName.ACTION: TaskConfig(model=LARGE_MODEL, temperature=0.2, max_tokens=1000),
}


# Only the most recent calls are kept for cost monitoring
USAGE_LOG_SIZE = 1000


class LLMRouter:
    """Central router for prompt tasks.

    Usage::

        router = LLMRouter()
        response = await router.complete_json(TaskName.CLASSIFICATION, 'Classify: "send 5 TON to bob"')
        if response.ok:
            category = response.parsed["type"]
    """

    def __init__(self, provider: LLMProvider | None = None, usage_log_size: int = USAGE_LOG_SIZE) -> None:
        if provider is None:
            provider = get_provider(ProviderName.TOGETHER)
            if provider is None:
                provider = TogetherProvider()
                register_provider(provider)
        self.provider = provider
        self._usage_log: deque[UsageRecord] = deque(maxlen=usage_log_size)

    def is_available(self) -> bool:
        """True when the provider has credentials configured."""
        return self.provider.has_credentials()

    async def complete_json(
        self,
        task: TaskName,
        user_prompt: str,
        *,
        system_prompt: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> AIResponse:
        """Run one task and return the provider response.

        ``system_prompt`` overrides the registry prompt for the task; this is
        how per-action extraction prompts are sent. ``context`` is appended to
        the user message as JSON.
        """
        config = TASK_CONFIGS[task]
        request = AIRequest(task=task, user_prompt=user_prompt, context=context or {})

        if system_prompt is None:
            prompt = PromptRegistry.get_active(task)
            system_prompt = prompt.content if prompt else ""

        if not self.is_available():
            logger.warning("LLM unavailable for task %s (no credentials)", task.value)
            return AIResponse(
                task=task,
                provider=self.provider.name,
                model=config.model,
                raw_text="",
                error="LLM provider not configured",
            )

        if request.context:
            request.user_prompt = (
                f"{user_prompt}\n\nContext:\n{json.dumps(request.context, default=str)}"
            )

        response = await self.provider.complete(
            request,
            system_prompt=system_prompt,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            top_p=config.top_p,
            json_mode=config.json_mode,
        )

        self._usage_log.append(UsageRecord.from_response(response))

        if response.error:
            logger.warning("LLM task %s failed: %s", task.value, response.error)
        else:
            logger.debug(
                "LLM task %s done (model=%s, tokens=%d/%d, latency=%.0fms)",
                task.value,
                response.model,
                response.tokens_in,
                response.tokens_out,
                response.latency_ms,
            )
        return response

    def get_usage_log(self) -> list[UsageRecord]:
        """Return the usage log (for cost monitoring)."""
        return list(self._usage_log)

    def clear_usage_log(self) -> None:
        self._usage_log.clear()
