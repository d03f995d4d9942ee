"""Together AI adapter.

Together serves Llama 3.1 Instruct Turbo behind an OpenAI-compatible
``/v1/chat/completions`` endpoint; JSON mode is requested with
``response_format``.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any

import httpx

from core.ai.providers.base import LLMProvider, ProviderError, parse_json_object
from core.ai.types import AIRequest, AIResponse, ProviderConfig, ProviderName

logger = logging.getLogger(__name__)

FAST_MODEL = "meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo"
LARGE_MODEL = "meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo"

TOGETHER_CONFIG = ProviderConfig(
    name=ProviderName.TOGETHER,
    api_key_env="TOGETHER_API_KEY",
    base_url=os.environ.get("TOGETHER_BASE_URL", "https://api.together.xyz"),
    default_model=FAST_MODEL,
    max_tokens=1024,
    temperature=0.1,
    timeout_seconds=30,
    rate_limit_rpm=60,
)

# USD per 1M tokens, same rate for prompt and completion
USD_PER_MILLION_TOKENS = {FAST_MODEL: 0.18, LARGE_MODEL: 0.88}


class TogetherProvider(LLMProvider):
    def __init__(self, config: ProviderConfig | None = None) -> None:
        super().__init__(config or TOGETHER_CONFIG)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={"Authorization": f"Bearer {os.environ.get(self.config.api_key_env, '')}"},
                timeout=httpx.Timeout(self.config.timeout_seconds),
            )
        return self._client

    async def complete(
        self,
        request: AIRequest,
        *,
        system_prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float | None = None,
        json_mode: bool = True,
    ) -> AIResponse:
        model = request.override_model or model or self.config.default_model
        if request.override_temperature is not None:
            temperature = request.override_temperature
        body: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if top_p is not None:
            body["top_p"] = top_p
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        started = time.monotonic()
        try:
            data = await self._send(self._http(), "POST", "/v1/chat/completions", json=body)
            raw_text = data["choices"][0]["message"]["content"] or ""
        except ProviderError as exc:
            logger.error("Together %s call failed: %s", request.task.value, exc)
            return self._make_error_response(request, str(exc), self._elapsed_ms(started), model=model)
        except (KeyError, IndexError, TypeError) as exc:
            logger.error("Together %s reply has no message content: %r", request.task.value, exc)
            return self._make_error_response(
                request, f"malformed completion payload: {exc!r}", self._elapsed_ms(started), model=model
            )

        usage = data.get("usage") or {}
        tokens_in = usage.get("prompt_tokens", 0)
        tokens_out = usage.get("completion_tokens", 0)
        parsed = parse_json_object(raw_text) if json_mode else None

        return AIResponse(
            task=request.task,
            provider=self.name,
            model=model,
            raw_text=raw_text,
            parsed=parsed,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=self._elapsed_ms(started),
            cost_usd=(tokens_in + tokens_out) * USD_PER_MILLION_TOKENS.get(model, 0.0) / 1_000_000,
            error="LLM returned no parseable JSON object" if json_mode and parsed is None else None,
        )

    async def health_check(self) -> bool:
        if not self.has_credentials():
            return False
        try:
            await self._send(self._http(), "GET", "/v1/models")
        except ProviderError as exc:
            logger.warning("Together health check failed: %s", exc)
            return False
        return True
