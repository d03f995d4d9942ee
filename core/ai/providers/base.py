"""Provider interface for chat-completion backends.

Adapters share the plumbing in this module: a per-provider request
throttle, HTTP error classification with bounded retries, and pulling the
JSON object out of a model reply.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import random
import re
import time
import weakref
from abc import ABC, abstractmethod
from collections import deque
from typing import Any

import httpx

from core.ai.types import AIRequest, AIResponse, ProviderConfig, ProviderName

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.5
RETRY_MAX_DELAY = 8.0
RETRYABLE_STATUSES = frozenset({408, 425, 429})

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)
_OUTER_BRACES_RE = re.compile(r"\{[\s\S]*\}")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ProviderError(Exception):
    """A chat-completion request that produced no usable reply."""

    retryable = False

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableProviderError(ProviderError):
    """Rate limiting, server-side failures and timeouts."""

    retryable = True


def error_for_status(status_code: int, message: str) -> ProviderError:
    if status_code in RETRYABLE_STATUSES or status_code >= 500:
        return RetryableProviderError(message, status_code)
    return ProviderError(message, status_code)


def retry_delay(attempt: int) -> float:
    """Jittered exponential delay after failed attempt number ``attempt`` (1-based)."""
    delay = min(RETRY_BASE_DELAY * 2 ** (attempt - 1), RETRY_MAX_DELAY)
    return delay * random.uniform(0.5, 1.5)


# ---------------------------------------------------------------------------
# Throttling
# ---------------------------------------------------------------------------


class RequestThrottle:
    """Allows at most ``rate_per_minute`` requests in any 60 second window.

    Adapters for the same provider share one throttle (see ``for_provider``).
    """

    _shared: dict[ProviderName, "RequestThrottle"] = {}

    def __init__(self, rate_per_minute: int) -> None:
        self.limit = max(rate_per_minute, 1)
        self._sent: deque[float] = deque()
        # asyncio locks are bound to one event loop
        self._locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = weakref.WeakKeyDictionary()

    @classmethod
    def for_provider(cls, name: ProviderName, rate_per_minute: int) -> "RequestThrottle":
        throttle = cls._shared.get(name)
        if throttle is None:
            throttle = cls._shared[name] = cls(rate_per_minute)
        return throttle

    def _lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        lock = self._locks.get(loop)
        if lock is None:
            lock = self._locks[loop] = asyncio.Lock()
        return lock

    async def wait(self) -> None:
        async with self._lock():
            while True:
                now = time.monotonic()
                while self._sent and now - self._sent[0] >= 60.0:
                    self._sent.popleft()
                if len(self._sent) < self.limit:
                    self._sent.append(now)
                    return
                delay = 60.0 - (now - self._sent[0])
                logger.debug("LLM request budget spent, waiting %.2fs", delay)
                await asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


def parse_json_object(raw_text: str | None, required_keys: list[str] | None = None) -> dict[str, Any] | None:
    """The JSON object in a model reply.

    The whole reply is tried first, then a fenced ```json block, then the
    outermost ``{...}`` span. Returns None when nothing parses, the JSON is
    not an object, or one of ``required_keys`` is absent.
    """
    text = (raw_text or "").strip()
    if not text:
        return None

    candidates = [text]
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    braces = _OUTER_BRACES_RE.search(text)
    if braces:
        candidates.append(braces.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(parsed, dict):
            logger.warning("LLM reply is a JSON %s, not an object", type(parsed).__name__)
            return None
        missing = [key for key in required_keys or () if key not in parsed]
        if missing:
            logger.warning("LLM reply is missing keys %s", missing)
            return None
        return parsed

    logger.warning("No JSON object in LLM reply (%d chars)", len(text))
    return None


# ---------------------------------------------------------------------------
# Provider interface
# ---------------------------------------------------------------------------


class LLMProvider(ABC):
    """Chat-completion backend behind :class:`core.ai.router.LLMRouter`.

    ``complete()`` does not raise for provider failures; the returned
    ``AIResponse`` carries ``error`` instead.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config
        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> ProviderName:
        return self.config.name

    def has_credentials(self) -> bool:
        return bool(os.environ.get(self.config.api_key_env))

    async def _send(self, client: httpx.AsyncClient, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Throttled request with retries, returning the decoded JSON body.

        Raises:
            ProviderError: When the request fails and retrying is pointless
                or attempts are used up
        """
        throttle = RequestThrottle.for_provider(self.name, self.config.rate_limit_rpm)
        attempt = 0
        while True:
            attempt += 1
            await throttle.wait()
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                error = error_for_status(status, f"{method} {path} returned {status}: {e.response.text[:200]}")
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                error = RetryableProviderError(f"{method} {path} failed: {e}")
            except json.JSONDecodeError as e:
                error = ProviderError(f"{method} {path} returned a non-JSON body: {e}")

            if not error.retryable or attempt >= MAX_ATTEMPTS:
                raise error
            delay = retry_delay(attempt)
            logger.warning(
                "%s request failed (attempt %d/%d): %s; retrying in %.1fs",
                self.name.value,
                attempt,
                MAX_ATTEMPTS,
                error,
                delay,
            )
            await asyncio.sleep(delay)

    @abstractmethod
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
        """Run one chat completion for ``request``."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the provider answers with the configured key."""

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.monotonic() - start) * 1000, 2)

    def _make_error_response(
        self,
        request: AIRequest,
        error: str,
        latency_ms: float = 0.0,
        model: str | None = None,
    ) -> AIResponse:
        return AIResponse(
            task=request.task,
            provider=self.name,
            model=model or self.config.default_model,
            raw_text="",
            error=error,
            latency_ms=latency_ms,
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_providers: dict[ProviderName, LLMProvider] = {}


def register_provider(provider: LLMProvider) -> None:
    _providers[provider.name] = provider
    logger.info("Registered LLM provider %s", provider.name.value)


def get_provider(name: ProviderName) -> LLMProvider | None:
    return _providers.get(name)


async def close_providers() -> None:
    """Close every registered provider's HTTP client and forget it."""
    for provider in _providers.values():
        await provider.close()
    _providers.clear()
