"""Tests for the LLM router, prompt registry and provider plumbing."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from core.ai.prompts.registry import PromptRegistry
from core.ai.providers import base
from core.ai.providers.base import (
    ProviderError,
    RequestThrottle,
    RetryableProviderError,
    error_for_status,
    parse_json_object,
)
from core.ai.providers.together import FAST_MODEL, LARGE_MODEL, TogetherProvider
from core.ai.router import TASK_CONFIGS, LLMRouter
from core.ai.types import AIRequest, ProviderName, TaskName


@pytest.fixture(autouse=True)
def fresh_throttles():
    RequestThrottle._shared.clear()
    yield
    RequestThrottle._shared.clear()


# ---------------------------------------------------------------------------
# Error classification / JSON parsing
# ---------------------------------------------------------------------------


def test_error_for_status():
    assert isinstance(error_for_status(429, "slow down"), RetryableProviderError)
    assert isinstance(error_for_status(503, "down"), RetryableProviderError)
    assert error_for_status(500, "boom").retryable

    unauthorized = error_for_status(401, "bad key")
    assert type(unauthorized) is ProviderError
    assert unauthorized.status_code == 401
    assert not error_for_status(422, "bad body").retryable


def test_parse_json_object_plain_and_fenced():
    assert parse_json_object('{"type": "actions"}') == {"type": "actions"}
    fenced = 'Sure! ```json\n{"type": "strategy", "confidence": 0.8}\n```'
    assert parse_json_object(fenced) == {"type": "strategy", "confidence": 0.8}
    nested = 'Here you go: {"args": {"amount": 5}} hope that helps'
    assert parse_json_object(nested) == {"args": {"amount": 5}}


def test_parse_json_object_rejects_bad_input():
    assert parse_json_object("") is None
    assert parse_json_object(None) is None
    assert parse_json_object("no json here") is None
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object('{"a": 1}', required_keys=["b"]) is None


def test_throttle_is_shared_per_provider():
    first = RequestThrottle.for_provider(ProviderName.TOGETHER, 60)
    assert RequestThrottle.for_provider(ProviderName.TOGETHER, 5) is first
    assert first.limit == 60


@pytest.mark.asyncio
async def test_throttle_admits_requests_within_budget():
    throttle = RequestThrottle(3)
    for _ in range(3):
        await throttle.wait()
    assert len(throttle._sent) == 3


# ---------------------------------------------------------------------------
# Prompts and task configs
# ---------------------------------------------------------------------------


def test_every_task_has_an_active_prompt_and_config():
    for task in TaskName:
        prompt = PromptRegistry.get_active(task)
        assert prompt is not None, task
        assert prompt.content
        assert task in TASK_CONFIGS


def test_task_models():
    assert TASK_CONFIGS[TaskName.CLASSIFICATION].model == FAST_MODEL
    assert TASK_CONFIGS[TaskName.STRATEGY].model == LARGE_MODEL
    assert TASK_CONFIGS[TaskName.STRATEGY].top_p == 0.9


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_json_without_credentials(offline_router):
    response = await offline_router.complete_json(TaskName.CLASSIFICATION, "hello")

    assert not response.ok
    assert response.error == "LLM provider not configured"
    assert offline_router.provider.calls == []
    assert offline_router.get_usage_log() == []


@pytest.mark.asyncio
async def test_complete_json_uses_registry_prompt_and_task_model(make_router):
    router = make_router({TaskName.CLASSIFICATION: {"type": "information", "confidence": 0.9}})

    response = await router.complete_json(TaskName.CLASSIFICATION, 'Classify: "what is TON?"')

    assert response.ok
    assert response.parsed["type"] == "information"
    call = router.provider.calls[0]
    assert call["system_prompt"] == PromptRegistry.get_active(TaskName.CLASSIFICATION).content
    assert call["model"] == TASK_CONFIGS[TaskName.CLASSIFICATION].model
    assert len(router.get_usage_log()) == 1
    assert router.get_usage_log()[0].success


@pytest.mark.asyncio
async def test_complete_json_override_prompt_and_context(make_router):
    router = make_router({TaskName.EXTRACTION: {"args": {}}})

    await router.complete_json(
        TaskName.EXTRACTION, "Extract", system_prompt="custom rules", context={"tokens": ["TON"]}
    )

    call = router.provider.calls[0]
    assert call["system_prompt"] == "custom rules"
    assert "Context:" in call["user_prompt"]
    assert '"TON"' in call["user_prompt"]


@pytest.mark.asyncio
async def test_failed_call_is_logged_as_failure(make_router):
    router = make_router({})

    response = await router.complete_json(TaskName.FEEDBACK, "review my trades")

    assert not response.ok
    assert router.get_usage_log()[0].success is False
    router.clear_usage_log()
    assert router.get_usage_log() == []


# ---------------------------------------------------------------------------
# Together adapter
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_together_complete_parses_json(monkeypatch):
    monkeypatch.setenv("TOGETHER_API_KEY", "test-key")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = request.read().decode()
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": '{"type": "actions", "actionSubtype": "swap"}'}}],
                "usage": {"prompt_tokens": 100, "completion_tokens": 20},
            },
        )

    provider = TogetherProvider()
    provider._client = httpx.AsyncClient(base_url="https://api.together.test", transport=httpx.MockTransport(handler))

    response = await provider.complete(
        AIRequest(task=TaskName.CLASSIFICATION, user_prompt="swap 5 TON for DUCK"),
        system_prompt="classify",
        model=FAST_MODEL,
        max_tokens=200,
    )
    await provider.close()

    assert response.ok
    assert response.parsed == {"type": "actions", "actionSubtype": "swap"}
    assert response.tokens_in == 100
    assert response.cost_usd > 0
    assert seen["path"] == "/v1/chat/completions"
    assert '"response_format"' in seen["body"]


@pytest.mark.asyncio
async def test_together_permanent_error_becomes_error_response(monkeypatch):
    monkeypatch.setenv("TOGETHER_API_KEY", "bad-key")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "unauthorized"})

    provider = TogetherProvider()
    provider._client = httpx.AsyncClient(base_url="https://api.together.test", transport=httpx.MockTransport(handler))

    response = await provider.complete(
        AIRequest(task=TaskName.CLASSIFICATION, user_prompt="hi"), system_prompt="classify"
    )
    await provider.close()

    assert not response.ok
    assert "returned 401" in response.error


@pytest.mark.asyncio
async def test_together_non_json_reply_is_an_error(monkeypatch):
    monkeypatch.setenv("TOGETHER_API_KEY", "test-key")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "I cannot help"}}]})

    provider = TogetherProvider()
    provider._client = httpx.AsyncClient(base_url="https://api.together.test", transport=httpx.MockTransport(handler))

    response = await provider.complete(
        AIRequest(task=TaskName.STRATEGY, user_prompt="plan"), system_prompt="strategy"
    )
    await provider.close()

    assert response.parsed is None
    assert response.error == "LLM returned no parseable JSON object"


@pytest.mark.asyncio
async def test_together_retries_server_errors(monkeypatch):
    monkeypatch.setenv("TOGETHER_API_KEY", "test-key")
    monkeypatch.setattr(base, "retry_delay", lambda attempt: 0)
    statuses = [503, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        status = statuses.pop(0)
        if status != 200:
            return httpx.Response(status, text="overloaded")
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"ok": true}'}}]})

    provider = TogetherProvider()
    provider._client = httpx.AsyncClient(base_url="https://api.together.test", transport=httpx.MockTransport(handler))

    response = await provider.complete(AIRequest(task=TaskName.PORTFOLIO, user_prompt="x"), system_prompt="p")
    await provider.close()

    assert response.parsed == {"ok": True}
    assert statuses == []


@pytest.mark.asyncio
async def test_together_health_check(monkeypatch):
    monkeypatch.delenv("TOGETHER_API_KEY", raising=False)
    assert await TogetherProvider().health_check() is False

    monkeypatch.setenv("TOGETHER_API_KEY", "test-key")
    provider = TogetherProvider()
    provider._client = httpx.AsyncClient(
        base_url="https://api.together.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": []})),
    )
    assert await provider.health_check() is True
    await provider.close()


@pytest.mark.asyncio
async def test_usage_log_keeps_only_recent_calls(make_router):
    provider = make_router({TaskName.PORTFOLIO: {"type": "balance"}}).provider
    router = LLMRouter(provider, usage_log_size=2)

    for _ in range(3):
        await router.complete_json(TaskName.PORTFOLIO, "balance?")

    assert len(router.get_usage_log()) == 2
    assert len(router.provider.calls) == 3


def test_throttle_survives_event_loop_changes():
    throttle = RequestThrottle.for_provider(ProviderName.TOGETHER, 10)

    asyncio.run(throttle.wait())
    asyncio.run(throttle.wait())

    assert len(throttle._sent) == 2
