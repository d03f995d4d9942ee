"""Value types passed between the router, prompt registry and providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProviderName(str, Enum):
    TOGETHER = "together"


class TaskName(str, Enum):
    """Kinds of LLM call the assistant makes; each has a prompt and sampling config."""

    CLASSIFICATION = "classification"  # layer 1 message type
    EXTRACTION = "extraction"  # action arguments
    PORTFOLIO = "portfolio"
    PIPELINE = "pipeline"  # trigger / condition / action automation
    STRATEGY = "strategy"
    INFORMATION = "information"
    FEEDBACK = "feedback"
    ACTION = "action"  # step-by-step guidance


@dataclass(frozen=True)
class ProviderConfig:
    name: ProviderName
    api_key_env: str
    base_url: str
    default_model: str
    max_tokens: int = 1024
    temperature: float = 0.1
    timeout_seconds: int = 30
    rate_limit_rpm: int = 60


@dataclass(frozen=True)
class TaskConfig:
    """Model and sampling parameters used for every call of one task."""

    model: str
    temperature: float = 0.1
    max_tokens: int = 200
    top_p: float | None = None
    json_mode: bool = True


@dataclass(frozen=True)
class SystemPrompt:
    task: TaskName
    version: int
    content: str
    description: str = ""
    is_active: bool = True

    @property
    def key(self) -> str:
        return f"{self.task.value}_v{self.version}"


@dataclass
class AIRequest:
    task: TaskName
    user_prompt: str
    context: dict[str, Any] = field(default_factory=dict)
    override_model: str | None = None
    override_temperature: float | None = None


@dataclass
class AIResponse:
    """Outcome of one provider call.

    ``parsed`` holds the JSON object from the reply. ``error`` is set when
    the call failed or the reply had no JSON object; callers check ``ok``.
    """

    task: TaskName
    provider: ProviderName
    model: str
    raw_text: str
    parsed: dict[str, Any] | None = None
    tokens_in: int = 0
    tokens_out: int = 0
    latency_ms: float = 0.0
    cost_usd: float = 0.0
    error: str | None = None
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def ok(self) -> bool:
        return self.error is None and self.parsed is not None


@dataclass(frozen=True)
class UsageRecord:
    task: TaskName
    provider: ProviderName
    model: str
    tokens_in: int
    tokens_out: int
    cost_usd: float
    latency_ms: float
    success: bool
    created_at: datetime = field(default_factory=_utc_now)

    @classmethod
    def from_response(cls, response: AIResponse) -> "UsageRecord":
        return cls(
            task=response.task,
            provider=response.provider,
            model=response.model,
            tokens_in=response.tokens_in,
            tokens_out=response.tokens_out,
            cost_usd=response.cost_usd,
            latency_ms=response.latency_ms,
            success=response.error is None,
        )
