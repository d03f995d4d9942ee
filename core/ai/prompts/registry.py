"""System prompts by task, with versions.

The highest active version of a task's prompt is the one the router sends.
Defaults from :mod:`core.ai.prompts.defaults` are loaded on first lookup.
"""

from __future__ import annotations

import logging

from core.ai.types import SystemPrompt, TaskName

logger = logging.getLogger(__name__)


class PromptRegistry:
    _by_task: dict[TaskName, list[SystemPrompt]] = {}

    @classmethod
    def register(cls, prompt: SystemPrompt) -> None:
        versions = [p for p in cls._by_task.get(prompt.task, []) if p.version != prompt.version]
        versions.append(prompt)
        versions.sort(key=lambda p: p.version, reverse=True)
        cls._by_task[prompt.task] = versions
        logger.debug("Prompt %s registered (active=%s)", prompt.key, prompt.is_active)

    @classmethod
    def get_active(cls, task: TaskName) -> SystemPrompt | None:
        if not cls._by_task:
            cls._load_defaults()
        return next((p for p in cls._by_task.get(task, []) if p.is_active), None)

    @classmethod
    def versions(cls, task: TaskName) -> list[SystemPrompt]:
        """Every registered version of ``task``'s prompt, newest first."""
        return list(cls._by_task.get(task, []))

    @classmethod
    def reset(cls) -> None:
        cls._by_task.clear()

    @classmethod
    def _load_defaults(cls) -> None:
        from core.ai.prompts.defaults import ALL_DEFAULT_PROMPTS

        for prompt in ALL_DEFAULT_PROMPTS:
            cls.register(prompt)
        logger.info("Loaded %d default system prompts", len(ALL_DEFAULT_PROMPTS))
