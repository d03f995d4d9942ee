"""Prompt routing: classify a chat message and dispatch it to its handler."""

from core.routing.actions import ActionsProcessor
from core.routing.helpers import sanitize
from core.routing.messages import MessageProcessor
from core.routing.router import ROUTER_VERSION, PromptRouter

__all__ = ["ActionsProcessor", "MessageProcessor", "PromptRouter", "ROUTER_VERSION", "sanitize"]
