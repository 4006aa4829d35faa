"""Delegated work: subagent profiles, operating modes and the orchestrator."""

from impulse.agent.completion import (
    AssistantMessage,
    ChatCompletion,
    Choice,
    CompletionClient,
    CompletionError,
    HTTPCompletionClient,
    ToolCall,
)
from impulse.agent.modes import Mode, ModeState, allowed_subagent_kinds
from impulse.agent.orchestrator import SubagentOrchestrator, SubagentResult
from impulse.agent.subagents import SUBAGENTS, SubagentProfile

__all__ = [
    "AssistantMessage",
    "ChatCompletion",
    "Choice",
    "CompletionClient",
    "CompletionError",
    "HTTPCompletionClient",
    "Mode",
    "ModeState",
    "SUBAGENTS",
    "SubagentOrchestrator",
    "SubagentProfile",
    "SubagentResult",
    "ToolCall",
    "allowed_subagent_kinds",
]
