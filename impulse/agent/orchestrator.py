"""Subagent orchestrator - a bounded, allow-listed tool-calling loop."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from impulse.agent.completion import DEFAULT_SUBAGENT_MODEL, CompletionClient, ToolCall
from impulse.agent.modes import ModeState
from impulse.agent.subagents import get_profile, subagent_kinds
from impulse.tools.registry import ToolRegistry, identifying_argument

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 10


@dataclass
class SubagentResult:
    success: bool
    output: str
    actions: List[str] = field(default_factory=list)
    iterations: int = 0


class SubagentOrchestrator:
    """
    Runs a delegated task as its own short conversation.

    The model only sees definitions for the subagent's allow-listed tools,
    and any call it makes outside that list is answered with an error turn
    instead of being executed. Tool calls from one turn run sequentially in
    the order requested. The loop ends when the model replies without tool
    calls, or fails once ``max_iterations`` completions have been spent.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        client: CompletionClient,
        model: str = DEFAULT_SUBAGENT_MODEL,
        max_iterations: int = MAX_ITERATIONS,
        mode_state: Optional[ModeState] = None,
    ):
        self._registry = registry
        self._client = client
        self.model = model
        self.max_iterations = max_iterations
        self._mode_state = mode_state

    async def run(
        self,
        kind: str,
        prompt: str,
        allowed_tools: Optional[Iterable[str]] = None,
        max_iterations: Optional[int] = None,
    ) -> SubagentResult:
        profile = get_profile(kind)
        if profile is None:
            return SubagentResult(
                success=False,
                output=f"Unknown subagent type: {kind} (expected one of: {', '.join(subagent_kinds())})",
            )
        if self._mode_state is not None and not self._mode_state.allows_subagent(kind):
            mode = self._mode_state.mode.value
            return SubagentResult(
                success=False,
                output=f"{mode} mode does not allow {kind} subagents. Switch to WORK mode first.",
            )

        if allowed_tools is None:
            allowed = list(profile.tools)
        else:
            requested = set(allowed_tools)
            allowed = [name for name in profile.tools if name in requested]
        allowed_set = set(allowed)
        definitions = self._registry.get_api_definitions(allowed)

        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": profile.prompt},
            {"role": "user", "content": prompt},
        ]
        actions: List[str] = []
        limit = min(max_iterations, self.max_iterations) if max_iterations else self.max_iterations

        for iteration in range(1, limit + 1):
            try:
                response = await self._client.complete(self.model, messages, definitions or None)
            except Exception as e:
                logger.warning("Subagent %s: completion failed: %s", kind, e)
                return SubagentResult(
                    success=False,
                    output=f"Subagent error: {e}",
                    actions=actions,
                    iterations=iteration,
                )

            if not response.choices:
                return SubagentResult(
                    success=False,
                    output="No response from model",
                    actions=actions,
                    iterations=iteration,
                )

            message = response.choices[0].message
            calls = message.tool_calls or []
            turn: Dict[str, Any] = {"role": "assistant", "content": message.text}
            if calls:
                turn["tool_calls"] = [call.model_dump() for call in calls]
            messages.append(turn)

            if not calls:
                return SubagentResult(
                    success=True,
                    output=message.text,
                    actions=actions,
                    iterations=iteration,
                )

            for call in calls:
                content = await self._execute_call(kind, allowed_set, call, actions)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": content})

        return SubagentResult(
            success=False,
            output="Subagent reached maximum iterations without completing",
            actions=actions,
            iterations=limit,
        )

    async def _execute_call(self, kind: str, allowed: Set[str], call: ToolCall, actions: List[str]) -> str:
        name = call.function.name
        if name not in allowed:
            logger.warning("Subagent %s requested disallowed tool %s", kind, name)
            return f'Error: Tool "{name}" is not allowed for {kind} subagent'

        try:
            arguments = json.loads(call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            return f"Error: Invalid arguments for {name}: {e}"
        if not isinstance(arguments, dict):
            return f"Error: Invalid arguments for {name}: expected a JSON object"

        result = await self._registry.execute(name, arguments)

        summary = identifying_argument(arguments)
        actions.append(f"{name} {summary}" if summary else name)
        return result.output if result.success else f"Error: {result.output}"
