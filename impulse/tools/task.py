"""The ``task`` tool: delegate a scoped job to a subagent."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

from impulse.agent.orchestrator import SubagentOrchestrator
from impulse.tools.registry import Tool, ToolRegistry, ToolResult

DESCRIPTION = """Launch a subagent to handle a scoped task on its own.

Subagent types:
- explore: fast, read-only codebase search and analysis (file_read, glob, grep)
- general: multi-step work that may edit files and run commands

Give the subagent a complete, self-contained prompt; it cannot see this
conversation. The result lists the actions it took followed by its answer."""


class TaskInput(BaseModel):
    prompt: str = Field(..., description="The full task for the subagent")
    description: str = Field(..., description="Short (3-5 word) description shown to the user")
    subagent_type: Literal["explore", "general"] = Field(..., description="Which subagent to launch")


def format_task_output(output: str, actions: List[str]) -> str:
    if not actions:
        return output
    summary = "\n".join(f"  - {action}" for action in actions)
    return f"Actions taken:\n{summary}\n\nResult:\n{output}"


def register_task_tool(registry: ToolRegistry, orchestrator: SubagentOrchestrator) -> Tool:
    async def handler(params: TaskInput) -> ToolResult:
        result = await orchestrator.run(params.subagent_type, params.prompt)
        return ToolResult(
            success=result.success,
            output=format_task_output(result.output, result.actions),
            metadata={
                "type": "task",
                "subagentType": params.subagent_type,
                "description": params.description,
                "actions": result.actions,
                "toolCallCount": len(result.actions),
            },
        )

    return registry.define("task", DESCRIPTION, TaskInput, handler, permission="task")
