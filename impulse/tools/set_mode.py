"""The ``set_mode`` tool: let the model switch operating modes."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from impulse.agent.modes import ModeState
from impulse.tools.registry import Tool, ToolRegistry, ToolResult

DESCRIPTION = """Switch to a different operating mode.

Modes: WORK (full access), EXPLORE (read-only), PLAN (write docs/ and
PRD.md only), DEBUG (full access, for diagnosing failures).
Required: mode. Optional: reason."""


class SetModeInput(BaseModel):
    mode: Literal["WORK", "EXPLORE", "PLAN", "DEBUG"] = Field(..., description="The mode to switch to")
    reason: Optional[str] = Field(
        None,
        max_length=100,
        description="Brief explanation of why switching (shown to user)",
    )


def register_set_mode_tool(registry: ToolRegistry, mode_state: ModeState) -> Tool:
    async def handler(params: SetModeInput) -> ToolResult:
        mode = mode_state.set_mode(params.mode, params.reason)
        reason = f" ({params.reason})" if params.reason else ""
        return ToolResult(
            success=True,
            output=f"Mode switched to {mode.value}{reason}",
            metadata={"mode": mode.value, "reason": params.reason},
        )

    return registry.define("set_mode", DESCRIPTION, SetModeInput, handler)
