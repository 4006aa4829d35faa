"""Event topics observed by the UI layer."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from impulse.bus.bus import define


class McpStatusPayload(BaseModel):
    server: str
    status: Literal["connected", "failed", "disabled"]
    error: Optional[str] = None


class McpEvents:
    StatusChanged = define("mcp.status", McpStatusPayload)


class QuestionOptionPayload(BaseModel):
    label: str
    description: str


class QuestionPayload(BaseModel):
    question: str
    header: str
    options: List[QuestionOptionPayload]
    multiple: bool = False


class QuestionAskedPayload(BaseModel):
    id: str
    questions: List[QuestionPayload]


class QuestionEvents:
    Asked = define("question.asked", QuestionAskedPayload)


class PermissionAskedPayload(BaseModel):
    id: str
    session_id: str
    permission: str
    patterns: List[str]
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PermissionRepliedPayload(BaseModel):
    session_id: str
    permission_id: str
    response: Literal["once", "session", "always", "reject"]
    message: Optional[str] = None


class PermissionEvents:
    Asked = define("permission.asked", PermissionAskedPayload)
    Replied = define("permission.replied", PermissionRepliedPayload)


class ModeChangedPayload(BaseModel):
    mode: Literal["WORK", "EXPLORE", "PLAN", "DEBUG"]
    reason: Optional[str] = None


class ModeEvents:
    Changed = define("mode.changed", ModeChangedPayload)


def process_output_topic(process_id: str) -> str:
    """Topic name for one process's output lines (sent through ``Bus.emit``)."""
    return f"process.output.{process_id}"
