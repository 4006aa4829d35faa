"""Data models for MCP servers, their tools, and call results."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

ServerName = Literal["vision", "web-search", "web-reader", "zread", "context7"]
SERVER_NAMES = ("vision", "web-search", "web-reader", "zread", "context7")

TransportType = Literal["stdio", "http"]
ConnectionStatus = Literal["connected", "failed", "disabled"]

NO_TEXT_CONTENT = "(tool returned no text content)"


class RuntimeRequirement(BaseModel):
    """A runtime a stdio server needs, e.g. node >= 18 behind ``npx``."""

    executable: str
    min_version: str
    version_args: List[str] = Field(default_factory=lambda: ["--version"])


class MCPServerConfig(BaseModel):
    """Static configuration for one provider."""

    name: ServerName
    type: TransportType
    url: Optional[str] = None  # http
    command: Optional[str] = None  # stdio
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    runtime: Optional[RuntimeRequirement] = None
    requires_auth: bool = True
    session_affinity: bool = False
    credential_env: Optional[str] = None  # stdio: env var that receives the API key
    enabled: bool = True


class MCPTool(BaseModel):
    """A capability exposed by a server, as listed in the discovery catalog."""

    model_config = ConfigDict(populate_by_name=True)

    name: str  # e.g. "webSearchPrime"
    description: str = ""
    server: str  # e.g. "web-search"
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )

    @property
    def qualified_name(self) -> str:
        """Full name as ``server/tool`` (e.g. ``web-search/webSearchPrime``)."""
        return f"{self.server}/{self.name}"

    def prompt_line(self, max_chars: int = 60) -> str:
        """One-line representation for a token-constrained prompt."""
        desc = self.description
        if len(desc) > max_chars:
            desc = desc[: max_chars - 3] + "..."
        return f"  - {self.name}: {desc}"


class MCPServer(BaseModel):
    """Runtime state of one provider. Mutated only by ``MCPManager``."""

    config: MCPServerConfig
    status: ConnectionStatus = "failed"
    error: Optional[str] = None
    session_id: Optional[str] = None  # http only
    tools: List[str] = Field(default_factory=list)
    tool_defs: List[MCPTool] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.config.name


class ToolSearchResult(BaseModel):
    tool: MCPTool
    score: float
    matched_on: Literal["name", "description", "both"]


class ConnectionSummary(BaseModel):
    total: int
    connected: int
    failed: int
    waiting_for_credential: bool = False


class MCPCallResult(BaseModel):
    """Transport-independent result of ``MCPManager.call_tool``."""

    success: bool
    output: str


# ── Tool result content ──────────────────────────────────────────────────


class TextContent(BaseModel):
    type: Literal["text"]
    text: str


class ImageContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["image"]
    data: str = ""
    mime_type: str = Field(default="", alias="mimeType")


class ResourceContent(BaseModel):
    type: Literal["resource"]
    resource: Dict[str, Any] = Field(default_factory=dict)


ContentPart = Annotated[
    Union[TextContent, ImageContent, ResourceContent],
    Field(discriminator="type"),
]

_KNOWN_PART_TYPES = {"text", "image", "resource"}


class CallToolResult(BaseModel):
    """The ``result`` member of a ``tools/call`` response."""

    model_config = ConfigDict(populate_by_name=True)

    content: List[ContentPart] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @field_validator("content", mode="before")
    @classmethod
    def _drop_unknown_parts(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        kept = []
        for part in value:
            if isinstance(part, dict) and part.get("type") in _KNOWN_PART_TYPES:
                kept.append(part)
            else:
                logger.debug("Ignoring unsupported content part: %r", part)
        return kept


def flatten_content(result: CallToolResult) -> str:
    """Newline-joined text parts; non-text parts carry no display text."""
    texts: List[str] = []
    for part in result.content:
        if isinstance(part, TextContent):
            texts.append(part.text)
        elif isinstance(part, (ImageContent, ResourceContent)):
            continue
        else:  # pragma: no cover - the union above is exhaustive
            raise TypeError(f"Unhandled content part: {part!r}")
    return "\n".join(texts) if texts else NO_TEXT_CONTENT
