"""Expose catalog tools as ordinary registry tools that forward to the MCP manager."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field, create_model

from impulse.mcp.discovery import MCPDiscovery
from impulse.mcp.manager import MCPManager
from impulse.mcp.schema import MCPTool
from impulse.tools.registry import ToolRegistry, ToolResult

logger = logging.getLogger(__name__)

MCP_TOOL_TIMEOUT = 60.0  # seconds

_JSON_TYPES: Dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": List[Any],
    "object": Dict[str, Any],
}


def _model_name(tool: MCPTool) -> str:
    words = re.split(r"[^0-9A-Za-z]+", f"{tool.server} {tool.name}")
    return "".join(w[:1].upper() + w[1:] for w in words if w) + "Input"


def schema_to_model(tool: MCPTool) -> Type[BaseModel]:
    """Build a pydantic model from a tool's JSON input schema."""
    properties: Dict[str, Any] = tool.input_schema.get("properties") or {}
    required = set(tool.input_schema.get("required") or [])

    fields: Dict[str, Tuple[Any, Any]] = {}
    for name, prop in properties.items():
        enum = prop.get("enum")
        if enum and prop.get("type", "string") == "string":
            annotation: Any = Literal[tuple(enum)]
        else:
            annotation = _JSON_TYPES.get(prop.get("type"), Any)

        description = prop.get("description")
        if name in required:
            fields[name] = (annotation, Field(..., description=description))
        else:
            fields[name] = (Optional[annotation], Field(None, description=description))

    return create_model(_model_name(tool), **fields)


def register_mcp_tool(
    registry: ToolRegistry,
    manager: MCPManager,
    tool: MCPTool,
    timeout: float = MCP_TOOL_TIMEOUT,
) -> None:
    server = tool.server

    async def handler(params: BaseModel) -> ToolResult:
        result = await manager.call_tool(server, tool.name, params.model_dump(exclude_none=True))
        return ToolResult(
            success=result.success,
            output=result.output,
            metadata={"server": server, "tool": tool.name},
        )

    registry.define(tool.name, tool.description, schema_to_model(tool), handler, timeout=timeout)


async def register_mcp_tools(
    registry: ToolRegistry,
    manager: MCPManager,
    discovery: MCPDiscovery,
    timeout: float = MCP_TOOL_TIMEOUT,
) -> List[str]:
    """Register every catalog tool; returns the registered names."""
    await manager.ensure_initialized()
    registered: List[str] = []
    for tool in await discovery.get_all_tools():
        try:
            register_mcp_tool(registry, manager, tool, timeout=timeout)
        except Exception:
            logger.exception("Failed to register MCP tool %s", tool.qualified_name)
            continue
        registered.append(tool.name)
    logger.info("Registered %d MCP tools", len(registered))
    return registered
