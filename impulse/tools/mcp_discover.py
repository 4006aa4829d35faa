"""
The ``mcp_discover`` tool.

Lets the model find MCP tools on demand instead of carrying every schema
in its context: ``search`` by keyword, ``details`` for one tool, ``list``
for a server (or a per-server count when no server is given).
"""

from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

from impulse.mcp.discovery import MCPDiscovery
from impulse.mcp.schema import SERVER_NAMES
from impulse.tools.registry import Tool, ToolRegistry, ToolResult

DESCRIPTION = "Discover MCP tools. Use search, list, or details."

SEARCH_LIMIT = 10


class MCPDiscoverInput(BaseModel):
    action: Literal["search", "details", "list"] = Field(
        ...,
        description="'search' to find tools, 'details' for tool info, 'list' for all tools on a server",
    )
    query: Optional[str] = Field(None, description="Search query (for 'search')")
    server: Optional[str] = Field(
        None,
        description="Server name (for 'details' or 'list'): " + ", ".join(SERVER_NAMES),
    )
    tool: Optional[str] = Field(None, description="Tool name (for 'details')")


def _unknown_server(server: str) -> ToolResult:
    return ToolResult(
        success=False,
        output=f"Error: Unknown server '{server}'. Valid: {', '.join(SERVER_NAMES)}",
    )


async def _search(discovery: MCPDiscovery, query: Optional[str]) -> ToolResult:
    if not query:
        return ToolResult(success=False, output="Error: 'query' is required for search action")

    results = await discovery.search(query, SEARCH_LIMIT)
    if not results:
        return ToolResult(success=True, output=f'No tools found matching "{query}"')

    lines = [f'Found {len(results)} tools matching "{query}":', ""]
    for result in results:
        lines.append(f"[{round(result.score * 100)}%] {result.tool.qualified_name}")
        lines.append(f"     {result.tool.description}")
        lines.append("")
    return ToolResult(success=True, output="\n".join(lines).rstrip())


async def _details(discovery: MCPDiscovery, server: Optional[str], tool: Optional[str]) -> ToolResult:
    if not server or not tool:
        return ToolResult(success=False, output="Error: 'server' and 'tool' are required for details action")
    if server not in SERVER_NAMES:
        return _unknown_server(server)

    info = await discovery.get_tool(server, tool)
    if info is None:
        names = ", ".join(t.name for t in await discovery.get_server_tools(server))
        return ToolResult(
            success=False,
            output=f"Error: Tool '{tool}' not found in {server}\nAvailable: {names or '(none)'}",
        )

    details = MCPDiscovery.format_tool_details(info)
    example = MCPDiscovery.generate_example_call(info)
    return ToolResult(success=True, output=f"{details}\n\nExample:\n  {example}")


async def _list(discovery: MCPDiscovery, server: Optional[str]) -> ToolResult:
    if not server:
        counts: Dict[str, int] = {}
        for t in await discovery.get_all_tools():
            counts[t.server] = counts.get(t.server, 0) + 1
        if not counts:
            return ToolResult(success=True, output="No MCP servers are connected")
        lines = ["MCP Servers Available:", ""]
        lines.extend(f"  {name:<14} {count} tools" for name, count in counts.items())
        return ToolResult(success=True, output="\n".join(lines))

    if server not in SERVER_NAMES:
        return _unknown_server(server)

    tools = await discovery.get_server_tools(server)
    if not tools:
        return ToolResult(success=True, output=f"No tools available for {server}")

    lines = [f"Tools for {server}:", ""]
    for t in tools:
        lines.append(f"  {t.name}")
        lines.append(f"    {t.description}")
    return ToolResult(success=True, output="\n".join(lines))


def register_mcp_discover_tool(registry: ToolRegistry, discovery: MCPDiscovery) -> Tool:
    async def handler(params: MCPDiscoverInput) -> ToolResult:
        if params.action == "search":
            return await _search(discovery, params.query)
        if params.action == "details":
            return await _details(discovery, params.server, params.tool)
        return await _list(discovery, params.server)

    return registry.define("mcp_discover", DESCRIPTION, MCPDiscoverInput, handler)
