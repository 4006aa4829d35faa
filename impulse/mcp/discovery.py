"""Tool discovery - a searchable catalog of MCP tools kept out of the prompt until needed."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, FrozenSet, List, Optional

from impulse.mcp.catalog import KNOWN_TOOLS
from impulse.mcp.manager import MCPManager
from impulse.mcp.schema import MCPTool, ToolSearchResult

MIN_SCORE = 0.1
COMPACT_DESCRIPTION_CHARS = 60


def match_score(text: str, query: str) -> float:
    """
    Case-insensitive relevance of ``text`` to ``query``.

    1.0 for an exact match, 0.9 when the text contains the whole query,
    otherwise 0.8 scaled by the fraction of query words found in the text
    (words shorter than two characters never count as found).
    """
    text_lower = text.lower()
    query_lower = query.lower().strip()
    if not query_lower:
        return 0.0
    if text_lower == query_lower:
        return 1.0
    if query_lower in text_lower:
        return 0.9

    words = query_lower.split()
    matched = sum(1 for word in words if len(word) >= 2 and word in text_lower)
    return matched / len(words) * 0.8


class MCPDiscovery:
    """
    Catalog of every tool on the connected servers.

    The catalog is built lazily (concurrent callers share one build) and
    rebuilt when the set of connected servers changes or on ``refresh()``.
    Live ``tools/list`` metadata wins over the built-in catalog.
    """

    def __init__(self, manager: MCPManager):
        self._manager = manager
        self._cache: List[MCPTool] = []
        self._built_for: Optional[FrozenSet[str]] = None
        self._build_task: Optional[asyncio.Task] = None

    # ── Cache ─────────────────────────────────────────────────────────────

    def _connected_names(self) -> FrozenSet[str]:
        return frozenset(s.name for s in self._manager.get_connected_servers())

    async def _ensure_cache(self) -> None:
        if (
            self._built_for is not None
            and self._manager.is_initialized
            and self._built_for == self._connected_names()
        ):
            return
        if self._build_task is None:
            self._build_task = asyncio.ensure_future(self._build())
        task = self._build_task
        try:
            await asyncio.shield(task)
        finally:
            if self._build_task is task and task.done():
                self._build_task = None

    async def _build(self) -> None:
        await self._manager.ensure_initialized()
        servers = self._manager.get_connected_servers()
        tools: List[MCPTool] = []
        for server in servers:
            tools.extend(server.tool_defs or KNOWN_TOOLS.get(server.name, []))
        self._cache = tools
        self._built_for = frozenset(s.name for s in servers)

    async def refresh(self) -> None:
        """Drop the catalog and build it again."""
        self._cache = []
        self._built_for = None
        await self._ensure_cache()

    # ── Lookup ────────────────────────────────────────────────────────────

    async def search(self, query: str, limit: int = 5) -> List[ToolSearchResult]:
        """Rank catalog entries against ``query`` by name and description."""
        await self._ensure_cache()
        results: List[ToolSearchResult] = []
        for tool in self._cache:
            name_score = match_score(tool.name, query)
            desc_score = match_score(tool.description, query)
            score = max(name_score, desc_score)
            if score <= MIN_SCORE:
                continue
            if name_score == desc_score:
                matched_on = "both"
            elif name_score > desc_score:
                matched_on = "name"
            else:
                matched_on = "description"
            results.append(ToolSearchResult(tool=tool, score=score, matched_on=matched_on))

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    async def get_server_tools(self, server: str) -> List[MCPTool]:
        await self._ensure_cache()
        return [t for t in self._cache if t.server == server]

    async def get_tool(self, server: str, name: str) -> Optional[MCPTool]:
        await self._ensure_cache()
        return next((t for t in self._cache if t.server == server and t.name == name), None)

    async def get_all_tools(self) -> List[MCPTool]:
        await self._ensure_cache()
        return list(self._cache)

    # ── Prompt building ───────────────────────────────────────────────────

    async def get_compact_tool_list(self) -> str:
        """
        Tool names grouped by server for a system prompt::

            web-search:
              - webSearchPrime: Search the web for current information. Use thi...
        """
        await self._ensure_cache()
        by_server: Dict[str, List[MCPTool]] = {}
        for tool in self._cache:
            by_server.setdefault(tool.server, []).append(tool)

        lines: List[str] = []
        for server, tools in by_server.items():
            lines.append(f"{server}:")
            lines.extend(tool.prompt_line(COMPACT_DESCRIPTION_CHARS) for tool in tools)
        return "\n".join(lines)

    @staticmethod
    def format_tool_details(tool: MCPTool) -> str:
        """Full parameter listing for one tool (on-demand only)."""
        lines = [
            f"Tool: {tool.name}",
            f"Server: {tool.server}",
            f"Description: {tool.description}",
            "",
            "Parameters:",
        ]
        properties: Dict[str, Any] = tool.input_schema.get("properties") or {}
        required = set(tool.input_schema.get("required") or [])
        if not properties:
            lines.append("  (no parameters)")
        for name, prop in properties.items():
            marker = " (required)" if name in required else ""
            lines.append(f"  {name}: {prop.get('type', 'any')}{marker}")
            if prop.get("description"):
                lines.append(f"    {prop['description']}")
            if prop.get("enum"):
                lines.append(f"    Options: {', '.join(str(v) for v in prop['enum'])}")
        return "\n".join(lines)

    @staticmethod
    def generate_example_call(tool: MCPTool) -> str:
        """Example invocation with a placeholder for every required parameter."""
        properties: Dict[str, Any] = tool.input_schema.get("properties") or {}
        required = set(tool.input_schema.get("required") or [])
        args: Dict[str, Any] = {}
        for name, prop in properties.items():
            if name not in required:
                continue
            kind = prop.get("type")
            if prop.get("enum"):
                args[name] = prop["enum"][0]
            elif kind == "string":
                args[name] = f"<{name}>"
            elif kind in ("number", "integer"):
                args[name] = 0
            elif kind == "boolean":
                args[name] = True
            elif kind == "array":
                args[name] = []
            elif kind == "object":
                args[name] = {}
        return f"{tool.name}({json.dumps(args)})"
