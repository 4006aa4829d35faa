"""Tool registry - schema-validated capabilities with a uniform execute contract."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Type

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

# Argument keys that identify what a call acts on, in priority order.
IDENTIFYING_KEYS = ("path", "filePath", "file", "command", "pattern", "query", "url")


class ToolResult(BaseModel):
    """Outcome of a tool call. ``output`` is always safe to show to the model."""

    success: bool
    output: str
    metadata: Optional[Dict[str, Any]] = None


ToolHandler = Callable[[Any], Awaitable[ToolResult]]

# (tool_name, permission, patterns, message) -> None; raises to deny.
PermissionChecker = Callable[[str, str, List[str], str], Awaitable[None]]


@dataclass(frozen=True)
class Tool:
    """A registered capability."""

    name: str
    description: str
    schema: Type[BaseModel]
    handler: ToolHandler
    timeout: Optional[float] = None  # seconds
    permission: Optional[str] = None

    def api_definition(self) -> Dict[str, Any]:
        """Function-calling definition in the chat-completions shape."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": json_schema_for(self.schema),
            },
        }


def strip_null_values(value: Any) -> Any:
    """Drop ``None`` entries from mappings, recursively.

    Models often send an explicit null for an optional argument they meant
    to omit; after stripping, validation treats the field as absent.
    """
    if isinstance(value, Mapping):
        return {k: strip_null_values(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_null_values(v) for v in value]
    return value


def json_schema_for(schema: Type[BaseModel]) -> Dict[str, Any]:
    """JSON schema for a pydantic model with ``$ref``s inlined and titles removed."""
    raw = schema.model_json_schema()
    definitions = raw.pop("$defs", {})

    def resolve(node: Any) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str) and ref.startswith("#/$defs/"):
                target = copy.deepcopy(definitions[ref.split("/")[-1]])
                extra = {k: v for k, v in node.items() if k != "$ref"}
                target.update(extra)
                return resolve(target)
            return {k: resolve(v) for k, v in node.items() if k != "title"}
        if isinstance(node, list):
            return [resolve(v) for v in node]
        return node

    return resolve(raw)


def format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "Invalid parameters: " + ", ".join(parts)


def identifying_argument(arguments: Mapping[str, Any], max_length: int = 30) -> str:
    """Short display string for the argument a call acts on, or ``""``."""
    for key in IDENTIFYING_KEYS:
        if arguments.get(key):
            text = str(arguments[key])
            if len(text) > max_length:
                return text[: max_length - 3] + "..."
            return text
    return ""


class ToolRegistry:
    """
    Holds every tool the model may call.

    ``execute`` never raises for bad input, unknown tools, handler failures
    or timeouts; all of these come back as ``ToolResult(success=False)``.
    """

    def __init__(self, permission_checker: Optional[PermissionChecker] = None):
        self._tools: Dict[str, Tool] = {}
        self._permission_checker = permission_checker

    def set_permission_checker(self, checker: Optional[PermissionChecker]) -> None:
        self._permission_checker = checker

    # ── Registration ──────────────────────────────────────────────────────

    def define(
        self,
        name: str,
        description: str,
        schema: Type[BaseModel],
        handler: ToolHandler,
        timeout: Optional[float] = None,
        permission: Optional[str] = None,
    ) -> Tool:
        """Register a tool. A later registration under the same name wins."""
        tool = Tool(
            name=name,
            description=description,
            schema=schema,
            handler=handler,
            timeout=timeout,
            permission=permission,
        )
        if name in self._tools:
            logger.debug("Replacing tool registration: %s", name)
        self._tools[name] = tool
        return tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def get_all(self) -> List[Tool]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def get_api_definitions(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """Export tool definitions for a completion request, optionally only ``names``."""
        if names is None:
            return [tool.api_definition() for tool in self._tools.values()]
        allowed = set(names)
        return [tool.api_definition() for tool in self._tools.values() if tool.name in allowed]

    # ── Execution ─────────────────────────────────────────────────────────

    async def execute(self, name: str, raw_input: Any = None) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(success=False, output=f"Tool not found: {name}")

        cleaned = strip_null_values(raw_input if raw_input is not None else {})
        try:
            validated = tool.schema.model_validate(cleaned)
        except ValidationError as exc:
            return ToolResult(success=False, output=format_validation_error(exc))

        try:
            if tool.permission and self._permission_checker is not None:
                await self._request_permission(tool, cleaned)

            if tool.timeout:
                return await asyncio.wait_for(tool.handler(validated), timeout=tool.timeout)
            return await tool.handler(validated)
        except asyncio.TimeoutError:
            if not tool.timeout:
                return ToolResult(success=False, output="Tool execution timed out")
            return ToolResult(
                success=False,
                output=f"Tool execution timed out after {int(tool.timeout * 1000)}ms",
            )
        except Exception as exc:
            logger.debug("Tool %s failed", name, exc_info=True)
            return ToolResult(success=False, output=str(exc) or exc.__class__.__name__)

    async def _request_permission(self, tool: Tool, arguments: Mapping[str, Any]) -> None:
        pattern = identifying_argument(arguments, max_length=200) or "*"
        message = f"{tool.name} {pattern}" if pattern != "*" else tool.name
        await self._permission_checker(tool.name, tool.permission, [pattern], message)
