"""Tests for exposing MCP tools through the registry."""

import json

import httpx
import pytest
from pydantic import ValidationError

from impulse.mcp.bridge import register_mcp_tools, schema_to_model
from impulse.mcp.discovery import MCPDiscovery
from impulse.mcp.manager import MCPManager
from impulse.mcp.schema import MCPServerConfig, MCPTool
from impulse.tools.registry import ToolRegistry
from impulse.validation.config import StaticCredentialSource

DEMO = MCPTool(
    name="demo",
    server="web-search",
    input_schema={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "What to look for"},
            "count": {"type": "integer"},
            "mode": {"type": "string", "enum": ["fast", "slow"]},
            "tags": {"type": "array"},
        },
        "required": ["query"],
    },
)


class TestSchemaToModel:
    """Tests for JSON schema to pydantic conversion."""

    def test_model_name(self):
        assert schema_to_model(DEMO).__name__ == "WebSearchDemoInput"

    def test_required_and_optional_fields(self):
        model = schema_to_model(DEMO)

        instance = model(query="cats")

        assert instance.query == "cats"
        assert instance.count is None
        assert instance.model_dump(exclude_none=True) == {"query": "cats"}
        with pytest.raises(ValidationError):
            model(count=1)

    def test_enum_becomes_literal(self):
        model = schema_to_model(DEMO)

        assert model(query="x", mode="fast").mode == "fast"
        with pytest.raises(ValidationError):
            model(query="x", mode="medium")

    def test_description_carried_into_schema(self):
        schema = schema_to_model(DEMO).model_json_schema()

        assert schema["properties"]["query"]["description"] == "What to look for"

    def test_empty_schema(self):
        model = schema_to_model(MCPTool(name="ping", server="zread"))

        assert model().model_dump() == {}


class TestRegisterMcpTools:
    """Tests for registering and calling bridged tools."""

    @pytest.mark.asyncio
    async def test_registered_tool_forwards_to_server(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            if body["method"] == "tools/call":
                calls.append(body["params"])
                result = {"content": [{"type": "text", "text": "3 results"}]}
            else:
                result = {}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})

        manager = MCPManager(
            StaticCredentialSource("key"),
            servers=[MCPServerConfig(name="web-search", type="http", url="https://mcp.test/ws")],
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        registry = ToolRegistry()

        names = await register_mcp_tools(registry, manager, MCPDiscovery(manager), timeout=5)

        assert names == ["webSearchPrime"]
        tool = registry.get("webSearchPrime")
        assert tool.timeout == 5

        result = await registry.execute("webSearchPrime", {"search_query": "python", "max_results": None})

        assert result.success
        assert result.output == "3 results"
        assert result.metadata == {"server": "web-search", "tool": "webSearchPrime"}
        assert calls == [{"name": "webSearchPrime", "arguments": {"search_query": "python"}}]

    @pytest.mark.asyncio
    async def test_nothing_registered_without_credential(self):
        manager = MCPManager(
            StaticCredentialSource(None),
            servers=[MCPServerConfig(name="web-search", type="http", url="https://mcp.test/ws")],
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
        )
        registry = ToolRegistry()

        assert await register_mcp_tools(registry, manager, MCPDiscovery(manager)) == []
        assert registry.names() == []
        assert manager.waiting_for_credential is True
