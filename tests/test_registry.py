"""Tests for the tool registry."""

import asyncio
from typing import List, Optional

import pytest
from pydantic import BaseModel, Field

from impulse.tools.registry import (
    ToolRegistry,
    ToolResult,
    identifying_argument,
    json_schema_for,
    strip_null_values,
)


class EchoInput(BaseModel):
    text: str
    suffix: Optional[str] = None


class NestedInput(BaseModel):
    tags: List[EchoInput] = Field(default_factory=list)


async def echo(params: EchoInput) -> ToolResult:
    return ToolResult(success=True, output=params.text + (params.suffix or ""))


class TestExecute:
    """Tests for ToolRegistry.execute."""

    @pytest.mark.asyncio
    async def test_echo_end_to_end(self):
        registry = ToolRegistry()
        registry.define("echo", "Echo the input", EchoInput, echo)

        result = await registry.execute("echo", {"text": "hi"})

        assert result == ToolResult(success=True, output="hi")

    @pytest.mark.asyncio
    async def test_handler_called_once_and_result_unchanged(self):
        calls = []
        expected = ToolResult(success=True, output="done", metadata={"k": 1})

        async def handler(params):
            calls.append(params)
            return expected

        registry = ToolRegistry()
        registry.define("once", "", EchoInput, handler)

        result = await registry.execute("once", {"text": "x"})

        assert len(calls) == 1
        assert result is expected

    @pytest.mark.asyncio
    async def test_null_optional_field_treated_as_absent(self):
        registry = ToolRegistry()
        registry.define("echo", "", EchoInput, echo)

        result = await registry.execute("echo", {"text": "hi", "suffix": None})

        assert result.success
        assert result.output == "hi"

    @pytest.mark.asyncio
    async def test_unknown_tool_returns_failure(self):
        result = await ToolRegistry().execute("missing", {})

        assert result.success is False
        assert "Tool not found: missing" in result.output

    @pytest.mark.asyncio
    async def test_invalid_input_returns_failure(self):
        registry = ToolRegistry()
        registry.define("echo", "", EchoInput, echo)

        result = await registry.execute("echo", {"suffix": "!"})

        assert result.success is False
        assert result.output.startswith("Invalid parameters")
        assert "text" in result.output

    @pytest.mark.asyncio
    async def test_timeout_returns_failure_promptly(self):
        finished = []

        async def slow(params):
            await asyncio.sleep(5)
            finished.append(True)
            return ToolResult(success=True, output="late")

        registry = ToolRegistry()
        registry.define("slow", "", EchoInput, slow, timeout=0.05)

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await registry.execute("slow", {"text": "x"})
        elapsed = loop.time() - started

        assert result.success is False
        assert result.output == "Tool execution timed out after 50ms"
        assert elapsed < 1.0
        await asyncio.sleep(0.1)
        assert finished == []

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_failure(self):
        async def broken(params):
            raise ValueError("disk on fire")

        registry = ToolRegistry()
        registry.define("broken", "", EchoInput, broken)

        result = await registry.execute("broken", {"text": "x"})

        assert result == ToolResult(success=False, output="disk on fire")

    @pytest.mark.asyncio
    async def test_reregistration_overwrites(self):
        async def second(params):
            return ToolResult(success=True, output="second")

        registry = ToolRegistry()
        registry.define("echo", "", EchoInput, echo)
        registry.define("echo", "", EchoInput, second)

        result = await registry.execute("echo", {"text": "first"})

        assert result.output == "second"
        assert registry.names() == ["echo"]


class TestPermissionCheck:
    """Tests for the permission hook on guarded tools."""

    @pytest.mark.asyncio
    async def test_checker_receives_identifying_pattern(self):
        asked = []

        async def checker(tool_name, permission, patterns, message):
            asked.append((tool_name, permission, patterns, message))

        class PathInput(BaseModel):
            path: str

        async def write(params):
            return ToolResult(success=True, output="written")

        registry = ToolRegistry(permission_checker=checker)
        registry.define("file_write", "", PathInput, write, permission="write")

        result = await registry.execute("file_write", {"path": "src/app.py"})

        assert result.success
        assert asked == [("file_write", "write", ["src/app.py"], "file_write src/app.py")]

    @pytest.mark.asyncio
    async def test_denial_becomes_failure_without_running_handler(self):
        ran = []

        async def deny(tool_name, permission, patterns, message):
            raise PermissionError("Permission denied by user")

        async def handler(params):
            ran.append(True)
            return ToolResult(success=True, output="")

        registry = ToolRegistry(permission_checker=deny)
        registry.define("guarded", "", EchoInput, handler, permission="bash")

        result = await registry.execute("guarded", {"text": "x"})

        assert result == ToolResult(success=False, output="Permission denied by user")
        assert ran == []

    @pytest.mark.asyncio
    async def test_unguarded_tool_skips_checker(self):
        async def deny(*args):
            raise AssertionError("should not be asked")

        registry = ToolRegistry(permission_checker=deny)
        registry.define("echo", "", EchoInput, echo)

        assert (await registry.execute("echo", {"text": "ok"})).success


class TestApiDefinitions:
    """Tests for the completion-API export."""

    def test_definition_shape(self):
        registry = ToolRegistry()
        registry.define("echo", "Echo the input", EchoInput, echo)

        [definition] = registry.get_api_definitions()

        assert definition["type"] == "function"
        assert definition["function"]["name"] == "echo"
        assert definition["function"]["description"] == "Echo the input"
        params = definition["function"]["parameters"]
        assert params["required"] == ["text"]
        assert "title" not in params

    def test_filter_by_name(self):
        registry = ToolRegistry()
        registry.define("a", "", EchoInput, echo)
        registry.define("b", "", EchoInput, echo)

        names = [d["function"]["name"] for d in registry.get_api_definitions(["b", "zzz"])]

        assert names == ["b"]

    def test_nested_refs_are_inlined(self):
        schema = json_schema_for(NestedInput)

        assert "$defs" not in schema
        items = schema["properties"]["tags"]["items"]
        assert items["properties"]["text"]["type"] == "string"


class TestHelpers:
    """Tests for module helpers."""

    def test_strip_null_values_recurses(self):
        value = {"a": None, "b": {"c": None, "d": 1}, "e": [{"f": None}, 2]}

        assert strip_null_values(value) == {"b": {"d": 1}, "e": [{}, 2]}

    def test_identifying_argument_priority_and_truncation(self):
        args = {"query": "q", "path": "a" * 40}

        summary = identifying_argument(args)

        assert summary == "a" * 27 + "..."
        assert len(summary) == 30

    def test_identifying_argument_missing(self):
        assert identifying_argument({"other": "x"}) == ""
