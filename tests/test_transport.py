"""Tests for MCP transports and JSON-RPC body parsing."""

import json
import sys
import textwrap

import httpx
import pytest

from impulse.mcp.transport import (
    SESSION_HEADER,
    HTTPTransport,
    MCPHTTPError,
    MCPProtocolError,
    MCPRPCError,
    MCPTimeoutError,
    MCPTransportError,
    StdioTransport,
    check_runtime,
    parse_rpc_body,
    parse_version,
    unwrap_envelope,
)


class TestParseRpcBody:
    """Tests for JSON vs event-stream body handling."""

    def test_event_stream_matches_plain_json(self):
        sse = 'id:1\nevent:message\ndata:{"jsonrpc":"2.0","id":1,"result":{}}'
        plain = '{"jsonrpc":"2.0","id":1,"result":{}}'

        assert parse_rpc_body(sse) == parse_rpc_body(plain)
        assert parse_rpc_body(sse) == {"jsonrpc": "2.0", "id": 1, "result": {}}

    def test_content_type_wins_over_sniffing(self):
        body = 'data: {"jsonrpc":"2.0","id":1,"result":{"ok":true}}\n\n'

        assert parse_rpc_body(body, "text/event-stream; charset=utf-8")["result"] == {"ok": True}

    def test_multiline_data_and_last_result_event(self):
        body = (
            "event: message\n"
            'data: {"jsonrpc":"2.0","method":"notifications/progress"}\n'
            "\n"
            "event: message\n"
            'data: {"jsonrpc":"2.0","id":1,\n'
            'data: "result":{"n":2}}\n'
            "\n"
        )

        assert parse_rpc_body(body)["result"] == {"n": 2}

    def test_batch_json_takes_first_object(self):
        body = '[{"jsonrpc":"2.0","id":1,"result":{"a":1}}]'

        assert parse_rpc_body(body)["result"] == {"a": 1}

    @pytest.mark.parametrize("body", ["", "   ", "event: ping\n\n", "{not json"])
    def test_unparseable_bodies(self, body):
        with pytest.raises(MCPProtocolError):
            parse_rpc_body(body)


class TestUnwrapEnvelope:
    """Tests for result/error extraction."""

    def test_result(self):
        assert unwrap_envelope({"jsonrpc": "2.0", "id": 1, "result": {"x": 1}}) == {"x": 1}

    def test_error(self):
        with pytest.raises(MCPRPCError) as exc_info:
            unwrap_envelope({"error": {"code": -32601, "message": "Method not found"}})

        assert exc_info.value.code == -32601
        assert str(exc_info.value) == "MCP error -32601: Method not found"

    def test_missing_result(self):
        with pytest.raises(MCPProtocolError):
            unwrap_envelope({"jsonrpc": "2.0", "id": 1})


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHTTPTransport:
    """Tests for HTTPTransport against httpx.MockTransport."""

    @pytest.mark.asyncio
    async def test_sends_headers_and_captures_session(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": 1, "result": {}},
                headers={SESSION_HEADER: "sess-2"},
            )

        async with _client(handler) as client:
            transport = HTTPTransport("https://mcp.test/mcp", client, api_key="key", session_id="sess-1")
            envelope = await transport.send("tools/list", {}, timeout=1.0)

        assert envelope["result"] == {}
        assert transport.session_id == "sess-2"
        request = seen[0]
        assert request.headers["Authorization"] == "Bearer key"
        assert request.headers[SESSION_HEADER] == "sess-1"
        assert "text/event-stream" in request.headers["Accept"]
        assert json.loads(request.content) == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/list",
            "params": {},
        }

    @pytest.mark.asyncio
    async def test_event_stream_response(self):
        def handler(request):
            return httpx.Response(
                200,
                text='id:1\nevent:message\ndata:{"jsonrpc":"2.0","id":1,"result":{"tools":[]}}\n\n',
                headers={"content-type": "text/event-stream"},
            )

        async with _client(handler) as client:
            envelope = await HTTPTransport("https://mcp.test/mcp", client).send("tools/list", {}, 1.0)

        assert envelope["result"] == {"tools": []}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, fragment, auth",
        [
            (401, "Authentication failed (401)", True),
            (403, "Authentication failed (403)", True),
            (404, "https://mcp.test/mcp", False),
            (502, "Server error (502)", False),
            (418, "Unexpected HTTP status 418", False),
        ],
    )
    async def test_status_classification(self, status, fragment, auth):
        async with _client(lambda request: httpx.Response(status, text="nope")) as client:
            with pytest.raises(MCPHTTPError) as exc_info:
                await HTTPTransport("https://mcp.test/mcp", client).send("tools/list", {}, 1.0)

        assert exc_info.value.status == status
        assert fragment in str(exc_info.value)
        assert exc_info.value.is_auth_error is auth

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(MCPTimeoutError, match="Connection timeout"):
                await HTTPTransport("https://mcp.test/mcp", client).send("tools/list", {}, 0.5)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(MCPTransportError, match="Connection failed"):
                await HTTPTransport("https://mcp.test/mcp", client).send("tools/list", {}, 0.5)


def _script(tmp_path, body: str) -> str:
    path = tmp_path / "server.py"
    path.write_text(textwrap.dedent(body))
    return str(path)


class TestStdioTransport:
    """Tests for StdioTransport with small Python scripts."""

    @pytest.mark.asyncio
    async def test_round_trip_uses_last_line(self, tmp_path):
        script = _script(
            tmp_path,
            """
            import json, os, sys
            request = json.loads(sys.stdin.readline())
            print("starting up")
            print(json.dumps({
                "jsonrpc": "2.0",
                "id": request["id"],
                "result": {"method": request["method"], "token": os.environ.get("TOKEN")},
            }))
            """,
        )

        transport = StdioTransport(sys.executable, [script], {"TOKEN": "secret"})
        envelope = await transport.send("tools/call", {"name": "x"}, timeout=10)

        assert envelope["result"] == {"method": "tools/call", "token": "secret"}

    @pytest.mark.asyncio
    async def test_nonzero_exit_uses_stderr(self, tmp_path):
        script = _script(
            tmp_path,
            """
            import sys
            sys.stderr.write("bad credentials")
            sys.exit(3)
            """,
        )

        with pytest.raises(MCPTransportError, match="bad credentials"):
            await StdioTransport(sys.executable, [script]).send("tools/list", {}, timeout=10)

    @pytest.mark.asyncio
    async def test_empty_output(self, tmp_path):
        script = _script(tmp_path, "import sys\nsys.stdin.read()\n")

        with pytest.raises(MCPTransportError, match="empty response"):
            await StdioTransport(sys.executable, [script]).send("tools/list", {}, timeout=10)

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        script = _script(tmp_path, "import time\ntime.sleep(30)\n")

        with pytest.raises(MCPTimeoutError):
            await StdioTransport(sys.executable, [script]).send("tools/list", {}, timeout=0.5)

    def test_resolve_missing_executable(self):
        with pytest.raises(MCPTransportError, match="not found in PATH"):
            StdioTransport("definitely-not-a-real-binary-xyz").resolve_executable()


class TestRuntimeCheck:
    """Tests for runtime version checks."""

    def test_parse_version(self):
        assert parse_version("v20.11.1") == (20, 11, 1)
        assert parse_version("Python 3.12") == (3, 12)

    @pytest.mark.asyncio
    async def test_current_python_satisfies_low_minimum(self):
        await check_runtime(sys.executable, "3.0", ["--version"], timeout=10)

    @pytest.mark.asyncio
    async def test_version_too_old(self):
        with pytest.raises(MCPTransportError):
            await check_runtime(sys.executable, "99.0.0", ["--version"], timeout=10)

    @pytest.mark.asyncio
    async def test_missing_runtime(self):
        with pytest.raises(MCPTransportError, match="not found in PATH"):
            await check_runtime("definitely-not-a-real-binary-xyz", "1.0", ["--version"], timeout=1)
