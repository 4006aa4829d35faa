"""MCP manager - lazy provider start-up, health checks and tool calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from impulse.bus import Bus, McpEvents
from impulse.mcp.catalog import DEFAULT_SERVERS, known_tool_names
from impulse.mcp.schema import (
    CallToolResult,
    ConnectionSummary,
    MCPCallResult,
    MCPServer,
    MCPServerConfig,
    MCPTool,
    flatten_content,
)
from impulse.mcp.transport import (
    HTTPTransport,
    MCPError,
    MCPHTTPError,
    MCPRPCError,
    MCPTimeoutError,
    MCPTransportError,
    StdioTransport,
    check_runtime,
    unwrap_envelope,
)
from impulse.validation.config import CredentialSource

logger = logging.getLogger(__name__)

HEALTH_CHECK_TIMEOUT = 5.0  # seconds
CALL_TIMEOUT = 60.0  # seconds

SESSION_EXPIRY_PHRASES = (
    "session expired",
    "session not found",
    "invalid session",
    "unknown session",
    "session terminated",
    "no valid session",
)


class MCPManager:
    """
    Owns every configured MCP server for the life of the process.

    Initialisation is lazy: the first ``ensure_initialized()`` starts it and
    concurrent callers await the same task. Without an API key nothing is
    started and ``waiting_for_credential`` is set; the next caller retries.
    A credential source that raises is treated the same way, with the reason
    kept in ``init_error``.

    ``call_tool`` always returns an ``MCPCallResult``; provider failures are
    reported in it rather than raised.
    """

    def __init__(
        self,
        credentials: CredentialSource,
        bus: Optional[Bus] = None,
        servers: Optional[List[MCPServerConfig]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        health_check_timeout: float = HEALTH_CHECK_TIMEOUT,
        call_timeout: float = CALL_TIMEOUT,
    ):
        self._credentials = credentials
        self._bus = bus
        self._configs = list(servers if servers is not None else DEFAULT_SERVERS)
        self._http_client = http_client
        self._owns_client = http_client is None
        self.health_check_timeout = health_check_timeout
        self.call_timeout = call_timeout

        self._servers: Dict[str, MCPServer] = {}
        self._initialized = False
        self._init_task: Optional[asyncio.Task] = None
        self.waiting_for_credential = False
        self.init_error: Optional[str] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def ensure_initialized(self) -> None:
        """Start the servers once; concurrent callers share the same task."""
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        await asyncio.shield(self._init_task)

    async def _initialize(self) -> None:
        try:
            api_key = self._credentials.load().api_key
        except Exception as exc:
            logger.exception("MCP manager: could not load credentials")
            self.init_error = str(exc) or exc.__class__.__name__
            self._init_task = None  # the next caller retries
            return

        self.init_error = None
        if not api_key:
            logger.info("MCP manager: no API key configured, waiting for credential")
            self.waiting_for_credential = True
            self._init_task = None  # the next caller retries
            return

        self.waiting_for_credential = False
        await asyncio.gather(*(self._initialize_server(config, api_key) for config in self._configs))
        self._initialized = True
        connected = len(self.get_connected_servers())
        logger.info("MCP manager: %d/%d servers connected", connected, len(self._servers))

    async def _initialize_server(self, config: MCPServerConfig, api_key: str) -> None:
        server = MCPServer(config=config, tools=known_tool_names(config.name))
        self._servers[config.name] = server

        if not config.enabled:
            self._set_status(server, "disabled")
            return

        try:
            if config.type == "http":
                await self._initialize_http_server(server, api_key)
            else:
                await self._initialize_stdio_server(server)
        except MCPError as exc:
            logger.warning("MCP manager: failed to initialize %s: %s", config.name, exc)
            self._set_status(server, "failed", str(exc))
            return
        except Exception as exc:
            logger.exception("MCP manager: unexpected error initializing %s", config.name)
            self._set_status(server, "failed", str(exc) or exc.__class__.__name__)
            return
        self._set_status(server, "connected")

    async def _initialize_http_server(self, server: MCPServer, api_key: str) -> None:
        if not server.config.url:
            raise MCPTransportError("HTTP server requires a URL")
        transport = self._http_transport(server, api_key)
        envelope = await transport.send("tools/list", {}, timeout=self.health_check_timeout)
        server.session_id = transport.session_id

        # Any well-formed envelope proves the endpoint speaks JSON-RPC.
        try:
            result = unwrap_envelope(envelope)
        except MCPRPCError as exc:
            logger.debug("tools/list on %s returned an RPC error: %s", server.name, exc)
            return
        self._record_tools(server, result)

    async def _initialize_stdio_server(self, server: MCPServer) -> None:
        config = server.config
        if not config.command:
            raise MCPTransportError("stdio server requires a command")
        StdioTransport(config.command).resolve_executable()
        if config.runtime is not None:
            await check_runtime(
                config.runtime.executable,
                config.runtime.min_version,
                config.runtime.version_args,
                timeout=self.health_check_timeout,
            )

    def _record_tools(self, server: MCPServer, result: Dict[str, Any]) -> None:
        listed = result.get("tools")
        if not isinstance(listed, list) or not listed:
            return
        defs: List[MCPTool] = []
        for raw in listed:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            defs.append(
                MCPTool(
                    name=raw["name"],
                    description=raw.get("description") or "",
                    server=server.name,
                    input_schema=raw.get("inputSchema") or {"type": "object", "properties": {}},
                )
            )
        if defs:
            server.tool_defs = defs
            server.tools = [tool.name for tool in defs]

    def _set_status(self, server: MCPServer, status: str, error: Optional[str] = None) -> None:
        server.status = status
        server.error = error
        if self._bus is not None:
            payload: Dict[str, Any] = {"server": server.name, "status": status}
            if error:
                payload["error"] = error
            self._bus.publish(McpEvents.StatusChanged, payload)

    async def aclose(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ── Queries ───────────────────────────────────────────────────────────

    def get_server(self, name: str) -> Optional[MCPServer]:
        return self._servers.get(name)

    def get_all_servers(self) -> List[MCPServer]:
        return list(self._servers.values())

    def get_connected_servers(self) -> List[MCPServer]:
        return [s for s in self._servers.values() if s.status == "connected"]

    def find_tool_server(self, tool_name: str) -> Optional[str]:
        """Name of the server whose known tools include ``tool_name``."""
        for server in self._servers.values():
            if tool_name in server.tools:
                return server.name
        return None

    def get_connection_summary(self) -> ConnectionSummary:
        """
        Counts for a status display.

        Polling this is enough to start the servers: if initialisation has
        not begun and an event loop is running, it is scheduled here.
        """
        if not self._initialized and self._init_task is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._init_task = loop.create_task(self._initialize())

        servers = self.get_all_servers()
        if not servers:
            return ConnectionSummary(
                total=len(self._configs),
                connected=0,
                failed=0,
                waiting_for_credential=self.waiting_for_credential,
            )
        return ConnectionSummary(
            total=len(servers),
            connected=sum(1 for s in servers if s.status == "connected"),
            failed=sum(1 for s in servers if s.status == "failed"),
            waiting_for_credential=self.waiting_for_credential,
        )

    # ── Tool calls ────────────────────────────────────────────────────────

    async def call_tool(self, server_name: str, tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> MCPCallResult:
        await self.ensure_initialized()
        arguments = arguments or {}

        server = self._servers.get(server_name)
        if server is None:
            if self.waiting_for_credential:
                return MCPCallResult(
                    success=False,
                    output="MCP servers are not available: no API key configured",
                )
            if self.init_error is not None:
                return MCPCallResult(
                    success=False,
                    output=f"MCP servers are not available: {self.init_error}",
                )
            return MCPCallResult(success=False, output=f"Unknown MCP server: {server_name}")
        if server.status != "connected":
            reason = f": {server.error}" if server.error else ""
            return MCPCallResult(success=False, output=f"MCP server '{server_name}' is {server.status}{reason}")

        try:
            if server.config.type == "http":
                result = await self._call_http(server, tool_name, arguments)
            else:
                result = await self._call_stdio(server, tool_name, arguments)
        except MCPRPCError as exc:
            return MCPCallResult(success=False, output=str(exc))
        except MCPTimeoutError as exc:
            return MCPCallResult(success=False, output=f"{tool_name} timed out: {exc}")
        except MCPError as exc:
            if self._is_connection_loss(server, exc):
                self._set_status(server, "failed", str(exc))
            return MCPCallResult(success=False, output=str(exc))

        return self._normalize(result)

    async def _call_http(self, server: MCPServer, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await self._post_call(server, tool_name, arguments)
        except MCPError as exc:
            if not self._is_session_retryable(server, exc):
                raise
            logger.info("MCP %s: session rejected (%s), refreshing once", server.name, exc)

        await self._refresh_session(server)
        return await self._post_call(server, tool_name, arguments)

    async def _post_call(self, server: MCPServer, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        transport = self._http_transport(server, self._credentials.load().api_key)
        try:
            envelope = await transport.send(
                "tools/call",
                {"name": tool_name, "arguments": arguments},
                timeout=self.call_timeout,
            )
        finally:
            # The server may rotate the session on any response, errors included.
            server.session_id = transport.session_id
        return unwrap_envelope(envelope)

    async def _refresh_session(self, server: MCPServer) -> None:
        server.session_id = None
        transport = self._http_transport(server, self._credentials.load().api_key)
        try:
            await transport.send("tools/list", {}, timeout=self.health_check_timeout)
        finally:
            server.session_id = transport.session_id

    async def _call_stdio(self, server: MCPServer, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        config = server.config
        env = dict(config.env)
        api_key = self._credentials.load().api_key
        if config.credential_env and api_key:
            env[config.credential_env] = api_key
        transport = StdioTransport(config.command or "", config.args, env)
        envelope = await transport.send(
            "tools/call",
            {"name": tool_name, "arguments": arguments},
            timeout=self.call_timeout,
        )
        return unwrap_envelope(envelope)

    def _http_transport(self, server: MCPServer, api_key: Optional[str]) -> HTTPTransport:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return HTTPTransport(
            url=server.config.url or "",
            client=self._http_client,
            api_key=api_key if server.config.requires_auth else None,
            session_id=server.session_id,
        )

    @staticmethod
    def _is_session_retryable(server: MCPServer, exc: MCPError) -> bool:
        if not server.config.session_affinity:
            return False
        if isinstance(exc, MCPHTTPError) and exc.is_auth_error:
            return True
        message = str(exc).lower()
        return any(phrase in message for phrase in SESSION_EXPIRY_PHRASES)

    @staticmethod
    def _is_connection_loss(server: MCPServer, exc: MCPError) -> bool:
        if isinstance(exc, MCPHTTPError):
            return exc.is_auth_error
        # A stdio tool exiting non-zero says nothing about the next call.
        return server.config.type == "http" and isinstance(exc, MCPTransportError)

    @staticmethod
    def _normalize(result: Dict[str, Any]) -> MCPCallResult:
        try:
            parsed = CallToolResult.model_validate(result)
        except ValidationError as exc:
            return MCPCallResult(success=False, output=f"Malformed tool result: {exc.error_count()} error(s)")
        output = flatten_content(parsed)
        if parsed.is_error:
            return MCPCallResult(success=False, output=output)
        return MCPCallResult(success=True, output=output)
