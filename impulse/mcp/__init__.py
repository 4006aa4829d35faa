"""
MCP provider layer.

Talks to the external tool servers (stdio subprocesses and HTTP endpoints),
keeps their connection state, and maintains a searchable catalog of their
tools so full schemas only enter the model's context on request.
"""

from impulse.mcp.discovery import MCPDiscovery, match_score
from impulse.mcp.manager import MCPManager
from impulse.mcp.schema import (
    ConnectionSummary,
    MCPCallResult,
    MCPServer,
    MCPServerConfig,
    MCPTool,
    ToolSearchResult,
)
from impulse.mcp.transport import (
    MCPError,
    MCPHTTPError,
    MCPProtocolError,
    MCPRPCError,
    MCPTimeoutError,
    MCPTransportError,
    parse_rpc_body,
)

__all__ = [
    "ConnectionSummary",
    "MCPCallResult",
    "MCPDiscovery",
    "MCPError",
    "MCPHTTPError",
    "MCPManager",
    "MCPProtocolError",
    "MCPRPCError",
    "MCPServer",
    "MCPServerConfig",
    "MCPTimeoutError",
    "MCPTool",
    "MCPTransportError",
    "ToolSearchResult",
    "match_score",
    "parse_rpc_body",
]
