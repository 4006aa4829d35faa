"""
Impulse runtime - wires the services together.

Every service is built once here and handed to the ones that need it;
nothing in the package reaches for a module-level singleton.
"""

import logging
from pathlib import Path
from typing import List, Optional

import httpx

from impulse.agent.completion import (
    DEFAULT_API_BASE,
    DEFAULT_SUBAGENT_MODEL,
    CompletionClient,
    HTTPCompletionClient,
)
from impulse.agent.modes import ModeState
from impulse.agent.orchestrator import SubagentOrchestrator
from impulse.bus import Bus
from impulse.interaction.permission import PermissionManager
from impulse.mcp.bridge import register_mcp_tools
from impulse.mcp.catalog import resolve_server_configs
from impulse.mcp.discovery import MCPDiscovery
from impulse.mcp.manager import MCPManager
from impulse.tools.mcp_discover import register_mcp_discover_tool
from impulse.tools.question import create_question_gate, register_question_tool
from impulse.tools.registry import ToolRegistry
from impulse.tools.set_mode import register_set_mode_tool
from impulse.tools.task import register_task_tool
from impulse.validation.config import (
    Config,
    ConfigCredentialSource,
    CredentialSource,
    ImpulseConfig,
)

logger = logging.getLogger(__name__)


class Runtime:
    """
    The assembled tool-execution core.

    Example:
        >>> runtime = Runtime.from_config()
        >>> await runtime.start()
        >>> result = await runtime.registry.execute("mcp_discover", {"action": "list"})
        >>> await runtime.aclose()
    """

    def __init__(
        self,
        config: Optional[ImpulseConfig] = None,
        credentials: Optional[CredentialSource] = None,
        completion_client: Optional[CompletionClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        session_id: str = "default",
        project_root: Optional[Path] = None,
    ):
        self.config = config or ImpulseConfig()
        self.session_id = session_id
        self.credentials = credentials or ConfigCredentialSource()

        self.bus = Bus()
        self.permissions = PermissionManager(
            self.bus,
            timeout=self.config.interaction.permission_timeout,
            express=self.config.interaction.express,
            project_root=project_root,
        )
        self.registry = ToolRegistry(self.permissions.checker(session_id))
        self.question_gate = create_question_gate(self.bus, self.config.interaction.question_timeout)
        self.mode_state = ModeState(self.bus)

        self.mcp = MCPManager(
            self.credentials,
            bus=self.bus,
            servers=self._server_configs(),
            http_client=http_client,
            health_check_timeout=self.config.mcp.health_check_timeout,
            call_timeout=self.config.mcp.call_timeout,
        )
        self.discovery = MCPDiscovery(self.mcp)

        self._owns_completion_client = completion_client is None
        self.completion_client = completion_client or HTTPCompletionClient(
            lambda: self.credentials.load().api_key,
            api_base=self.config.agent.api_base or DEFAULT_API_BASE,
            timeout=self.config.agent.request_timeout,
        )
        self.orchestrator = SubagentOrchestrator(
            self.registry,
            self.completion_client,
            model=self.config.agent.subagent_model or DEFAULT_SUBAGENT_MODEL,
            max_iterations=self.config.agent.max_subagent_iterations,
            mode_state=self.mode_state,
        )

        register_question_tool(self.registry, self.question_gate)
        register_task_tool(self.registry, self.orchestrator)
        register_mcp_discover_tool(self.registry, self.discovery)
        register_set_mode_tool(self.registry, self.mode_state)

        self.mcp_tools: List[str] = []

    @classmethod
    def from_config(cls, config: Optional[Config] = None, **kwargs) -> "Runtime":
        """Build a runtime from the merged global and local config files."""
        config = config or Config.load()
        kwargs.setdefault("credentials", ConfigCredentialSource())
        return cls(config.merged, **kwargs)

    def _server_configs(self):
        overrides = {name: o.model_dump() for name, o in self.config.mcp.servers.items()}
        servers = resolve_server_configs(overrides)
        if not self.config.mcp.enabled:
            servers = [s.model_copy(update={"enabled": False}) for s in servers]
        return servers

    async def start(self) -> List[str]:
        """
        Initialise the MCP servers and register their tools.

        Safe to call again, e.g. once a credential has been configured.
        Returns the names of the registered MCP tools.
        """
        if not self.config.mcp.enabled:
            return []
        self.mcp_tools = await register_mcp_tools(
            self.registry,
            self.mcp,
            self.discovery,
            timeout=self.config.mcp.tool_timeout,
        )
        if self.mcp.waiting_for_credential:
            logger.info("No API key configured; MCP tools will be registered once one is available")
        return self.mcp_tools

    async def aclose(self) -> None:
        await self.mcp.aclose()
        if self._owns_completion_client and isinstance(self.completion_client, HTTPCompletionClient):
            await self.completion_client.aclose()
