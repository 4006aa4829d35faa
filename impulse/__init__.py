"""
Impulse - tool execution core for a terminal coding agent.

Components:
- Event bus: typed publish/subscribe between the core and the UI
- Tool registry: schema-validated tools with a uniform execute contract
- MCP manager and discovery: external tool servers and a searchable catalog
- Subagent orchestrator: bounded, allow-listed delegated conversations
- Human-sync gate: questions and permission prompts answered by the user
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

from impulse.runtime import Runtime

__all__ = [
    "Runtime",
    "__version__",
]
