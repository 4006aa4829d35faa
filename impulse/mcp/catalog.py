"""Built-in provider configurations and the tool sets they are known to expose."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from impulse.mcp.schema import MCPServerConfig, MCPTool, RuntimeRequirement

ZAI_MCP_BASE = "https://api.z.ai/api/mcp"

DEFAULT_SERVERS: List[MCPServerConfig] = [
    MCPServerConfig(
        name="vision",
        type="stdio",
        command="npx",
        args=["-y", "@z_ai/mcp-server"],
        env={"Z_AI_MODE": "ZAI"},
        runtime=RuntimeRequirement(executable="node", min_version="18.0.0"),
        credential_env="Z_AI_API_KEY",
    ),
    MCPServerConfig(
        name="web-search",
        type="http",
        url=f"{ZAI_MCP_BASE}/web_search_prime/mcp",
        session_affinity=True,
    ),
    MCPServerConfig(
        name="web-reader",
        type="http",
        url=f"{ZAI_MCP_BASE}/web_reader/mcp",
        session_affinity=True,
    ),
    MCPServerConfig(
        name="zread",
        type="http",
        url=f"{ZAI_MCP_BASE}/zread/mcp",
        session_affinity=True,
    ),
    MCPServerConfig(
        name="context7",
        type="http",
        url="https://mcp.context7.com/mcp",
        requires_auth=False,
        session_affinity=True,
    ),
]


def _image_tool(name: str, description: str, **extra: Dict[str, Any]) -> MCPTool:
    properties: Dict[str, Any] = {
        "image": {"type": "string", "description": "Base64 encoded image or URL"},
    }
    properties.update(extra)
    return MCPTool(
        name=name,
        description=description,
        server="vision",
        input_schema={"type": "object", "properties": properties, "required": ["image"]},
    )


KNOWN_TOOLS: Dict[str, List[MCPTool]] = {
    "vision": [
        _image_tool(
            "ui_to_artifact",
            "Convert UI screenshot to code artifact (HTML/CSS/React)",
            format={"type": "string", "enum": ["html", "react", "vue"], "description": "Output format"},
        ),
        _image_tool(
            "extract_text_from_screenshot",
            "Extract text content from a screenshot using OCR",
        ),
        _image_tool(
            "diagnose_error_screenshot",
            "Analyze screenshot of an error message and suggest fixes",
            context={"type": "string", "description": "Additional context about the error"},
        ),
        _image_tool(
            "understand_technical_diagram",
            "Analyze and explain a technical diagram (architecture, flowchart, etc.)",
        ),
        _image_tool(
            "analyze_data_visualization",
            "Analyze charts, graphs, and data visualizations",
            question={"type": "string", "description": "Specific question about the visualization"},
        ),
        MCPTool(
            name="ui_diff_check",
            description="Compare two UI screenshots and identify differences",
            server="vision",
            input_schema={
                "type": "object",
                "properties": {
                    "image1": {"type": "string", "description": "First image (base64 or URL)"},
                    "image2": {"type": "string", "description": "Second image (base64 or URL)"},
                },
                "required": ["image1", "image2"],
            },
        ),
        _image_tool(
            "image_analysis",
            "General image analysis and understanding",
            prompt={"type": "string", "description": "What to analyze or describe"},
        ),
        MCPTool(
            name="video_analysis",
            description="Analyze video content and extract information",
            server="vision",
            input_schema={
                "type": "object",
                "properties": {
                    "video": {"type": "string", "description": "Video URL or path"},
                    "prompt": {"type": "string", "description": "What to analyze in the video"},
                },
                "required": ["video"],
            },
        ),
    ],
    "web-search": [
        MCPTool(
            name="webSearchPrime",
            description=(
                "Search the web for current information. Use this first to discover "
                "GitHub repos, documentation URLs, or to verify information before "
                "using zread or webReader."
            ),
            server="web-search",
            input_schema={
                "type": "object",
                "properties": {
                    "search_query": {"type": "string", "description": "Search query text"},
                    "max_results": {"type": "number", "description": "Maximum number of results (default: 10)"},
                },
                "required": ["search_query"],
            },
        ),
    ],
    "web-reader": [
        MCPTool(
            name="webReader",
            description=(
                "Read and extract content from a web page URL. Only use with URLs "
                "discovered via webSearchPrime."
            ),
            server="web-reader",
            input_schema={
                "type": "object",
                "properties": {
                    "url": {"type": "string", "description": "URL to read"},
                    "extractImages": {"type": "boolean", "description": "Whether to extract images"},
                },
                "required": ["url"],
            },
        ),
    ],
    "zread": [
        MCPTool(
            name="search_doc",
            description="Search documentation across GitHub repositories (owner/repo must exist).",
            server="zread",
            input_schema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query for documentation"},
                    "repo": {"type": "string", "description": "Optional repo in owner/name format"},
                },
                "required": ["query"],
            },
        ),
        MCPTool(
            name="get_repo_structure",
            description="Get the file/directory structure of a GitHub repository (owner/repo).",
            server="zread",
            input_schema={
                "type": "object",
                "properties": {
                    "repo": {"type": "string", "description": "Repository in owner/name format"},
                    "branch": {"type": "string", "description": "Branch name (default: main)"},
                },
                "required": ["repo"],
            },
        ),
        MCPTool(
            name="read_file",
            description="Read a file from a GitHub repository. Find paths with get_repo_structure first.",
            server="zread",
            input_schema={
                "type": "object",
                "properties": {
                    "repo": {"type": "string", "description": "Repository in owner/name format"},
                    "path": {"type": "string", "description": "File path within the repo"},
                    "branch": {"type": "string", "description": "Branch name (default: main)"},
                },
                "required": ["repo", "path"],
            },
        ),
    ],
    "context7": [
        MCPTool(
            name="resolve-library-id",
            description="Find the Context7 library ID for a package/library name. Call this before query-docs.",
            server="context7",
            input_schema={
                "type": "object",
                "properties": {
                    "libraryName": {"type": "string", "description": "Library name, e.g. 'react'"},
                },
                "required": ["libraryName"],
            },
        ),
        MCPTool(
            name="query-docs",
            description="Query documentation for a library using its Context7 library ID",
            server="context7",
            input_schema={
                "type": "object",
                "properties": {
                    "libraryId": {"type": "string", "description": "Context7 library ID (from resolve-library-id)"},
                    "query": {"type": "string", "description": "Question or topic to search for"},
                    "maxTokens": {"type": "number", "description": "Max tokens in response (default: 5000)"},
                },
                "required": ["libraryId", "query"],
            },
        ),
    ],
}


def known_tool_names(server: str) -> List[str]:
    return [tool.name for tool in KNOWN_TOOLS.get(server, [])]


def resolve_server_configs(
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    defaults: Optional[List[MCPServerConfig]] = None,
) -> List[MCPServerConfig]:
    """Apply per-server overrides (from the config file) to the defaults.

    Override keys with a ``None`` value are ignored; unknown server names
    are ignored too since the provider set is fixed.
    """
    overrides = overrides or {}
    resolved = []
    for config in defaults if defaults is not None else DEFAULT_SERVERS:
        override = {k: v for k, v in (overrides.get(config.name) or {}).items() if v is not None}
        resolved.append(config.model_copy(update=override) if override else config)
    return resolved
