"""
Impulse CLI - MCP diagnostics.

Run `impulse mcp` to check provider connections and `impulse mcp-tools`
to browse the tool catalog. `impulse express` and `impulse permissions`
manage how permission prompts are answered.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from impulse import __version__
from impulse.bus import Bus
from impulse.interaction.permission import PermissionManager
from impulse.mcp.discovery import MCPDiscovery
from impulse.mcp.schema import SERVER_NAMES
from impulse.runtime import Runtime
from impulse.validation.config import Config, ConfigError

console = Console()

ERROR_MAX = 60

STATUS_STYLES = {
    "connected": "[green]●[/green]",
    "failed": "[red]●[/red]",
    "disabled": "[dim]○[/dim]",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=verbose)],
    )


def _load_runtime() -> Runtime:
    try:
        return Runtime.from_config()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _truncate(text: str, limit: int = ERROR_MAX) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


async def _show_status() -> None:
    runtime = _load_runtime()
    try:
        await runtime.mcp.ensure_initialized()
        summary = runtime.mcp.get_connection_summary()

        if summary.waiting_for_credential:
            console.print("[yellow]MCP servers are waiting for an API key.[/yellow]")
            console.print("[dim]Set IMPULSE_API_KEY or add api_key to ~/.impulse/config.yaml[/dim]")
            return

        table = Table(
            title=f"MCP Server Status ({summary.connected}/{summary.total} connected)",
            show_header=True,
            header_style="bold",
        )
        table.add_column("", width=2)
        table.add_column("Server", style="cyan")
        table.add_column("Type")
        table.add_column("Info")

        for server in runtime.mcp.get_all_servers():
            if server.error:
                info = f"[red]{_truncate(server.error)}[/red]"
            elif server.status == "connected":
                info = f"{len(server.tools)} tools"
            else:
                info = server.status
            table.add_row(STATUS_STYLES.get(server.status, "?"), server.name, server.config.type, info)

        console.print(table)
    finally:
        await runtime.aclose()


async def _show_tools(args: Tuple[str, ...]) -> bool:
    runtime = _load_runtime()
    discovery = runtime.discovery
    try:
        if not args:
            tools = await discovery.get_all_tools()
            if not tools:
                console.print("[dim]No MCP tools available (are any servers connected?)[/dim]")
                return True
            console.print("[bold]MCP Tools Available:[/bold]\n")
            console.print(await discovery.get_compact_tool_list())
            console.print()
            console.print("[dim]impulse mcp-tools search <query>    Search for tools[/dim]")
            console.print("[dim]impulse mcp-tools <server>          List tools for server[/dim]")
            console.print("[dim]impulse mcp-tools <server> <tool>   Show tool details[/dim]")
            return True

        if args[0] == "search":
            query = " ".join(args[1:])
            if not query:
                console.print("[red]Usage: impulse mcp-tools search <query>[/red]")
                return False
            results = await discovery.search(query, 10)
            if not results:
                console.print(f'[dim]No tools found matching "{query}"[/dim]')
                return True
            table = Table(title=f'Tools matching "{query}"', show_header=True, header_style="bold")
            table.add_column("Score", justify="right")
            table.add_column("Tool", style="cyan")
            table.add_column("Description")
            for result in results:
                table.add_row(
                    f"{round(result.score * 100)}%",
                    result.tool.qualified_name,
                    _truncate(result.tool.description, 80),
                )
            console.print(table)
            return True

        server = args[0]
        if server not in SERVER_NAMES:
            console.print(f"[red]Unknown server '{server}'. Valid: {', '.join(SERVER_NAMES)}[/red]")
            return False

        if len(args) > 1:
            tool = await discovery.get_tool(server, args[1])
            if tool is None:
                names = ", ".join(t.name for t in await discovery.get_server_tools(server))
                console.print(f"[red]Tool '{args[1]}' not found in {server}[/red]")
                console.print(f"[dim]Available: {names or '(none)'}[/dim]")
                return False
            body = MCPDiscovery.format_tool_details(tool)
            example = MCPDiscovery.generate_example_call(tool)
            console.print(Panel(f"{body}\n\nExample:\n  {example}", title=tool.qualified_name, border_style="blue"))
            return True

        tools = await discovery.get_server_tools(server)
        if not tools:
            console.print(f"[dim]No tools available for {server}[/dim]")
            return True
        table = Table(title=f"Tools for {server}", show_header=True, header_style="bold")
        table.add_column("Tool", style="cyan")
        table.add_column("Description")
        for tool in tools:
            table.add_row(tool.name, tool.description)
        console.print(table)
        return True
    finally:
        await runtime.aclose()


@click.group()
@click.version_option(__version__, prog_name="Impulse")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Impulse - tool execution core diagnostics."""
    _configure_logging(verbose)


@cli.command()
def mcp() -> None:
    """Show MCP server status."""
    asyncio.run(_show_status())


@cli.command("mcp-tools")
@click.argument("args", nargs=-1)
def mcp_tools(args: Tuple[str, ...]) -> None:
    """
    Browse MCP tools.

    \b
    Examples:
        impulse mcp-tools                       # Compact list of every tool
        impulse mcp-tools search "search web"   # Ranked search
        impulse mcp-tools zread                 # Tools on one server
        impulse mcp-tools zread read_file       # Details and an example call
    """
    if not asyncio.run(_show_tools(args)):
        sys.exit(1)


@cli.command("api-key")
@click.argument("key")
@click.option("--local", is_flag=True, help="Store in .impulse/config.yaml instead of the global config")
def api_key(key: str, local: bool) -> None:
    """Store the provider API key."""
    try:
        config = Config.load()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    config.set_api_key(key, global_=not local)
    config.save()
    console.print("[green]API key saved[/green]")


@cli.command()
@click.argument("state", type=click.Choice(["on", "off"]))
@click.option("--global", "global_", is_flag=True, help="Store in ~/.impulse/config.yaml instead of the project config")
def express(state: str, global_: bool) -> None:
    """Turn express mode (auto-approve permission prompts) on or off."""
    try:
        config = Config.load()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    config.set_express(state == "on", global_=global_)
    config.save()
    console.print(f"[green]Express mode {state}[/green]")


@cli.command()
@click.option("--clear", is_flag=True, help="Forget every 'always' approval for this project")
def permissions(clear: bool) -> None:
    """List or clear the project's saved permission approvals."""
    manager = PermissionManager(Bus(), project_root=Path.cwd())
    if clear:
        manager.clear_project_approvals()
        console.print("[green]Project approvals cleared[/green]")
        return

    approvals = manager.get_project_permissions()
    if not approvals:
        console.print("[dim]No saved approvals for this project[/dim]")
        return
    table = Table(title="Project Approvals", show_header=True, header_style="bold")
    table.add_column("Permission", style="cyan")
    table.add_column("Patterns")
    for permission, patterns in approvals.items():
        table.add_row(permission, ", ".join(patterns))
    console.print(table)


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
