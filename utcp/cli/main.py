"""
utcp CLI - list, search, and call tools from the command line.

Manuals come from a config file: ``--config``, ``$UTCP_CONFIG_FILE``, or the
nearest ``utcp.yaml`` / ``utcp.json`` found walking up from the current
directory.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from utcp import __version__
from utcp.client import ConfigError, UtcpClient, UtcpClientConfig, load_config
from utcp.exceptions import UtcpError
from utcp.plugins import create_default_registry

console = Console()

CONFIG_FILE_NAMES = ("utcp.yaml", "utcp.yml", "utcp.json")


def find_config() -> Optional[Path]:
    """Find the nearest config file by walking up the directory tree."""
    current = Path.cwd()
    while True:
        for name in CONFIG_FILE_NAMES:
            candidate = current / name
            if candidate.exists():
                return candidate
        if current == current.parent:
            return None
        current = current.parent


def _load(config_path: Optional[str]) -> Tuple[UtcpClientConfig, Optional[Path]]:
    path = Path(config_path) if config_path else find_config()
    if path is None:
        return UtcpClientConfig(), None
    return load_config(path), path.resolve().parent


def _run(coro) -> Any:
    """Run a coroutine, turning client errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except (UtcpError, ConfigError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


async def _with_client(ctx: click.Context, action):
    client = await UtcpClient.create(config=ctx.obj["config"], root_dir=ctx.obj["root_dir"])
    try:
        return await action(client)
    finally:
        await client.close()


def _tools_table(tools, title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Tags", style="dim")
    for tool in tools:
        table.add_row(tool.name, tool.description[:80], ", ".join(tool.tags))
    return table


@click.group()
@click.option("--config", "-c", "config_path", envvar="UTCP_CONFIG_FILE", type=click.Path(dir_okay=False), help="Config file")
@click.option("--verbose", is_flag=True, help="Show client logs")
@click.version_option(__version__, prog_name="utcp")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], verbose: bool) -> None:
    """Call tools from HTTP, MCP, file, and shell manuals."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.pass_context
def tools(ctx: click.Context) -> None:
    """List every registered tool."""
    _run_config(ctx)

    async def action(client: UtcpClient):
        return await client.tool_repository.get_tools()

    found = _run(_with_client(ctx, action))
    if not found:
        console.print("[dim]No tools registered[/dim]")
        return
    console.print(_tools_table(found, f"{len(found)} tools"))


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", default=10, show_default=True, help="Maximum results (0 = all)")
@click.option("--tag", "tags", multiple=True, help="Require one of these tags")
@click.pass_context
def search(ctx: click.Context, query: str, limit: int, tags: tuple) -> None:
    """Search tools by tags and description."""
    _run_config(ctx)

    async def action(client: UtcpClient):
        return await client.search_tools(query, limit=limit, any_of_tags_required=list(tags) or None)

    found = _run(_with_client(ctx, action))
    if not found:
        console.print(f"[dim]No tools match '{query}'[/dim]")
        return
    console.print(_tools_table(found, f"Results for '{query}'"))


@cli.command()
@click.argument("tool_name")
@click.option("--args", "-a", "args_json", default="{}", help="Tool arguments as a JSON object")
@click.pass_context
def call(ctx: click.Context, tool_name: str, args_json: str) -> None:
    """Call TOOL_NAME (``manual.tool``) and print the result."""
    try:
        tool_args = json.loads(args_json)
    except ValueError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--args")
    if not isinstance(tool_args, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")

    _run_config(ctx)

    async def action(client: UtcpClient):
        return await client.call_tool(tool_name, tool_args)

    result = _run(_with_client(ctx, action))
    if isinstance(result, str):
        console.print(result)
    else:
        console.print_json(json.dumps(result, default=str))


@cli.command(name="vars")
@click.argument("manual_name")
@click.pass_context
def variables(ctx: click.Context, manual_name: str) -> None:
    """Show the variables a configured manual needs."""
    config = _run_config(ctx)
    template = next((t for t in config.manual_call_templates if t.name == manual_name), None)
    if template is None:
        console.print(f"[red]Error: no manual named '{manual_name}' in config[/red]")
        sys.exit(1)

    # no registration: only the template itself is inspected
    client = UtcpClient(config, create_default_registry())
    names = _run(client.get_required_variables_for_manual_and_tools(template))
    if not names:
        console.print(f"[dim]'{manual_name}' needs no variables[/dim]")
        return
    for name in names:
        console.print(f"  {name}")


def _run_config(ctx: click.Context) -> UtcpClientConfig:
    """Load the config once per invocation and remember where it came from."""
    try:
        ctx.obj["config"], ctx.obj["root_dir"] = _load(ctx.obj.get("config_path"))
        return ctx.obj["config"]
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def main() -> None:
    """Entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
