#!/usr/bin/env python3
"""MCP bridge - exposes a UtcpClient to MCP hosts.

Uses the official FastMCP SDK for standard MCP protocol handling.

Tools:
    register_manual    - Register a manual from a call template
    deregister_manual  - Remove a manual and its tools
    call_tool          - Call a registered tool
    search_tools       - Search tools by tags and description
    list_tools         - List every registered tool

The client is created on first use from ``$UTCP_CONFIG_FILE`` when set.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from utcp.client import UtcpClient

logger = logging.getLogger(__name__)

mcp = FastMCP("utcp-bridge")

_client: Optional[UtcpClient] = None
_client_lock = asyncio.Lock()


async def get_client() -> UtcpClient:
    global _client
    async with _client_lock:
        if _client is None:
            _client = await UtcpClient.create(config=os.environ.get("UTCP_CONFIG_FILE") or None)
        return _client


def _tool_summary(tool) -> Dict[str, Any]:
    return {
        "name": tool.name,
        "description": tool.description,
        "inputs": tool.inputs,
        "tags": tool.tags,
    }


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@mcp.tool()
async def register_manual(manual_call_template: Dict[str, Any]) -> Dict[str, Any]:
    """Register a UTCP manual and return the discovered tools.

    Args:
        manual_call_template: Call template, e.g. {"name": "weather",
            "call_template_type": "http", "url": "https://..."}
    """
    client = await get_client()
    result = await client.register_manual(manual_call_template)
    return {
        "success": result.success,
        "manual_name": result.manual_call_template.name,
        "errors": result.errors,
        "tools": [_tool_summary(t) for t in result.manual.tools],
    }


@mcp.tool()
async def deregister_manual(manual_name: str) -> Dict[str, Any]:
    """Deregister a manual and remove its tools."""
    client = await get_client()
    removed = await client.deregister_manual(manual_name)
    return {"success": removed, "manual_name": manual_name}


@mcp.tool()
async def call_tool(tool_name: str, tool_args: Optional[Dict[str, Any]] = None) -> Any:
    """Call a registered tool by its full name (``manual.tool``)."""
    client = await get_client()
    return await client.call_tool(tool_name, tool_args or {})


@mcp.tool()
async def search_tools(query: str, limit: int = 10, any_of_tags_required: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Search registered tools by tags and description words."""
    client = await get_client()
    tools = await client.search_tools(query, limit=limit, any_of_tags_required=any_of_tags_required)
    return [_tool_summary(t) for t in tools]


@mcp.tool()
async def list_tools() -> List[Dict[str, Any]]:
    """List every registered tool."""
    client = await get_client()
    return [_tool_summary(t) for t in await client.tool_repository.get_tools()]


def main() -> None:
    """Entry point."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
