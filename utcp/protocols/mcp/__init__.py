"""MCP protocol: tools served by Model Context Protocol servers."""

from utcp.protocols.mcp.call_template import McpCallTemplate, McpConfig, McpHttpServer, McpStdioServer
from utcp.protocols.mcp.protocol import McpCommunicationProtocol, is_recoverable_error, process_tool_result
from utcp.protocols.mcp.session import McpSession

__all__ = [
    "McpCallTemplate",
    "McpCommunicationProtocol",
    "McpConfig",
    "McpHttpServer",
    "McpSession",
    "McpStdioServer",
    "is_recoverable_error",
    "process_tool_result",
]
