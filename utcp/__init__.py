"""
utcp - a universal tool calling client.

Tools from many providers (HTTP/OpenAPI services, MCP servers, local files,
shell workflows) are registered as named manuals and called through one
``UtcpClient.call_tool(name, args)`` surface.
"""

__version__ = "1.0.0"

from utcp.client import UtcpClient, UtcpClientConfig, load_config
from utcp.data import CallTemplate, RegisterManualResult, Tool, UtcpManual
from utcp.exceptions import (
    DiscoveryFormatError,
    DuplicateManualError,
    ManualNotFoundError,
    McpOperationTimeout,
    ProtocolNotFoundError,
    ToolCallError,
    ToolNotFoundError,
    TransportError,
    UtcpError,
    VariableNotFoundError,
)
from utcp.plugins import PluginRegistry, create_default_registry

__all__ = [
    "CallTemplate",
    "DiscoveryFormatError",
    "DuplicateManualError",
    "ManualNotFoundError",
    "McpOperationTimeout",
    "PluginRegistry",
    "ProtocolNotFoundError",
    "RegisterManualResult",
    "Tool",
    "ToolCallError",
    "ToolNotFoundError",
    "TransportError",
    "UtcpClient",
    "UtcpClientConfig",
    "UtcpError",
    "UtcpManual",
    "VariableNotFoundError",
    "create_default_registry",
    "load_config",
]
