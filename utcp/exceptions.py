"""Error hierarchy shared by the client, the registry, and every protocol."""

from __future__ import annotations

from typing import Optional


class UtcpError(Exception):
    """Base class for all client errors."""


class VariableNotFoundError(UtcpError):
    """Raised when a ``${VAR}`` reference cannot be resolved from any source."""

    def __init__(self, variable_name: str):
        self.variable_name = variable_name
        super().__init__(
            f"Variable '{variable_name}' referenced in call template configuration not found. "
            "Please add it to the environment variables or to your UTCP configuration."
        )


class DuplicateManualError(UtcpError):
    """Raised when registering a manual whose name is already taken."""

    def __init__(self, manual_name: str):
        self.manual_name = manual_name
        super().__init__(f"Manual '{manual_name}' already registered. Please use a different name or deregister the existing manual.")


class ProtocolNotFoundError(UtcpError):
    """Raised when no protocol is registered for a call template type."""

    def __init__(self, call_template_type: str):
        self.call_template_type = call_template_type
        super().__init__(f"No registered communication protocol of type '{call_template_type}' found.")


class ToolNotFoundError(UtcpError):
    """Raised when a tool name is not present in the repository."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool not found: {tool_name}")


class ManualNotFoundError(UtcpError):
    """Raised when a tool's owning manual has no stored call template."""

    def __init__(self, manual_name: str):
        self.manual_name = manual_name
        super().__init__(f"Manual call template not found: {manual_name}")


class TransportError(UtcpError):
    """Network, HTTP status, or subprocess failure while talking to a provider."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        self.status_code = status_code
        self.stderr = stderr
        super().__init__(message)


class DiscoveryFormatError(UtcpError):
    """A discovery response is neither a UTCP manual nor an OpenAPI specification."""


class McpOperationTimeout(TransportError):
    """An MCP session operation did not finish within the configured timeout."""


class ToolCallError(UtcpError):
    """The provider ran the tool and reported a failure."""
