"""Call template for Model Context Protocol servers."""

from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from utcp.data.auth import OAuth2Auth
from utcp.data.call_template import CallTemplate


class McpStdioServer(BaseModel):
    """A server spawned as a subprocess speaking MCP over stdin/stdout."""

    transport: Literal["stdio"] = "stdio"
    command: str
    args: List[str] = Field(default_factory=list)
    cwd: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)


class McpHttpServer(BaseModel):
    """A server reached over streamable HTTP."""

    transport: Literal["http"] = "http"
    url: str
    headers: Optional[Dict[str, str]] = None
    timeout: float = 30.0
    sse_read_timeout: float = 300.0
    terminate_on_close: bool = True


McpServerConfig = Annotated[Union[McpStdioServer, McpHttpServer], Field(discriminator="transport")]


class McpConfig(BaseModel):
    mcpServers: Dict[str, McpServerConfig] = Field(default_factory=dict)


class McpCallTemplate(CallTemplate):
    """
    One or more MCP servers grouped as a manual.

    Discovered tools are named ``<server>.<tool>``; each carries a copy of
    this template holding only its own server.
    """

    call_template_type: Literal["mcp"] = "mcp"
    config: McpConfig = Field(default_factory=McpConfig)
    auth: Optional[OAuth2Auth] = None
