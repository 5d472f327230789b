"""MCP communication protocol with cached, self-healing sessions."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar, Union

import anyio
from mcp import ClientSession
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED

from utcp.data.auth import OAuth2Auth
from utcp.data.call_template import CallTemplate
from utcp.data.manual import RegisterManualResult, UtcpManual
from utcp.data.tool import Tool
from utcp.exceptions import McpOperationTimeout, ToolCallError, ToolNotFoundError
from utcp.protocols.base import CommunicationProtocol
from utcp.protocols.http.oauth import OAuth2TokenProvider
from utcp.protocols.mcp.call_template import McpCallTemplate, McpConfig, McpHttpServer, McpStdioServer
from utcp.protocols.mcp.session import McpSession

logger = logging.getLogger(__name__)

T = TypeVar("T")
McpServer = Union[McpStdioServer, McpHttpServer]

DEFAULT_OPERATION_TIMEOUT = 15.0
DEFAULT_CONNECT_TIMEOUT = 30.0

_RECOVERABLE_TYPES = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
    ConnectionError,
    EOFError,
)
_RECOVERABLE_MARKERS = ("closed", "disconnect", "reset", "econnreset", "timed out", "broken pipe")
_NUMBER_PATTERN = re.compile(r"^-?\d+(\.\d+)?([eE][+-]?\d+)?$")


def is_recoverable_error(exc: BaseException) -> bool:
    """
    True when ``exc`` means the connection is gone and a fresh session may succeed.

    Known transport exception types are checked first; the message text is a
    fallback for errors that SDK versions wrap differently.
    """
    if isinstance(exc, McpOperationTimeout):
        return False
    if isinstance(exc, _RECOVERABLE_TYPES):
        return True
    if isinstance(exc, McpError) and exc.error.code == CONNECTION_CLOSED:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RECOVERABLE_MARKERS)


def parse_text_content(text: str) -> Any:
    """JSON objects/arrays and numbers are decoded; anything else stays text."""
    stripped = text.strip()
    if stripped.startswith(("{", "[")) or _NUMBER_PATTERN.match(stripped):
        try:
            return json.loads(stripped)
        except ValueError:
            pass
    return text


def process_tool_result(result: Any) -> Any:
    """Unwrap an MCP call result into plain Python data."""
    data = result.model_dump() if hasattr(result, "model_dump") else result
    if not isinstance(data, dict):
        return data

    if "structured_output" in data:
        return data["structured_output"]

    content = data.get("content")
    if isinstance(content, list) and content:
        processed = [
            parse_text_content(item["text"])
            if isinstance(item, dict) and isinstance(item.get("text"), str)
            else item
            for item in content
        ]
        return processed[0] if len(processed) == 1 else processed

    if data.get("structuredContent") is not None:
        return data["structuredContent"]
    if "result" in data:
        return data["result"]
    return content if isinstance(content, list) else data


class McpCommunicationProtocol(CommunicationProtocol):
    """
    Talks to MCP servers over stdio or streamable HTTP.

    One session is kept per ``<server>:<transport>`` key and reused across
    discovery and calls. An operation that fails with a connection error gets
    exactly one retry on a freshly built session.

    Parameters
    ----------
    operation_timeout : seconds each list/call operation may take
    connect_timeout : seconds allowed for spawning/connecting and initializing
    """

    def __init__(
        self,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        self.operation_timeout = operation_timeout
        self.connect_timeout = connect_timeout
        self._sessions: Dict[str, McpSession] = {}
        self._session_locks: Dict[str, asyncio.Lock] = {}
        self._oauth = OAuth2TokenProvider()

    @staticmethod
    def _as_mcp_template(template: CallTemplate) -> McpCallTemplate:
        if isinstance(template, McpCallTemplate):
            return template
        return McpCallTemplate.model_validate(template.model_dump())

    @staticmethod
    def session_key(server_name: str, server: McpServer) -> str:
        return f"{server_name}:{server.transport}"

    # ── Session management ────────────────────────────────────────────────

    async def _open_session(self, key: str, server: McpServer, auth: Optional[OAuth2Auth]) -> McpSession:
        headers = None
        if isinstance(server, McpHttpServer):
            headers = dict(server.headers or {})
            if auth is not None:
                headers["Authorization"] = f"Bearer {await self._oauth.get_token(auth)}"

        session = McpSession(key, server, headers=headers)
        await session.start(timeout=self.connect_timeout)
        return session

    async def _get_session(self, server_name: str, server: McpServer, auth: Optional[OAuth2Auth]) -> McpSession:
        key = self.session_key(server_name, server)
        lock = self._session_locks.setdefault(key, asyncio.Lock())
        async with lock:
            session = self._sessions.get(key)
            if session is not None and session.healthy:
                return session
            if session is not None:
                await self._discard_session(key)

            logger.info("Opening MCP session '%s'", key)
            session = await self._open_session(key, server, auth)
            self._sessions[key] = session
            return session

    async def _discard_session(self, key: str) -> None:
        session = self._sessions.pop(key, None)
        if session is not None:
            session.mark_unhealthy()
            await session.close()

    async def _run_operation(self, session: McpSession, operation: Callable[[ClientSession], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(operation(session.client), timeout=self.operation_timeout)
        except asyncio.TimeoutError as exc:
            raise McpOperationTimeout(
                f"MCP operation on '{session.key}' timed out after {self.operation_timeout}s"
            ) from exc

    async def _with_session(
        self,
        server_name: str,
        server: McpServer,
        auth: Optional[OAuth2Auth],
        operation: Callable[[ClientSession], Awaitable[T]],
    ) -> T:
        session = await self._get_session(server_name, server, auth)
        try:
            return await self._run_operation(session, operation)
        except Exception as exc:
            if not is_recoverable_error(exc):
                raise
            logger.warning("MCP session '%s' failed (%s), reconnecting once", session.key, exc)
            await self._discard_session(session.key)

        session = await self._get_session(server_name, server, auth)
        return await self._run_operation(session, operation)

    # ── Discovery ─────────────────────────────────────────────────────────

    @staticmethod
    def _server_template(template: McpCallTemplate, server_name: str) -> McpCallTemplate:
        return template.model_copy(
            update={"config": McpConfig(mcpServers={server_name: template.config.mcpServers[server_name]})},
            deep=True,
        )

    async def register_manual(self, caller, manual_call_template: CallTemplate) -> RegisterManualResult:
        template = self._as_mcp_template(manual_call_template)
        tools: List[Tool] = []
        errors: List[str] = []

        for server_name, server in template.config.mcpServers.items():
            try:
                logger.info("Discovering tools for MCP server '%s'", server_name)
                listed = await self._with_session(server_name, server, template.auth, lambda client: client.list_tools())
            except Exception as exc:
                message = f"Failed to discover tools for server '{server_name}': {exc}"
                logger.error(message)
                errors.append(message)
                continue

            tool_template = self._server_template(template, server_name)
            for mcp_tool in listed.tools:
                tools.append(
                    Tool(
                        name=f"{server_name}.{mcp_tool.name}",
                        description=mcp_tool.description or "",
                        inputs=mcp_tool.inputSchema or {"type": "object", "properties": {}},
                        outputs=getattr(mcp_tool, "outputSchema", None) or {"type": "object", "properties": {}},
                        tool_call_template=tool_template,
                    )
                )
            logger.info("Discovered %d tools from '%s'", len(listed.tools), server_name)

        return RegisterManualResult(
            manual_call_template=template,
            manual=UtcpManual(tools=tools),
            success=not errors or bool(tools),
            errors=errors,
        )

    async def deregister_manual(self, caller, manual_call_template: CallTemplate) -> None:
        template = self._as_mcp_template(manual_call_template)
        for server_name, server in template.config.mcpServers.items():
            await self._discard_session(self.session_key(server_name, server))
        logger.info("Deregistered MCP manual '%s'", template.name)

    # ── Calls ─────────────────────────────────────────────────────────────

    async def _resolve_target(self, tool_name: str, template: McpCallTemplate) -> Tuple[str, str]:
        """Map a tool name to ``(server, local tool name)``."""
        name = tool_name
        if template.name and name.startswith(f"{template.name}."):
            name = name[len(template.name) + 1:]

        servers = template.config.mcpServers
        server_name, _, local_name = name.partition(".")
        if local_name and server_name in servers:
            return server_name, local_name

        # No server prefix: ask each server whether it has the tool
        for server_name, server in servers.items():
            listed = await self._with_session(server_name, server, template.auth, lambda client: client.list_tools())
            if any(t.name == name for t in listed.tools):
                return server_name, name

        raise ToolNotFoundError(tool_name)

    async def call_tool(self, caller, tool_name: str, tool_args: Dict[str, Any], tool_call_template: CallTemplate) -> Any:
        template = self._as_mcp_template(tool_call_template)
        if not template.config.mcpServers:
            raise ValueError(f"No MCP server configuration for tool '{tool_name}'.")

        server_name, local_name = await self._resolve_target(tool_name, template)
        server = template.config.mcpServers[server_name]
        logger.debug("Calling MCP tool '%s' on server '%s'", local_name, server_name)

        result = await self._with_session(
            server_name,
            server,
            template.auth,
            lambda client: client.call_tool(local_name, arguments=tool_args),
        )
        if getattr(result, "isError", False):
            raise ToolCallError(f"MCP tool '{tool_name}' returned an error: {process_tool_result(result)}")
        return process_tool_result(result)

    async def close(self) -> None:
        keys = list(self._sessions)
        await asyncio.gather(*(self._discard_session(key) for key in keys))
        self._session_locks.clear()
        self._oauth.clear()
        logger.info("MCP protocol closed (%d sessions)", len(keys))
