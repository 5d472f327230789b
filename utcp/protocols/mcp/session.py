"""Long-lived MCP client sessions."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import Dict, Optional, Union

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import get_default_environment, stdio_client
from mcp.client.streamable_http import streamablehttp_client

from utcp.exceptions import TransportError
from utcp.protocols.mcp.call_template import McpHttpServer, McpStdioServer

logger = logging.getLogger(__name__)


class McpSession:
    """
    A connected :class:`mcp.ClientSession` kept open by a background task.

    The transport context managers are entered and exited inside that one
    task, so :meth:`close` can be awaited from anywhere. ``healthy`` turns
    False once the connection ends or the session is marked unusable.
    """

    def __init__(
        self,
        key: str,
        server: Union[McpStdioServer, McpHttpServer],
        headers: Optional[Dict[str, str]] = None,
    ):
        self.key = key
        self.server = server
        self.headers = headers
        self.client: Optional[ClientSession] = None
        self.healthy = False
        self._ready = asyncio.Event()
        self._closing = asyncio.Event()
        self._error: Optional[BaseException] = None
        self._task: Optional[asyncio.Task] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(self, timeout: float) -> None:
        """Connect and initialize. Raises :class:`TransportError` on failure."""
        self._task = asyncio.create_task(self._run(), name=f"mcp-session:{self.key}")
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            await self.close()
            raise TransportError(f"Timed out connecting to MCP server '{self.key}' after {timeout}s")

        if self.client is None:
            await self.close()
            raise TransportError(f"Failed to connect to MCP server '{self.key}': {self._error}") from self._error
        logger.info("MCP session '%s' connected", self.key)

    async def _run(self) -> None:
        try:
            async with AsyncExitStack() as stack:
                read, write = await self._open_transport(stack)
                client = await stack.enter_async_context(ClientSession(read, write))
                await client.initialize()
                self.client = client
                self.healthy = True
                self._ready.set()
                await self._closing.wait()
        except Exception as exc:
            self._error = exc
            if self.client is None:
                logger.debug("MCP session '%s' failed to start: %s", self.key, exc)
            else:
                logger.warning("MCP session '%s' ended with error: %s", self.key, exc)
        finally:
            self.healthy = False
            self._ready.set()

    async def _open_transport(self, stack: AsyncExitStack):
        server = self.server
        if isinstance(server, McpStdioServer):
            params = StdioServerParameters(
                command=server.command,
                args=server.args,
                env={**get_default_environment(), **server.env} if server.env else None,
                cwd=server.cwd,
            )
            return await stack.enter_async_context(stdio_client(params))

        read, write, _ = await stack.enter_async_context(
            streamablehttp_client(
                server.url,
                headers=self.headers,
                timeout=timedelta(seconds=server.timeout),
                sse_read_timeout=timedelta(seconds=server.sse_read_timeout),
                terminate_on_close=server.terminate_on_close,
            )
        )
        return read, write

    def mark_unhealthy(self) -> None:
        self.healthy = False

    async def close(self) -> None:
        self.healthy = False
        self._closing.set()
        if self._task is not None and not self._task.done():
            try:
                await asyncio.wait_for(self._task, timeout=5.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                logger.warning("MCP session '%s' did not shut down in time, cancelled", self.key)
        logger.debug("MCP session '%s' closed", self.key)
