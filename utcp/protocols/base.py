"""Interface every communication protocol implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict

from utcp.data.call_template import CallTemplate
from utcp.data.manual import RegisterManualResult

if TYPE_CHECKING:
    from utcp.client.client import UtcpClient


class CommunicationProtocol(ABC):
    """
    Discovers and calls tools over one kind of transport.

    A single instance serves every manual of its ``call_template_type``, so
    any cached sessions or tokens are keyed per manual or server inside it.
    """

    @abstractmethod
    async def register_manual(self, caller: "UtcpClient", manual_call_template: CallTemplate) -> RegisterManualResult:
        """Discover the tools a manual exposes."""

    @abstractmethod
    async def deregister_manual(self, caller: "UtcpClient", manual_call_template: CallTemplate) -> None:
        """Release anything held for the manual."""

    @abstractmethod
    async def call_tool(
        self,
        caller: "UtcpClient",
        tool_name: str,
        tool_args: Dict[str, Any],
        tool_call_template: CallTemplate,
    ) -> Any:
        """Invoke a tool and return its result."""

    async def call_tool_streaming(
        self,
        caller: "UtcpClient",
        tool_name: str,
        tool_args: Dict[str, Any],
        tool_call_template: CallTemplate,
    ) -> AsyncIterator[Any]:
        """Stream a tool result. Without native streaming this yields the full result once."""
        yield await self.call_tool(caller, tool_name, tool_args, tool_call_template)

    async def close(self) -> None:
        """Release every session, process, and cached credential."""
