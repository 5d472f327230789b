"""Tool repository: manual name -> (call template, manual) and tool name -> tool."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from utcp.data.call_template import CallTemplate
from utcp.data.manual import UtcpManual
from utcp.data.tool import Tool

logger = logging.getLogger(__name__)


class ConcurrentToolRepository(ABC):
    """Storage interface used by the client.

    Implementations must apply writes one at a time and in submission order.
    Reads return copies so callers never mutate stored state.
    """

    tool_repository_type: str = ""

    # ── Writes ────────────────────────────────────────────────────────────

    @abstractmethod
    async def save_manual(self, manual_call_template: CallTemplate, manual: UtcpManual) -> None:
        """Store a manual and its tools, replacing any previous manual of that name."""

    @abstractmethod
    async def remove_manual(self, manual_name: str) -> bool:
        """Remove a manual and all of its tools. Returns False if it was absent."""

    @abstractmethod
    async def remove_tool(self, tool_name: str) -> bool:
        """Remove one tool, detaching it from its manual. Returns False if absent."""

    # ── Reads ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_tool(self, tool_name: str) -> Optional[Tool]:
        ...

    @abstractmethod
    async def get_tools(self) -> List[Tool]:
        ...

    @abstractmethod
    async def get_tools_by_manual(self, manual_name: str) -> Optional[List[Tool]]:
        ...

    @abstractmethod
    async def get_manual(self, manual_name: str) -> Optional[UtcpManual]:
        ...

    @abstractmethod
    async def get_manuals(self) -> List[UtcpManual]:
        ...

    @abstractmethod
    async def get_manual_call_template(self, manual_name: str) -> Optional[CallTemplate]:
        ...

    @abstractmethod
    async def get_manual_call_templates(self) -> List[CallTemplate]:
        ...

    def to_config(self) -> Dict[str, str]:
        return {"tool_repository_type": self.tool_repository_type}


class InMemToolRepository(ConcurrentToolRepository):
    """In-memory repository guarded by a single write lock.

    ``asyncio.Lock`` wakes waiters in FIFO order, which gives writers a queue.
    Reads take no lock: each write mutates the dictionaries without awaiting,
    so a reader never observes a half-applied write.
    """

    tool_repository_type = "in_memory"

    def __init__(self):
        self._tools_by_name: Dict[str, Tool] = {}
        self._manuals: Dict[str, UtcpManual] = {}
        self._manual_call_templates: Dict[str, CallTemplate] = {}
        self._write_lock = asyncio.Lock()

    async def save_manual(self, manual_call_template: CallTemplate, manual: UtcpManual) -> None:
        manual_name = manual_call_template.name or ""
        manual_call_template = manual_call_template.model_copy(deep=True)
        manual = manual.model_copy(deep=True)
        async with self._write_lock:
            old_manual = self._manuals.get(manual_name)
            if old_manual is not None:
                for tool in old_manual.tools:
                    self._tools_by_name.pop(tool.name, None)

            self._manual_call_templates[manual_name] = manual_call_template
            self._manuals[manual_name] = manual
            for tool in manual.tools:
                self._tools_by_name[tool.name] = tool
        logger.debug("Saved manual '%s' with %d tools", manual_name, len(manual.tools))

    async def remove_manual(self, manual_name: str) -> bool:
        async with self._write_lock:
            manual = self._manuals.pop(manual_name, None)
            if manual is None:
                return False
            for tool in manual.tools:
                self._tools_by_name.pop(tool.name, None)
            self._manual_call_templates.pop(manual_name, None)
            return True

    async def remove_tool(self, tool_name: str) -> bool:
        async with self._write_lock:
            if self._tools_by_name.pop(tool_name, None) is None:
                return False
            manual = self._manuals.get(tool_name.split(".", 1)[0])
            if manual is not None:
                manual.tools = [t for t in manual.tools if t.name != tool_name]
            return True

    async def get_tool(self, tool_name: str) -> Optional[Tool]:
        tool = self._tools_by_name.get(tool_name)
        return tool.model_copy(deep=True) if tool else None

    async def get_tools(self) -> List[Tool]:
        return [t.model_copy(deep=True) for t in self._tools_by_name.values()]

    async def get_tools_by_manual(self, manual_name: str) -> Optional[List[Tool]]:
        manual = self._manuals.get(manual_name)
        if manual is None:
            return None
        return [t.model_copy(deep=True) for t in manual.tools]

    async def get_manual(self, manual_name: str) -> Optional[UtcpManual]:
        manual = self._manuals.get(manual_name)
        return manual.model_copy(deep=True) if manual else None

    async def get_manuals(self) -> List[UtcpManual]:
        return [m.model_copy(deep=True) for m in self._manuals.values()]

    async def get_manual_call_template(self, manual_name: str) -> Optional[CallTemplate]:
        template = self._manual_call_templates.get(manual_name)
        return template.model_copy(deep=True) if template else None

    async def get_manual_call_templates(self) -> List[CallTemplate]:
        return [t.model_copy(deep=True) for t in self._manual_call_templates.values()]
