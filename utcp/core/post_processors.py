"""Result post-processors applied by the client after every tool call."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, List, Optional

from pydantic import BaseModel, Field

from utcp.data.call_template import CallTemplate
from utcp.data.tool import Tool

if TYPE_CHECKING:
    from utcp.client.client import UtcpClient


class PostProcessorScope(BaseModel):
    """Restricts a post-processor to some tools or manuals."""

    exclude_tools: Optional[List[str]] = None
    only_include_tools: Optional[List[str]] = None
    exclude_manuals: Optional[List[str]] = None
    only_include_manuals: Optional[List[str]] = None

    def applies_to(self, tool: Tool, manual_call_template: CallTemplate) -> bool:
        manual_name = manual_call_template.name or tool.manual_name
        if self.exclude_tools and tool.name in self.exclude_tools:
            return False
        if self.only_include_tools and tool.name not in self.only_include_tools:
            return False
        if self.exclude_manuals and manual_name in self.exclude_manuals:
            return False
        if self.only_include_manuals and manual_name not in self.only_include_manuals:
            return False
        return True


class ToolPostProcessor(ABC):
    """Transforms a tool result before it is returned to the caller."""

    tool_post_processor_type: str = ""

    @abstractmethod
    def post_process(
        self,
        caller: "UtcpClient",
        tool: Tool,
        manual_call_template: CallTemplate,
        result: Any,
    ) -> Any:
        ...


# ── filter_dict ───────────────────────────────────────────────────────────


class FilterDictConfig(PostProcessorScope):
    tool_post_processor_type: str = "filter_dict"
    exclude_keys: Optional[List[str]] = None
    only_include_keys: Optional[List[str]] = None


class FilterDictPostProcessor(ToolPostProcessor):
    """
    Drops or keeps dictionary keys throughout a nested result.

    With ``only_include_keys``, a dict keeps only listed keys, but non-listed
    keys whose values still contain listed keys deeper down are kept with the
    filtered value. Lists drop containers that filtering left empty.
    """

    tool_post_processor_type = "filter_dict"

    def __init__(self, config: Optional[FilterDictConfig] = None):
        self.config = config or FilterDictConfig()

    def post_process(self, caller, tool, manual_call_template, result):
        if not self.config.applies_to(tool, manual_call_template):
            return result
        # only_include_keys wins when both are set
        if self.config.only_include_keys:
            return self._include(result, set(self.config.only_include_keys))
        if self.config.exclude_keys:
            return self._exclude(result, set(self.config.exclude_keys))
        return result

    def _exclude(self, data: Any, keys: set) -> Any:
        if isinstance(data, dict):
            return {key: self._exclude(value, keys) for key, value in data.items() if key not in keys}
        if isinstance(data, list):
            items = [self._exclude(item, keys) for item in data]
            return [item for item in items if not _is_empty_container(item)]
        return data

    def _include(self, data: Any, keys: set) -> Any:
        if isinstance(data, dict):
            filtered = {}
            for key, value in data.items():
                if key in keys:
                    filtered[key] = self._include(value, keys)
                    continue
                nested = self._include(value, keys)
                if isinstance(nested, (dict, list)) and nested:
                    filtered[key] = nested
            return filtered
        if isinstance(data, list):
            items = [self._include(item, keys) for item in data]
            return [item for item in items if not _is_empty_container(item)]
        return data


def _is_empty_container(value: Any) -> bool:
    return isinstance(value, (dict, list)) and not value


# ── limit_strings ─────────────────────────────────────────────────────────


class LimitStringsConfig(PostProcessorScope):
    tool_post_processor_type: str = "limit_strings"
    limit: int = Field(default=10000, ge=0)


class LimitStringsPostProcessor(ToolPostProcessor):
    """Truncates every string in a result to ``limit`` characters."""

    tool_post_processor_type = "limit_strings"

    def __init__(self, config: Optional[LimitStringsConfig] = None):
        self.config = config or LimitStringsConfig()

    def post_process(self, caller, tool, manual_call_template, result):
        if not self.config.applies_to(tool, manual_call_template):
            return result
        return self._limit(result)

    def _limit(self, data: Any) -> Any:
        if isinstance(data, str):
            return data[: self.config.limit]
        if isinstance(data, dict):
            return {key: self._limit(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self._limit(item) for item in data]
        return data
