"""Builds a registry populated with the built-in protocols and services."""

from __future__ import annotations

from utcp.core.post_processors import (
    FilterDictConfig,
    FilterDictPostProcessor,
    LimitStringsConfig,
    LimitStringsPostProcessor,
)
from utcp.core.repository import InMemToolRepository
from utcp.core.search import TagAndDescriptionWordMatchStrategy
from utcp.plugins.registry import PluginRegistry
from utcp.protocols.cli import CliCallTemplate, CliCommunicationProtocol
from utcp.protocols.http import HttpCallTemplate, HttpCommunicationProtocol
from utcp.protocols.mcp import McpCallTemplate, McpCommunicationProtocol
from utcp.protocols.text import TextCallTemplate, TextCommunicationProtocol


def register_core_services(registry: PluginRegistry) -> None:
    registry.register_tool_repository_factory("in_memory", lambda config: InMemToolRepository())
    registry.register_tool_search_strategy_factory(
        "tag_and_description_word_match",
        lambda config: TagAndDescriptionWordMatchStrategy(
            description_weight=config.get("description_weight", 1.0),
            tag_weight=config.get("tag_weight", 3.0),
        ),
    )
    registry.register_tool_post_processor_factory(
        "filter_dict", lambda config: FilterDictPostProcessor(FilterDictConfig.model_validate(config))
    )
    registry.register_tool_post_processor_factory(
        "limit_strings", lambda config: LimitStringsPostProcessor(LimitStringsConfig.model_validate(config))
    )


def register_builtin_protocols(registry: PluginRegistry) -> None:
    registry.register_call_template_schema("http", HttpCallTemplate)
    registry.register_comm_protocol("http", HttpCommunicationProtocol())
    registry.register_call_template_schema("mcp", McpCallTemplate)
    registry.register_comm_protocol("mcp", McpCommunicationProtocol())
    registry.register_call_template_schema("text", TextCallTemplate)
    registry.register_comm_protocol("text", TextCommunicationProtocol())
    registry.register_call_template_schema("cli", CliCallTemplate)
    registry.register_comm_protocol("cli", CliCommunicationProtocol())


def create_default_registry() -> PluginRegistry:
    """A new registry with every built-in protocol and service registered."""
    registry = PluginRegistry()
    register_core_services(registry)
    register_builtin_protocols(registry)
    return registry
