"""The client: registers manuals, routes tool calls, and owns their lifecycle."""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from utcp.client.config import UtcpClientConfig, load_config
from utcp.core.substitutor import DefaultVariableSubstitutor, VariableSubstitutor
from utcp.data.call_template import CallTemplate
from utcp.data.manual import RegisterManualResult, UtcpManual
from utcp.data.tool import Tool
from utcp.exceptions import (
    DuplicateManualError,
    ManualNotFoundError,
    ProtocolNotFoundError,
    ToolNotFoundError,
)
from utcp.plugins.loader import create_default_registry
from utcp.plugins.registry import PluginRegistry
from utcp.protocols.base import CommunicationProtocol

logger = logging.getLogger(__name__)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")

CallTemplateInput = Union[CallTemplate, Dict[str, Any]]


def sanitize_manual_name(name: str) -> str:
    return _INVALID_NAME_CHARS.sub("_", name)


def _restore_placeholders(value: Any, substituted: Any, raw: Any) -> Any:
    """
    Put the manual template's unresolved text back into a tool template.

    Wherever ``value`` holds exactly what substitution produced from ``raw``
    at the same path, the raw text is returned instead. Parts a protocol
    built itself are left as they are.
    """
    if isinstance(value, dict) and isinstance(substituted, dict) and isinstance(raw, dict):
        return {
            key: _restore_placeholders(item, substituted[key], raw[key])
            if key in substituted and key in raw
            else item
            for key, item in value.items()
        }
    if isinstance(value, list) and isinstance(substituted, list) and isinstance(raw, list):
        if len(value) == len(substituted) == len(raw):
            return [_restore_placeholders(*items) for items in zip(value, substituted, raw)]
        return value
    return raw if value == substituted else value


class UtcpClient:
    """
    Entry point for registering manuals and calling their tools.

    Build one with :meth:`create`, which also registers every manual listed
    in the configuration::

        client = await UtcpClient.create(config="utcp.yaml")
        result = await client.call_tool("weather.get_forecast", {"city": "Oslo"})
        await client.close()

    Tool names are ``<manual>.<tool>``. Every call template is run through
    variable substitution, namespaced by its manual name, right before it is
    handed to a protocol.
    """

    def __init__(
        self,
        config: UtcpClientConfig,
        registry: PluginRegistry,
        root_dir: Optional[Union[str, Path]] = None,
        variable_substitutor: Optional[VariableSubstitutor] = None,
    ):
        self.config = config
        self.registry = registry
        self.root_dir = Path(root_dir) if root_dir else Path.cwd()
        self.variable_substitutor = variable_substitutor or DefaultVariableSubstitutor()
        self.tool_repository = registry.create_tool_repository(config.tool_repository)
        self.tool_search_strategy = registry.create_tool_search_strategy(config.tool_search_strategy)
        self.post_processors = [registry.create_tool_post_processor(c) for c in config.post_processing]
        self._registering: set = set()

    @classmethod
    async def create(
        cls,
        config: Optional[Union[UtcpClientConfig, Dict[str, Any], str, Path]] = None,
        root_dir: Optional[Union[str, Path]] = None,
        registry: Optional[PluginRegistry] = None,
    ) -> "UtcpClient":
        """
        Build a client and register the manuals its configuration lists.

        ``config`` may be a config object, a plain dict, or a path to a YAML
        or JSON file. Values in ``variables`` may reference environment or
        dotenv variables themselves.
        """
        registry = registry or create_default_registry()
        if config is None:
            config = UtcpClientConfig()
        elif isinstance(config, (str, Path)):
            if root_dir is None:
                root_dir = Path(config).resolve().parent
            config = load_config(config)
        elif isinstance(config, dict):
            config = UtcpClientConfig.model_validate(config)

        substitutor = DefaultVariableSubstitutor()
        if config.variables:
            # variables may only refer to loaders and the environment, not to each other
            lookup_config = config.model_copy(update={"variables": {}})
            variables = await substitutor.substitute(config.variables, lookup_config)
            config = config.model_copy(update={"variables": variables})

        client = cls(config, registry, root_dir=root_dir, variable_substitutor=substitutor)
        if config.manual_call_templates:
            results = await client.register_manuals(config.manual_call_templates)
            for result in results:
                if not result.success:
                    logger.error("Manual '%s' failed to register: %s", result.manual_call_template.name, result.errors)
        return client

    # ── Helpers ───────────────────────────────────────────────────────────

    def _get_protocol(self, call_template_type: str) -> CommunicationProtocol:
        protocol = self.registry.get_comm_protocol(call_template_type)
        if protocol is None:
            raise ProtocolNotFoundError(call_template_type)
        return protocol

    def _split_exempt(self, template: CallTemplate) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        data = template.model_dump()
        exempt = {name: data.pop(name) for name in type(template).substitution_exempt_fields if name in data}
        return data, exempt

    async def _substitute_call_template(self, template: CallTemplateInput, namespace: Optional[str]) -> CallTemplate:
        template = self.registry.validate_call_template(template)
        data, exempt = self._split_exempt(template)
        data = await self.variable_substitutor.substitute(data, self.config, namespace)
        data.update(exempt)
        return self.registry.validate_call_template(data)

    def _post_process(self, tool: Tool, manual_call_template: CallTemplate, result: Any) -> Any:
        for processor in self.post_processors:
            result = processor.post_process(self, tool, manual_call_template, result)
        return result

    # ── Manuals ───────────────────────────────────────────────────────────

    async def register_manual(self, manual_call_template: CallTemplateInput) -> RegisterManualResult:
        """
        Discover a manual's tools and store them as ``<manual>.<tool>``.

        Raises :class:`DuplicateManualError` if the name is taken. Discovery
        failures are returned in the result instead of raised.
        """
        template = self.registry.validate_call_template(manual_call_template)
        name = sanitize_manual_name(template.name or uuid.uuid4().hex)
        template = template.model_copy(update={"name": name})

        if name in self._registering:
            raise DuplicateManualError(name)
        self._registering.add(name)
        try:
            if await self.tool_repository.get_manual(name) is not None:
                raise DuplicateManualError(name)

            substituted = await self._substitute_call_template(template, namespace=name)
            protocol = self._get_protocol(substituted.call_template_type)

            logger.info("Registering manual '%s' (%s)", name, substituted.call_template_type)
            result = await protocol.register_manual(self, substituted)

            if result.success:
                raw_data, substituted_data = template.model_dump(), substituted.model_dump()
                for tool in result.manual.tools:
                    if not tool.name.startswith(f"{name}."):
                        tool.name = f"{name}.{tool.name}"
                    # tool templates copied from the manual's must not keep resolved secrets
                    if tool.tool_call_template.call_template_type == template.call_template_type:
                        restored = _restore_placeholders(tool.tool_call_template.model_dump(), substituted_data, raw_data)
                        tool.tool_call_template = self.registry.validate_call_template(restored)
                await self.tool_repository.save_manual(template, result.manual)
                logger.info("Registered manual '%s' with %d tools", name, len(result.manual.tools))
            return result
        finally:
            self._registering.discard(name)

    async def register_manuals(self, manual_call_templates: Sequence[CallTemplateInput]) -> List[RegisterManualResult]:
        """Register several manuals concurrently. Every failure becomes a failed result."""

        async def register_one(template: CallTemplateInput) -> RegisterManualResult:
            try:
                return await self.register_manual(template)
            except Exception as exc:
                logger.error("Error registering manual: %s", exc)
                if not isinstance(template, CallTemplate):
                    template = CallTemplate.model_construct(**template)
                return RegisterManualResult(
                    manual_call_template=template,
                    manual=UtcpManual(),
                    success=False,
                    errors=[str(exc) or type(exc).__name__],
                )

        return list(await asyncio.gather(*(register_one(t) for t in manual_call_templates)))

    async def deregister_manual(self, manual_name: str) -> bool:
        """
        Release a manual's protocol resources and drop it with its tools.

        Cleanup errors are logged; the manual is removed regardless.
        """
        template = await self.tool_repository.get_manual_call_template(manual_name)
        if template is None:
            return False

        protocol = self.registry.get_comm_protocol(template.call_template_type)
        if protocol is not None:
            try:
                await protocol.deregister_manual(self, self.registry.validate_call_template(template))
            except Exception as exc:
                logger.warning("Cleanup for manual '%s' failed: %s", manual_name, exc)

        removed = await self.tool_repository.remove_manual(manual_name)
        logger.info("Deregistered manual '%s'", manual_name)
        return removed

    # ── Tools ─────────────────────────────────────────────────────────────

    async def _prepare_call(self, tool_name: str) -> Tuple[Tool, CallTemplate, CallTemplate, CommunicationProtocol]:
        manual_name = tool_name.split(".", 1)[0]
        tool = await self.tool_repository.get_tool(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name)

        manual_call_template = await self.tool_repository.get_manual_call_template(manual_name)
        if manual_call_template is None:
            raise ManualNotFoundError(manual_name)

        tool_call_template = await self._substitute_call_template(tool.tool_call_template, namespace=manual_name)
        protocol = self._get_protocol(tool_call_template.call_template_type)
        return tool, manual_call_template, tool_call_template, protocol

    async def call_tool(self, tool_name: str, tool_args: Optional[Dict[str, Any]] = None) -> Any:
        """Call a registered tool and return its post-processed result."""
        tool, manual_call_template, tool_call_template, protocol = await self._prepare_call(tool_name)
        logger.debug("Calling tool '%s' via %s", tool_name, tool_call_template.call_template_type)
        result = await protocol.call_tool(self, tool_name, tool_args or {}, tool_call_template)
        return self._post_process(tool, manual_call_template, result)

    async def call_tool_streaming(self, tool_name: str, tool_args: Optional[Dict[str, Any]] = None) -> AsyncIterator[Any]:
        """Stream a tool's result, post-processing each chunk on its own."""
        tool, manual_call_template, tool_call_template, protocol = await self._prepare_call(tool_name)
        async for chunk in protocol.call_tool_streaming(self, tool_name, tool_args or {}, tool_call_template):
            yield self._post_process(tool, manual_call_template, chunk)

    async def search_tools(
        self,
        query: str,
        limit: int = 10,
        any_of_tags_required: Optional[List[str]] = None,
    ) -> List[Tool]:
        return await self.tool_search_strategy.search_tools(
            self.tool_repository, query, limit=limit, any_of_tags_required=any_of_tags_required
        )

    # ── Variables ─────────────────────────────────────────────────────────

    async def get_required_variables_for_manual_and_tools(self, manual_call_template: CallTemplateInput) -> List[str]:
        """Variables a manual's template needs, namespaced by its (sanitized) name."""
        template = self.registry.validate_call_template(manual_call_template)
        namespace = sanitize_manual_name(template.name) if template.name else None
        data, _ = self._split_exempt(template)
        return self.variable_substitutor.find_required_variables(data, namespace)

    async def get_required_variables_for_registered_tool(self, tool_name: str) -> List[str]:
        tool = await self.tool_repository.get_tool(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name)
        data, _ = self._split_exempt(self.registry.validate_call_template(tool.tool_call_template))
        return self.variable_substitutor.find_required_variables(data, tool.manual_name)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close every registered protocol concurrently."""
        protocols = {id(p): p for p in self.registry.get_comm_protocols().values()}
        results = await asyncio.gather(*(p.close() for p in protocols.values()), return_exceptions=True)
        for protocol, result in zip(protocols.values(), results):
            if isinstance(result, Exception):
                logger.error("Error closing %s: %s", type(protocol).__name__, result)

    async def __aenter__(self) -> "UtcpClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
