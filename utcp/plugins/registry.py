"""Registry of call template models, protocols, and pluggable client services."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Type, Union, get_origin

from pydantic import Field, TypeAdapter

from utcp.core.post_processors import ToolPostProcessor
from utcp.core.repository import ConcurrentToolRepository
from utcp.core.search import ToolSearchStrategy
from utcp.data.call_template import CallTemplate
from utcp.protocols.base import CommunicationProtocol

logger = logging.getLogger(__name__)

ToolRepositoryFactory = Callable[[Dict[str, Any]], ConcurrentToolRepository]
ToolSearchStrategyFactory = Callable[[Dict[str, Any]], ToolSearchStrategy]
ToolPostProcessorFactory = Callable[[Dict[str, Any]], ToolPostProcessor]


class PluginRegistry:
    """
    Maps type strings to the implementations the client uses.

    One registry is built at startup (see :func:`utcp.plugins.create_default_registry`)
    and handed to each client. Registering an already-taken type logs a warning
    and returns ``False`` unless ``override=True``.
    """

    def __init__(self):
        self._comm_protocols: Dict[str, CommunicationProtocol] = {}
        self._call_template_schemas: Dict[str, Type[CallTemplate]] = {}
        self._tool_repository_factories: Dict[str, ToolRepositoryFactory] = {}
        self._tool_search_strategy_factories: Dict[str, ToolSearchStrategyFactory] = {}
        self._tool_post_processor_factories: Dict[str, ToolPostProcessorFactory] = {}
        self._union_adapter: Optional[TypeAdapter] = None

    def _register(self, kind: str, table: Dict[str, Any], type_name: str, value: Any, override: bool) -> bool:
        if type_name in table and not override:
            logger.warning("%s '%s' is already registered", kind, type_name)
            return False
        table[type_name] = value
        return True

    # ── Communication protocols ───────────────────────────────────────────

    def register_comm_protocol(self, type_name: str, protocol: CommunicationProtocol, override: bool = False) -> bool:
        return self._register("Communication protocol", self._comm_protocols, type_name, protocol, override)

    def get_comm_protocol(self, type_name: str) -> Optional[CommunicationProtocol]:
        return self._comm_protocols.get(type_name)

    def get_comm_protocols(self) -> Dict[str, CommunicationProtocol]:
        return dict(self._comm_protocols)

    # ── Call template schemas ─────────────────────────────────────────────

    def register_call_template_schema(self, type_name: str, schema: Type[CallTemplate], override: bool = False) -> bool:
        """
        Register the pydantic model for a call template type.

        The model must subclass :class:`CallTemplate` and declare
        ``call_template_type`` as a ``Literal``.
        """
        field = None
        if isinstance(schema, type) and issubclass(schema, CallTemplate):
            field = schema.model_fields.get("call_template_type")
        if field is None or get_origin(field.annotation) is not Literal:
            logger.error(
                "Cannot register call template schema for type '%s': it must subclass CallTemplate "
                "with a Literal call_template_type",
                type_name,
            )
            return False
        registered = self._register("Call template schema", self._call_template_schemas, type_name, schema, override)
        if registered:
            self._union_adapter = None
        return registered

    def get_call_template_schema(self, type_name: str) -> Optional[Type[CallTemplate]]:
        return self._call_template_schemas.get(type_name)

    def get_call_template_union_schema(self) -> TypeAdapter:
        """Validator over every registered call template, discriminated by ``call_template_type``."""
        if self._union_adapter is None:
            schemas: List[Type[CallTemplate]] = list(self._call_template_schemas.values())
            if len(schemas) < 2:
                self._union_adapter = TypeAdapter(CallTemplate)
            else:
                union = Annotated[Union[tuple(schemas)], Field(discriminator="call_template_type")]
                self._union_adapter = TypeAdapter(union)
        return self._union_adapter

    def validate_call_template(self, data: Union[CallTemplate, Dict[str, Any]]) -> CallTemplate:
        """
        Parse ``data`` into the registered model for its type.

        Unregistered types fall back to the base model so the caller can
        report the missing protocol rather than a validation failure.
        """
        if isinstance(data, CallTemplate):
            data = data.model_dump()
        schema = self._call_template_schemas.get(data.get("call_template_type"))
        if schema is None:
            return CallTemplate.model_validate(data)
        if len(self._call_template_schemas) < 2:
            return schema.model_validate(data)
        return self.get_call_template_union_schema().validate_python(data)

    # ── Client services ───────────────────────────────────────────────────

    def register_tool_repository_factory(self, type_name: str, factory: ToolRepositoryFactory, override: bool = False) -> bool:
        return self._register("Tool repository", self._tool_repository_factories, type_name, factory, override)

    def create_tool_repository(self, config: Dict[str, Any]) -> ConcurrentToolRepository:
        return self._create("tool repository", self._tool_repository_factories, "tool_repository_type", config)

    def register_tool_search_strategy_factory(self, type_name: str, factory: ToolSearchStrategyFactory, override: bool = False) -> bool:
        return self._register("Tool search strategy", self._tool_search_strategy_factories, type_name, factory, override)

    def create_tool_search_strategy(self, config: Dict[str, Any]) -> ToolSearchStrategy:
        return self._create("tool search strategy", self._tool_search_strategy_factories, "tool_search_strategy_type", config)

    def register_tool_post_processor_factory(self, type_name: str, factory: ToolPostProcessorFactory, override: bool = False) -> bool:
        return self._register("Tool post-processor", self._tool_post_processor_factories, type_name, factory, override)

    def create_tool_post_processor(self, config: Dict[str, Any]) -> ToolPostProcessor:
        return self._create("tool post-processor", self._tool_post_processor_factories, "tool_post_processor_type", config)

    def _create(self, kind: str, factories: Dict[str, Callable], type_key: str, config: Dict[str, Any]) -> Any:
        type_name = config.get(type_key)
        factory = factories.get(type_name)
        if factory is None:
            raise ValueError(f"Unknown {kind} type '{type_name}'. Registered: {sorted(factories)}")
        return factory(config)
