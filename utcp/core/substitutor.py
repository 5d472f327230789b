"""Variable substitution for call templates.

``${NAME}`` and ``$NAME`` references inside any string leaf are replaced with
values looked up in, in order: the client config's ``variables`` map, each
configured variable loader, and the process environment. When a namespace
(the manual name) is given, ``<NAMESPACE>__NAME`` is tried against every
source before the bare ``NAME``.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, List, Optional

from utcp.exceptions import VariableNotFoundError

if TYPE_CHECKING:
    from utcp.client.config import UtcpClientConfig

logger = logging.getLogger(__name__)

_VARIABLE_PATTERN = re.compile(r"\$\{([a-zA-Z0-9_]+)\}|\$([a-zA-Z0-9_]+)")
_NAMESPACE_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")


def namespaced_key(name: str, namespace: Optional[str]) -> str:
    """Return the lookup key for ``name`` inside ``namespace``.

    Underscores in the namespace are doubled so ``a_b`` + ``C`` cannot
    collide with ``a`` + ``b_C``.
    """
    if not namespace:
        return name
    return f"{namespace.replace('_', '__')}__{name}"


def _validate_namespace(namespace: Optional[str]) -> None:
    if namespace is not None and not _NAMESPACE_PATTERN.match(namespace):
        raise ValueError(
            f"Variable namespace '{namespace}' contains invalid characters. "
            "Only alphanumeric characters and underscores are allowed."
        )


class VariableSubstitutor(ABC):
    """Interface for resolving variable references in nested data."""

    @abstractmethod
    async def substitute(self, obj: Any, config: "UtcpClientConfig", namespace: Optional[str] = None) -> Any:
        """Return a copy of ``obj`` with every variable reference resolved."""

    @abstractmethod
    def find_required_variables(self, obj: Any, namespace: Optional[str] = None) -> List[str]:
        """Return the fully qualified variable names ``obj`` references."""


class DefaultVariableSubstitutor(VariableSubstitutor):
    """Resolves variables from config, loaders, then environment."""

    async def _lookup(self, key: str, config: "UtcpClientConfig") -> Optional[str]:
        if config.variables and key in config.variables:
            return config.variables[key]

        for loader in config.load_variables_from or []:
            value = await loader.get(key)
            if value is not None:
                return value

        return os.environ.get(key)

    async def _get_variable(self, name: str, config: "UtcpClientConfig", namespace: Optional[str]) -> str:
        candidates = [name]
        if namespace:
            candidates.insert(0, namespaced_key(name, namespace))

        for key in candidates:
            value = await self._lookup(key, config)
            if value is not None:
                return value

        raise VariableNotFoundError(name)

    async def _substitute_string(self, text: str, config: "UtcpClientConfig", namespace: Optional[str]) -> str:
        matches = list(_VARIABLE_PATTERN.finditer(text))
        if not matches:
            return text

        parts: List[str] = []
        last = 0
        for match in matches:
            name = match.group(1) or match.group(2)
            parts.append(text[last:match.start()])
            parts.append(await self._get_variable(name, config, namespace))
            last = match.end()
        parts.append(text[last:])
        return "".join(parts)

    async def substitute(self, obj: Any, config: "UtcpClientConfig", namespace: Optional[str] = None) -> Any:
        _validate_namespace(namespace)
        return await self._substitute(obj, config, namespace)

    async def _substitute(self, obj: Any, config: "UtcpClientConfig", namespace: Optional[str]) -> Any:
        if isinstance(obj, str):
            return await self._substitute_string(obj, config, namespace)
        if isinstance(obj, list):
            return [await self._substitute(item, config, namespace) for item in obj]
        if isinstance(obj, dict):
            return {key: await self._substitute(value, config, namespace) for key, value in obj.items()}
        return obj

    def find_required_variables(self, obj: Any, namespace: Optional[str] = None) -> List[str]:
        _validate_namespace(namespace)
        found: List[str] = []
        self._collect(obj, namespace, found)
        # ordered dedupe
        return list(dict.fromkeys(found))

    def _collect(self, obj: Any, namespace: Optional[str], found: List[str]) -> None:
        if isinstance(obj, str):
            for match in _VARIABLE_PATTERN.finditer(obj):
                found.append(namespaced_key(match.group(1) or match.group(2), namespace))
        elif isinstance(obj, list):
            for item in obj:
                self._collect(item, namespace, found)
        elif isinstance(obj, dict):
            for value in obj.values():
                self._collect(value, namespace, found)
