"""Plugin registry and the default set of built-in plugins."""

from utcp.plugins.loader import create_default_registry, register_builtin_protocols, register_core_services
from utcp.plugins.registry import PluginRegistry

__all__ = [
    "PluginRegistry",
    "create_default_registry",
    "register_builtin_protocols",
    "register_core_services",
]
