"""Client configuration and orchestration."""

from utcp.client.client import UtcpClient, sanitize_manual_name
from utcp.client.config import ConfigError, DotEnvVariableLoader, UtcpClientConfig, load_config

__all__ = [
    "ConfigError",
    "DotEnvVariableLoader",
    "UtcpClient",
    "UtcpClientConfig",
    "load_config",
    "sanitize_manual_name",
]
