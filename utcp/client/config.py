"""
Client configuration.

A config file (YAML or JSON) can be layered with a second, local file whose
values override the first, key by key. Example::

    variables:
      WEATHER__API_KEY: abc123
    load_variables_from:
      - variable_loader_type: dotenv
        env_file_path: .env
    manual_call_templates:
      - name: weather
        call_template_type: http
        url: https://api.example.com/utcp
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from dotenv import dotenv_values
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SerializeAsAny, ValidationError

from utcp.data.call_template import CallTemplate

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or is invalid."""

    pass


class DotEnvVariableLoader(BaseModel):
    """Looks variables up in a dotenv file, re-read on every lookup."""

    model_config = ConfigDict(populate_by_name=True)

    variable_loader_type: Literal["dotenv"] = Field(
        default="dotenv",
        validation_alias=AliasChoices("variable_loader_type", "type"),
    )
    env_file_path: str

    async def get(self, key: str) -> Optional[str]:
        path = Path(self.env_file_path)
        if not path.exists():
            logger.warning("Variable file not found: %s", path)
            return None
        values = await asyncio.to_thread(dotenv_values, path)
        return values.get(key)


class UtcpClientConfig(BaseModel):
    """Complete client configuration schema."""

    variables: Dict[str, str] = Field(default_factory=dict)
    load_variables_from: List[DotEnvVariableLoader] = Field(default_factory=list)
    tool_repository: Dict[str, Any] = Field(default_factory=lambda: {"tool_repository_type": "in_memory"})
    tool_search_strategy: Dict[str, Any] = Field(
        default_factory=lambda: {"tool_search_strategy_type": "tag_and_description_word_match"}
    )
    post_processing: List[Dict[str, Any]] = Field(default_factory=list)
    manual_call_templates: List[SerializeAsAny[CallTemplate]] = Field(default_factory=list)


def _load_file(path: Path) -> Dict[str, Any]:
    """Load a YAML or JSON file. JSON parses as YAML."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_config(
    path: Union[str, Path],
    override_path: Optional[Union[str, Path]] = None,
) -> UtcpClientConfig:
    """
    Load and validate a client configuration.

    Args:
        path: Main configuration file.
        override_path: Optional file merged over the main one. Missing is fine.

    Returns:
        The validated configuration. Relative dotenv paths are resolved
        against the directory of the main file.
    """
    path = Path(path)
    data = _load_file(path)
    if override_path is not None and Path(override_path).exists():
        data = deep_merge(data, _load_file(Path(override_path)))

    for loader in data.get("load_variables_from") or []:
        if isinstance(loader, dict) and loader.get("env_file_path"):
            env_path = Path(loader["env_file_path"])
            if not env_path.is_absolute():
                loader["env_file_path"] = str(path.parent / env_path)

    try:
        return UtcpClientConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")
