"""Core services: variable substitution, tool storage, search, post-processing."""

from utcp.core.post_processors import (
    FilterDictConfig,
    FilterDictPostProcessor,
    LimitStringsConfig,
    LimitStringsPostProcessor,
    ToolPostProcessor,
)
from utcp.core.repository import ConcurrentToolRepository, InMemToolRepository
from utcp.core.search import TagAndDescriptionWordMatchStrategy, ToolSearchStrategy
from utcp.core.substitutor import DefaultVariableSubstitutor, VariableSubstitutor

__all__ = [
    "ConcurrentToolRepository",
    "DefaultVariableSubstitutor",
    "FilterDictConfig",
    "FilterDictPostProcessor",
    "InMemToolRepository",
    "LimitStringsConfig",
    "LimitStringsPostProcessor",
    "TagAndDescriptionWordMatchStrategy",
    "ToolPostProcessor",
    "ToolSearchStrategy",
    "VariableSubstitutor",
]
