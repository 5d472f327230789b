"""Tool search by tag and description word overlap."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from utcp.core.repository import ConcurrentToolRepository
from utcp.data.tool import Tool

_WORD_PATTERN = re.compile(r"\w+")


class ToolSearchStrategy(ABC):
    """Interface for ranking repository tools against a query."""

    tool_search_strategy_type: str = ""

    @abstractmethod
    async def search_tools(
        self,
        tool_repository: ConcurrentToolRepository,
        query: str,
        limit: int = 10,
        any_of_tags_required: Optional[List[str]] = None,
    ) -> List[Tool]:
        """Return the best matching tools, best first."""

    def to_config(self) -> Dict[str, Any]:
        return {"tool_search_strategy_type": self.tool_search_strategy_type}


class TagAndDescriptionWordMatchStrategy(ToolSearchStrategy):
    """
    Scores tools by shared words with the query.

    A tag containing the whole query (or contained in it) earns ``tag_weight``,
    every query word found among a tag's words earns half of that, and every
    query word longer than two characters found in the description earns
    ``description_weight``. Zero-score tools are dropped.
    """

    tool_search_strategy_type = "tag_and_description_word_match"

    def __init__(self, description_weight: float = 1.0, tag_weight: float = 3.0):
        self.description_weight = description_weight
        self.tag_weight = tag_weight

    def score(self, tool: Tool, query: str) -> float:
        query_lower = query.lower().strip()
        query_words = set(_WORD_PATTERN.findall(query_lower))
        score = 0.0

        for tag in tool.tags:
            tag_lower = tag.lower()
            if tag_lower in query_lower or query_lower in tag_lower:
                score += self.tag_weight

            tag_words = set(_WORD_PATTERN.findall(tag_lower))
            score += self.tag_weight * 0.5 * len(query_words & tag_words)

        if tool.description:
            description_words = {
                w for w in _WORD_PATTERN.findall(tool.description.lower()) if len(w) > 2
            }
            score += self.description_weight * len(query_words & description_words)

        return score

    async def search_tools(
        self,
        tool_repository: ConcurrentToolRepository,
        query: str,
        limit: int = 10,
        any_of_tags_required: Optional[List[str]] = None,
    ) -> List[Tool]:
        if limit < 0:
            raise ValueError("limit must be non-negative")

        tools = await tool_repository.get_tools()

        if any_of_tags_required:
            required = {tag.lower() for tag in any_of_tags_required}
            tools = [t for t in tools if any(tag.lower() in required for tag in t.tags)]

        scored = [(self.score(tool, query), tool) for tool in tools]
        # sorted() is stable, so equal scores keep repository order
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
        results = [tool for score, tool in scored if score > 0]

        return results[:limit] if limit > 0 else results

    def to_config(self) -> Dict[str, Any]:
        return {
            "tool_search_strategy_type": self.tool_search_strategy_type,
            "description_weight": self.description_weight,
            "tag_weight": self.tag_weight,
        }
