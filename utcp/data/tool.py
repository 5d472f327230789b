"""Tool definition model."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, SerializeAsAny

from utcp.data.call_template import CallTemplate


class Tool(BaseModel):
    """A callable tool exposed by a manual.

    Once registered, ``name`` is always ``<manual>.<local name>``.
    """

    name: str
    description: str = ""
    inputs: Dict[str, Any] = Field(default_factory=dict)
    outputs: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    average_response_size: Optional[int] = None
    tool_call_template: SerializeAsAny[CallTemplate]

    @property
    def manual_name(self) -> str:
        """Owning manual, taken from the name prefix."""
        return self.name.split(".", 1)[0]
