"""Manual and registration result models."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, SerializeAsAny

from utcp.data.call_template import CallTemplate
from utcp.data.tool import Tool

UTCP_VERSION = "1.0.1"


class UtcpManual(BaseModel):
    """A named collection of tools with version metadata."""

    utcp_version: str = UTCP_VERSION
    manual_version: str = "1.0.0"
    tools: List[Tool] = Field(default_factory=list)


class RegisterManualResult(BaseModel):
    """Outcome of registering one manual. Failures are reported here, not raised."""

    manual_call_template: SerializeAsAny[CallTemplate]
    manual: UtcpManual = Field(default_factory=UtcpManual)
    success: bool = False
    errors: List[str] = Field(default_factory=list)
