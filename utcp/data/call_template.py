"""Base call template model.

A call template tells the client how to reach a manual (or a single tool).
Concrete protocols subclass :class:`CallTemplate` with a ``Literal``
``call_template_type`` so the plugin registry can build a discriminated union
over every registered variant.
"""

from __future__ import annotations

from typing import ClassVar, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from utcp.data.auth import Auth


class CallTemplate(BaseModel):
    """Fields shared by every call template.

    Unknown fields are kept so a template parsed before its protocol was
    registered still round-trips to the specific model later.
    """

    model_config = ConfigDict(extra="allow")

    # Top-level fields the client leaves untouched during variable substitution.
    substitution_exempt_fields: ClassVar[Tuple[str, ...]] = ()

    name: Optional[str] = None
    call_template_type: str
    auth: Optional[Auth] = None
