"""Call template for plain HTTP endpoints and OpenAPI-described services."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import Field

from utcp.data.call_template import CallTemplate


class HttpCallTemplate(CallTemplate):
    """
    An HTTP request description.

    As a manual template, ``url`` points at a UTCP manual or an OpenAPI
    document. As a tool template, ``url`` is the endpoint and may hold
    ``{param}`` placeholders filled from tool arguments.
    """

    call_template_type: Literal["http"] = "http"
    http_method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    url: str
    content_type: str = "application/json"
    headers: Optional[Dict[str, str]] = None
    body_field: Optional[str] = "body"
    header_fields: Optional[List[str]] = None
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds.")
