"""Call template for manuals stored in local files."""

from __future__ import annotations

from typing import Literal

from utcp.data.call_template import CallTemplate


class TextCallTemplate(CallTemplate):
    """A UTCP manual or OpenAPI document on disk, in JSON or YAML."""

    call_template_type: Literal["text"] = "text"
    file_path: str
    auth: None = None
