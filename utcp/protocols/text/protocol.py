"""Local file protocol.

Registration reads a manual (or OpenAPI document) from disk. Calling a tool
returns the file's content unchanged; arguments are ignored.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from utcp.data.call_template import CallTemplate
from utcp.data.manual import RegisterManualResult, UtcpManual
from utcp.protocols.base import CommunicationProtocol
from utcp.protocols.http.openapi import OpenApiConverter, is_openapi_document
from utcp.protocols.text.call_template import TextCallTemplate

logger = logging.getLogger(__name__)


class TextCommunicationProtocol(CommunicationProtocol):
    """Reads manuals and tool content from the file system."""

    @staticmethod
    def _as_text_template(template: CallTemplate) -> TextCallTemplate:
        if isinstance(template, TextCallTemplate):
            return template
        return TextCallTemplate.model_validate(template.model_dump())

    @staticmethod
    def _resolve_path(caller, file_path: str) -> Path:
        """Relative paths are taken from the client's root directory, else the cwd."""
        root = getattr(caller, "root_dir", None) or Path.cwd()
        return (Path(root) / file_path).resolve()

    async def register_manual(self, caller, manual_call_template: CallTemplate) -> RegisterManualResult:
        template = self._as_text_template(manual_call_template)
        path = self._resolve_path(caller, template.file_path)
        logger.info("Reading manual from '%s'", path)

        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)

            if is_openapi_document(data):
                logger.info("Detected OpenAPI specification in '%s', converting", path)
                manual = OpenApiConverter(data, spec_url=str(path), call_template_name=template.name).convert()
            else:
                manual = UtcpManual.model_validate(data)

            logger.info("Loaded %d tools from '%s'", len(manual.tools), path)
            return RegisterManualResult(manual_call_template=template, manual=manual, success=True)

        except Exception as exc:
            logger.error("Failed to register manual from '%s': %s", path, exc)
            return RegisterManualResult(
                manual_call_template=template,
                manual=UtcpManual(),
                success=False,
                errors=[str(exc) or type(exc).__name__],
            )

    async def deregister_manual(self, caller, manual_call_template: CallTemplate) -> None:
        logger.debug("Deregistering text manual '%s' (nothing to release)", manual_call_template.name)

    async def call_tool(self, caller, tool_name: str, tool_args: Dict[str, Any], tool_call_template: CallTemplate) -> str:
        template = self._as_text_template(tool_call_template)
        path = self._resolve_path(caller, template.file_path)
        logger.info("Reading content from '%s' for tool call '%s'", path, tool_name)
        return await asyncio.to_thread(path.read_text, encoding="utf-8")
