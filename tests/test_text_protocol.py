"""Tests for the text (local file) protocol."""

import json
import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest
import yaml

from utcp.protocols.text import TextCallTemplate, TextCommunicationProtocol

MANUAL = {
    "utcp_version": "1.0.1",
    "tools": [
        {
            "name": "readme",
            "description": "Return the project readme",
            "tool_call_template": {"call_template_type": "text", "file_path": "README.txt"},
        }
    ],
}


@pytest.fixture
def temp_dir():
    """Create a temporary directory for manual files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def protocol():
    return TextCommunicationProtocol()


class TestTextProtocol:
    """Tests for TextCommunicationProtocol."""

    async def test_register_json_manual(self, protocol, temp_dir):
        """Test loading a JSON manual by absolute path."""
        path = temp_dir / "manual.json"
        path.write_text(json.dumps(MANUAL))

        result = await protocol.register_manual(None, TextCallTemplate(name="docs", file_path=str(path)))

        assert result.success is True
        assert [t.name for t in result.manual.tools] == ["readme"]

    async def test_relative_path_uses_root_dir(self, protocol, temp_dir):
        """Test that relative paths resolve against the caller's root directory."""
        (temp_dir / "manual.yaml").write_text(yaml.safe_dump(MANUAL))
        caller = SimpleNamespace(root_dir=temp_dir)

        result = await protocol.register_manual(caller, TextCallTemplate(name="docs", file_path="manual.yaml"))

        assert result.success is True
        assert result.manual.tools[0].description == "Return the project readme"

    async def test_openapi_file_converted(self, protocol, temp_dir):
        """Test that an OpenAPI document on disk becomes a manual."""
        spec = {
            "openapi": "3.0.0",
            "servers": [{"url": "https://api.example.com"}],
            "paths": {"/status": {"get": {"operationId": "status"}}},
        }
        path = temp_dir / "openapi.yml"
        path.write_text(yaml.safe_dump(spec))

        result = await protocol.register_manual(None, TextCallTemplate(name="svc", file_path=str(path)))

        assert result.success is True
        tool = result.manual.tools[0]
        assert tool.name == "status"
        assert tool.tool_call_template.url == "https://api.example.com/status"

    async def test_missing_file(self, protocol, temp_dir):
        """Test that a missing file fails registration without raising."""
        template = TextCallTemplate(name="docs", file_path=str(temp_dir / "absent.json"))

        result = await protocol.register_manual(None, template)

        assert result.success is False
        assert result.errors

    async def test_invalid_json(self, protocol, temp_dir):
        """Test that unparsable content fails registration."""
        path = temp_dir / "broken.json"
        path.write_text("{not json")

        result = await protocol.register_manual(None, TextCallTemplate(name="docs", file_path=str(path)))

        assert result.success is False

    async def test_call_tool_returns_content(self, protocol, temp_dir):
        """Test that calling a text tool returns the raw file content."""
        (temp_dir / "README.txt").write_text("hello from disk")
        caller = SimpleNamespace(root_dir=temp_dir)

        content = await protocol.call_tool(
            caller, "docs.readme", {"ignored": True}, TextCallTemplate(file_path="README.txt")
        )

        assert content == "hello from disk"
