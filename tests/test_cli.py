"""Tests for the utcp command line."""

import json
import tempfile
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from utcp.cli.main import cli


@pytest.fixture
def workspace():
    """A directory with a text manual and a config that registers it."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "hello.txt").write_text("hello world")
        (root / "manual.json").write_text(
            json.dumps(
                {
                    "utcp_version": "1.0.1",
                    "tools": [
                        {
                            "name": "hello",
                            "description": "Say hello to the world",
                            "tags": ["greeting"],
                            "tool_call_template": {"call_template_type": "text", "file_path": "hello.txt"},
                        }
                    ],
                }
            )
        )
        (root / "utcp.yaml").write_text(
            yaml.safe_dump(
                {
                    "manual_call_templates": [
                        {"name": "files", "call_template_type": "text", "file_path": "manual.json"}
                    ]
                }
            )
        )
        yield root


class TestCli:
    """Tests for CLI commands."""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    def test_tools(self, runner, workspace):
        """Test listing tools from a config file."""
        result = runner.invoke(cli, ["--config", str(workspace / "utcp.yaml"), "tools"], obj={})

        assert result.exit_code == 0, result.output
        assert "files.hello" in result.output

    def test_search(self, runner, workspace):
        """Test searching tools."""
        result = runner.invoke(cli, ["-c", str(workspace / "utcp.yaml"), "search", "greeting"], obj={})

        assert result.exit_code == 0, result.output
        assert "files.hello" in result.output

    def test_search_no_match(self, runner, workspace):
        """Test the message for an empty search."""
        result = runner.invoke(cli, ["-c", str(workspace / "utcp.yaml"), "search", "zebra"], obj={})

        assert result.exit_code == 0
        assert "No tools match" in result.output

    def test_call(self, runner, workspace):
        """Test calling a tool and printing its result."""
        result = runner.invoke(cli, ["-c", str(workspace / "utcp.yaml"), "call", "files.hello"], obj={})

        assert result.exit_code == 0, result.output
        assert "hello world" in result.output

    def test_call_unknown_tool(self, runner, workspace):
        """Test that client errors exit with status 1."""
        result = runner.invoke(cli, ["-c", str(workspace / "utcp.yaml"), "call", "files.nope"], obj={})

        assert result.exit_code == 1
        assert "Tool not found" in result.output

    def test_call_bad_args(self, runner, workspace):
        """Test that malformed --args is a usage error."""
        result = runner.invoke(
            cli, ["-c", str(workspace / "utcp.yaml"), "call", "files.hello", "--args", "{oops"], obj={}
        )

        assert result.exit_code == 2

    def test_vars(self, runner, workspace):
        """Test listing a manual's variables without registering it."""
        config = workspace / "vars.yaml"
        config.write_text(
            yaml.safe_dump(
                {
                    "manual_call_templates": [
                        {
                            "name": "weather",
                            "call_template_type": "http",
                            "url": "https://api.example.com/utcp",
                            "headers": {"X-Api-Key": "${API_KEY}"},
                        }
                    ]
                }
            )
        )

        result = runner.invoke(cli, ["-c", str(config), "vars", "weather"], obj={})

        assert result.exit_code == 0, result.output
        assert "weather__API_KEY" in result.output

    def test_invalid_config(self, runner, workspace):
        """Test that an invalid config file exits with an error."""
        config = workspace / "broken.yaml"
        config.write_text("variables: [1, 2")

        result = runner.invoke(cli, ["-c", str(config), "tools"], obj={})

        assert result.exit_code == 1
        assert "Error" in result.output
