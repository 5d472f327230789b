"""Tests for the CLI protocol."""

import json
import os
import time

import pytest

from utcp.exceptions import TransportError
from utcp.protocols.cli import CliCallTemplate, CliCommunicationProtocol
from utcp.protocols.cli.call_template import CommandStep
from utcp.protocols.cli.protocol import build_bash_script, build_powershell_script, substitute_utcp_args

requires_bash = pytest.mark.skipif(not os.path.exists("/bin/bash"), reason="bash not available")


def steps(*commands):
    return [CommandStep(command=command) for command in commands]


class TestScriptBuilding:
    """Tests for script generation."""

    def test_substitute_args(self):
        """Test placeholder replacement with raw values."""
        command = "grep UTCP_ARG_pattern_UTCP_END UTCP_ARG_file_name_UTCP_END"

        assert substitute_utcp_args(command, {"pattern": "foo", "file_name": "a.txt"}) == "grep foo a.txt"

    def test_missing_arg_marker(self):
        """Test that an unknown placeholder becomes a visible marker."""
        assert substitute_utcp_args("echo UTCP_ARG_x_UTCP_END", {}) == "echo MISSING_ARG_x"

    def test_bash_script_layout(self):
        """Test that only the last step is printed by default."""
        script = build_bash_script(steps("cd /tmp", "ls", "pwd"), {})
        lines = script.splitlines()

        assert lines[:2] == ["#!/bin/bash", "set -e"]
        assert "cd /tmp" in lines
        assert 'CMD_0_OUTPUT=""' in lines
        assert lines[-1] == "printf '%s' \"$CMD_2_OUTPUT\""

    def test_explicit_append_flags(self):
        """Test that flagged steps are joined with newlines."""
        commands = [
            CommandStep(command="echo a", append_to_final_output=True),
            CommandStep(command="echo b", append_to_final_output=False),
        ]

        script = build_bash_script(commands, {})

        assert script.splitlines()[-1] == "printf '%s' \"$CMD_0_OUTPUT\""

    def test_powershell_script(self):
        """Test the Windows script variant."""
        script = CliCommunicationProtocol(windows=True).build_script(steps("Get-Date", "hostname"), {})

        assert script.startswith('$ErrorActionPreference = "Stop"')
        assert "$CMD_1_OUTPUT = ( hostname 2>&1 | Out-String ).Trim()" in script
        assert script.splitlines()[-1] == '(@($CMD_1_OUTPUT) -join "`n")'
        assert script == build_powershell_script(steps("Get-Date", "hostname"), {})

    def test_earlier_outputs_quoted(self):
        """Test that references to earlier outputs are quoted and later ones are left alone."""
        script = build_bash_script(steps("echo one", "echo $CMD_0_OUTPUT $CMD_2_OUTPUT", "echo three"), {})

        assert 'CMD_1_OUTPUT=$( echo "$CMD_0_OUTPUT" $CMD_2_OUTPUT 2>&1 )' in script


@requires_bash
class TestCliExecution:
    """Tests that run real bash scripts."""

    @pytest.fixture
    def protocol(self):
        return CliCommunicationProtocol(windows=False)

    async def test_cd_carries_over(self, protocol):
        """Test that a cd step changes the directory for later steps."""
        template = CliCallTemplate(commands=steps("cd /tmp", "pwd"))

        assert await protocol.call_tool(None, "sh.where", {}, template) == "/tmp"

    async def test_output_reference_and_args(self, protocol):
        """Test referencing an earlier step's output and substituting arguments."""
        template = CliCallTemplate(
            commands=steps("echo UTCP_ARG_word_UTCP_END", 'echo "got $CMD_0_OUTPUT"')
        )

        assert await protocol.call_tool(None, "sh.echo", {"word": "hello"}, template) == "got hello"

    async def test_multiple_outputs(self, protocol):
        """Test that appended outputs are newline-separated."""
        template = CliCallTemplate(
            commands=[
                CommandStep(command="echo first", append_to_final_output=True),
                CommandStep(command="echo second"),
            ]
        )

        assert await protocol.call_tool(None, "sh.both", {}, template) == "first\nsecond"

    async def test_json_output_parsed(self, protocol):
        """Test that JSON output is decoded."""
        template = CliCallTemplate(commands=steps("""echo '{"count": 3}'"""))

        assert await protocol.call_tool(None, "sh.json", {}, template) == {"count": 3}

    async def test_template_env(self, protocol):
        """Test that template env values reach the commands."""
        template = CliCallTemplate(commands=steps("echo $UTCP_TEST_GREETING"), env={"UTCP_TEST_GREETING": "hi"})

        assert await protocol.call_tool(None, "sh.env", {}, template) == "hi"

    async def test_cwd(self, protocol, tmp_path):
        """Test that the script starts in the template's cwd."""
        template = CliCallTemplate(commands=steps("pwd"), cwd=str(tmp_path))

        assert await protocol.call_tool(None, "sh.pwd", {}, template) == str(tmp_path)

    async def test_failure_raises(self, protocol):
        """Test that a failing step stops the script and reports its output."""
        template = CliCallTemplate(commands=steps("echo before", "echo broken && exit 3", "echo never"))

        with pytest.raises(TransportError) as exc_info:
            await protocol.call_tool(None, "sh.fail", {}, template)

        assert "exit code 3" in str(exc_info.value)
        assert "broken" in exc_info.value.stderr

    async def test_timeout(self, protocol):
        """Test that a slow script is killed."""
        template = CliCallTemplate(commands=steps("sleep 5"), timeout=0.2)

        with pytest.raises(TransportError, match="timed out"):
            await protocol.call_tool(None, "sh.slow", {}, template)

    async def test_timeout_kills_child_processes(self, protocol):
        """Test that the call returns at the deadline even when a step has started a child process."""
        template = CliCallTemplate(commands=steps("sleep 20; echo x"), timeout=1)

        started = time.monotonic()
        with pytest.raises(TransportError, match="timed out"):
            await protocol.call_tool(None, "sh.slow", {}, template)

        assert time.monotonic() - started < 3

    async def test_multiline_output_passed_intact(self, protocol):
        """Test that an earlier output keeps its newlines and glob characters in a later step."""
        template = CliCallTemplate(commands=steps("printf 'a\\nb\\n*'", "echo $CMD_0_OUTPUT"))

        assert await protocol.call_tool(None, "sh.lines", {}, template) == "a\nb\n*"

    async def test_register_manual(self, protocol):
        """Test discovering tools from command output."""
        manual = {
            "utcp_version": "1.0.1",
            "tools": [
                {
                    "name": "count_files",
                    "tool_call_template": {"call_template_type": "cli", "commands": [{"command": "ls | wc -l"}]},
                }
            ],
        }
        template = CliCallTemplate(name="shell", commands=steps(f"echo '{json.dumps(manual)}'"))

        result = await protocol.register_manual(None, template)

        assert result.success is True
        assert result.manual.tools[0].name == "count_files"

    async def test_register_invalid_output(self, protocol):
        """Test that non-JSON discovery output fails registration."""
        template = CliCallTemplate(name="shell", commands=steps("echo not-json"))

        result = await protocol.register_manual(None, template)

        assert result.success is False
        assert "not valid JSON" in result.errors[0]
