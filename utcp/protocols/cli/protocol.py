"""CLI protocol: tools backed by shell command workflows."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import signal
import sys
from typing import Any, Dict, List, Optional, Tuple

from utcp.data.call_template import CallTemplate
from utcp.data.manual import RegisterManualResult, UtcpManual
from utcp.exceptions import DiscoveryFormatError, TransportError
from utcp.protocols.base import CommunicationProtocol
from utcp.protocols.cli.call_template import CliCallTemplate, CommandStep

logger = logging.getLogger(__name__)

_ARG_PLACEHOLDER = re.compile(r"UTCP_ARG_([a-zA-Z0-9_]+?)_UTCP_END")
_OUTPUT_REFERENCE = re.compile(r"\$CMD_(\d+)_OUTPUT")
_KILL_WAIT_SECONDS = 5


def substitute_utcp_args(command: str, tool_args: Dict[str, Any]) -> str:
    """
    Replace ``UTCP_ARG_<name>_UTCP_END`` with the raw argument value.

    Values are not shell-quoted; quote the placeholder in the command when the
    value may contain spaces or shell metacharacters.
    """

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name in tool_args:
            return str(tool_args[name])
        logger.error("Missing argument '%s' for placeholder in command: %s", name, command)
        return f"MISSING_ARG_{name}"

    return _ARG_PLACEHOLDER.sub(replace, command)


def _should_append(step: CommandStep, index: int, total: int) -> bool:
    if step.append_to_final_output is None:
        return index == total - 1
    return step.append_to_final_output


def _check_output_references(command: str, index: int) -> None:
    for ref in _OUTPUT_REFERENCE.findall(command):
        if int(ref) >= index:
            logger.warning("Step %d references $CMD_%s_OUTPUT, which is not set yet", index, ref)


def _quote_output_references(command: str, index: int) -> str:
    """Double-quote references to earlier step outputs so bash neither splits nor globs them."""

    def replace(match: re.Match) -> str:
        if int(match.group(1)) < index:
            return f'"{match.group(0)}"'
        return match.group(0)

    return _OUTPUT_REFERENCE.sub(replace, command)


def build_bash_script(commands: List[CommandStep], tool_args: Dict[str, Any]) -> str:
    lines = ["#!/bin/bash", "set -e"]
    for i, step in enumerate(commands):
        command = substitute_utcp_args(step.command, tool_args)
        _check_output_references(command, i)
        command = _quote_output_references(command, i)
        var = f"CMD_{i}_OUTPUT"
        if command.strip().startswith("cd "):
            lines.append(command)
            lines.append(f'{var}=""')
            continue
        # on failure, surface the captured output on stderr before exiting
        lines.append(f'{var}=$( {command} 2>&1 ) || {{ rc=$?; printf \'%s\' "${var}" >&2; exit $rc; }}')
        lines.append(f'{var}="${{{var}#"${{{var}%%[![:space:]]*}}"}}"')
        lines.append(f'{var}="${{{var}%"${{{var}##*[![:space:]]}}"}}"')

    outputs = [
        f"printf '%s' \"$CMD_{i}_OUTPUT\""
        for i, step in enumerate(commands)
        if _should_append(step, i, len(commands))
    ]
    if outputs:
        lines.append(" && printf '\\n' && ".join(outputs))
    return "\n".join(lines)


def build_powershell_script(commands: List[CommandStep], tool_args: Dict[str, Any]) -> str:
    lines = ['$ErrorActionPreference = "Stop"']
    for i, step in enumerate(commands):
        command = substitute_utcp_args(step.command, tool_args)
        _check_output_references(command, i)
        if command.strip().startswith("cd "):
            lines.append(command)
            lines.append(f'$CMD_{i}_OUTPUT = ""')
        else:
            lines.append(f"$CMD_{i}_OUTPUT = ( {command} 2>&1 | Out-String ).Trim()")

    outputs = [f"$CMD_{i}_OUTPUT" for i, step in enumerate(commands) if _should_append(step, i, len(commands))]
    if outputs:
        lines.append("(@(" + ", ".join(outputs) + ") -join \"`n\")")
    return "\n".join(lines)


class CliCommunicationProtocol(CommunicationProtocol):
    """
    Runs a template's command steps as one script in a single shell process,
    so ``cd`` and exported variables carry over between steps.

    Bash is used on POSIX systems and PowerShell on Windows.
    """

    def __init__(self, windows: Optional[bool] = None):
        self._windows = sys.platform == "win32" if windows is None else windows

    @staticmethod
    def _as_cli_template(template: CallTemplate) -> CliCallTemplate:
        if isinstance(template, CliCallTemplate):
            return template
        return CliCallTemplate.model_validate(template.model_dump())

    def build_script(self, commands: List[CommandStep], tool_args: Dict[str, Any]) -> str:
        if self._windows:
            return build_powershell_script(commands, tool_args)
        return build_bash_script(commands, tool_args)

    # ── Execution ─────────────────────────────────────────────────────────

    async def _kill_tree(self, process: asyncio.subprocess.Process) -> None:
        """Kill the shell and everything it started, waiting only briefly for it to exit."""
        try:
            if self._windows:
                killer = await asyncio.create_subprocess_exec(
                    "taskkill", "/F", "/T", "/PID", str(process.pid),
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
                await asyncio.wait_for(killer.wait(), timeout=_KILL_WAIT_SECONDS)
            else:
                os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except (OSError, asyncio.TimeoutError) as exc:
            logger.warning("Could not kill process tree of pid %d: %s", process.pid, exc)
            try:
                process.kill()
            except ProcessLookupError:
                pass

        try:
            await asyncio.wait_for(process.wait(), timeout=_KILL_WAIT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Shell process %d did not exit after being killed", process.pid)

    async def _run_script(self, script: str, template: CliCallTemplate) -> Tuple[str, str, int]:
        if self._windows:
            argv = ["powershell.exe", "-NoProfile", "-Command", script]
        else:
            argv = ["/bin/bash", "-c", script]
        env = {**os.environ, **(template.env or {})}

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=template.cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                # own process group, so a timeout can kill the steps' children too
                start_new_session=not self._windows,
            )
        except OSError as exc:
            raise TransportError(f"Failed to start shell '{argv[0]}': {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=template.timeout)
        except asyncio.TimeoutError:
            await self._kill_tree(process)
            raise TransportError(f"Command script timed out after {template.timeout}s.")

        return (
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            process.returncode,
        )

    # ── Protocol ──────────────────────────────────────────────────────────

    async def register_manual(self, caller, manual_call_template: CallTemplate) -> RegisterManualResult:
        template = self._as_cli_template(manual_call_template)
        logger.info("Registering CLI manual '%s' by executing discovery command(s)", template.name)

        try:
            stdout, stderr, exit_code = await self._run_script(self.build_script(template.commands, {}), template)
            if exit_code != 0:
                raise TransportError(
                    f"Discovery script failed with exit code {exit_code}. Stderr: {stderr.strip()}",
                    stderr=stderr,
                )
            try:
                document = json.loads(stdout)
            except ValueError as exc:
                raise DiscoveryFormatError(f"Discovery output is not valid JSON: {exc}") from exc

            manual = UtcpManual.model_validate(document)
            logger.info("Discovered %d tools from CLI manual '%s'", len(manual.tools), template.name)
            return RegisterManualResult(manual_call_template=template, manual=manual, success=True)

        except Exception as exc:
            logger.error("Error during CLI manual registration for '%s': %s", template.name, exc)
            return RegisterManualResult(
                manual_call_template=template,
                manual=UtcpManual(),
                success=False,
                errors=[str(exc) or type(exc).__name__],
            )

    async def deregister_manual(self, caller, manual_call_template: CallTemplate) -> None:
        logger.debug("Deregistering CLI manual '%s' (nothing to release)", manual_call_template.name)

    async def call_tool(self, caller, tool_name: str, tool_args: Dict[str, Any], tool_call_template: CallTemplate) -> Any:
        template = self._as_cli_template(tool_call_template)
        logger.info("Calling CLI tool '%s' (%d steps)", tool_name, len(template.commands))

        stdout, stderr, exit_code = await self._run_script(self.build_script(template.commands, tool_args), template)
        if exit_code != 0:
            raise TransportError(
                f"CLI tool '{tool_name}' failed with exit code {exit_code}. Stderr: {stderr.strip()}",
                stderr=stderr,
            )

        output = stdout.strip()
        try:
            return json.loads(output)
        except ValueError:
            return output
