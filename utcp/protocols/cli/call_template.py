"""Call template for multi-step shell workflows."""

from __future__ import annotations

from typing import ClassVar, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from utcp.data.call_template import CallTemplate


class CommandStep(BaseModel):
    """
    One shell command in a workflow.

    ``command`` may contain ``UTCP_ARG_<name>_UTCP_END`` placeholders, filled
    from tool arguments, and ``$CMD_<i>_OUTPUT`` references to earlier steps.
    ``append_to_final_output`` defaults to True for the last step only.
    """

    command: str
    append_to_final_output: Optional[bool] = None


class CliCallTemplate(CallTemplate):
    """Commands run in order inside one shell process.

    ``commands`` is passed to the shell as written: ``$VAR`` there is shell
    syntax. Put credentials in ``env``, which is substituted like any other field.
    """

    substitution_exempt_fields: ClassVar[Tuple[str, ...]] = ("commands",)

    call_template_type: Literal["cli"] = "cli"
    commands: List[CommandStep] = Field(min_length=1)
    env: Optional[Dict[str, str]] = None
    cwd: Optional[str] = None
    timeout: float = Field(default=60.0, gt=0, description="Whole-workflow timeout in seconds.")
    auth: None = None
