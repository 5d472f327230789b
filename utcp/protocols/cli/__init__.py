"""CLI protocol: tools implemented as shell command workflows."""

from utcp.protocols.cli.call_template import CliCallTemplate, CommandStep
from utcp.protocols.cli.protocol import CliCommunicationProtocol

__all__ = ["CliCallTemplate", "CliCommunicationProtocol", "CommandStep"]
