"""Text protocol: manuals and tool content read from local files."""

from utcp.protocols.text.call_template import TextCallTemplate
from utcp.protocols.text.protocol import TextCommunicationProtocol

__all__ = ["TextCallTemplate", "TextCommunicationProtocol"]
