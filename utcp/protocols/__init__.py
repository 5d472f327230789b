"""Communication protocol implementations."""

from utcp.protocols.base import CommunicationProtocol

__all__ = ["CommunicationProtocol"]
