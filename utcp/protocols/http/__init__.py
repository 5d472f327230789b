"""HTTP protocol: UTCP manuals and OpenAPI documents served over HTTP."""

from utcp.protocols.http.call_template import HttpCallTemplate
from utcp.protocols.http.oauth import OAuth2TokenProvider
from utcp.protocols.http.openapi import OpenApiConverter, manual_from_document
from utcp.protocols.http.protocol import HttpCommunicationProtocol

__all__ = [
    "HttpCallTemplate",
    "HttpCommunicationProtocol",
    "OAuth2TokenProvider",
    "OpenApiConverter",
    "manual_from_document",
]
